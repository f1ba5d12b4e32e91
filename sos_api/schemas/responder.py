"""Responder action request and response schemas."""

import uuid

from pydantic import BaseModel, Field, field_validator

from sos_api.core.errors import ValidationError
from sos_api.models.alert_responder import ResponderStatus
from sos_api.schemas.alert import AlertResponse, ResponderAssignmentResponse


class NotesRequest(BaseModel):
    """Optional free-text notes attached to an action."""

    notes: str | None = Field(default=None, max_length=1000)


class ForwardRequest(BaseModel):
    """Forward an accepted alert to another responder."""

    to_responder_id: uuid.UUID
    notes: str | None = Field(default=None, max_length=1000)


class ProgressRequest(BaseModel):
    """EN_ROUTE / ARRIVED progress report."""

    status: ResponderStatus = Field(..., description="EN_ROUTE or ARRIVED (ENROUTE accepted).")
    eta_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: object) -> object:
        if isinstance(v, str):
            try:
                return ResponderStatus.from_string(v)
            except ValidationError as exc:
                raise ValueError(exc.message) from exc
        return v


class AssignmentActionResponse(BaseModel):
    """Result of accept / reject / forward / progress."""

    success: bool = True
    message: str
    assignment: ResponderAssignmentResponse
    forwarded_to: ResponderAssignmentResponse | None = None
    notified_count: int | None = None


class AlertActionResponse(BaseModel):
    """Result of resolve / critical / false-alarm / verify."""

    success: bool = True
    message: str
    alert: AlertResponse
    notified_count: int | None = None
