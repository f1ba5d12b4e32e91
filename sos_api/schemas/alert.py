"""Alert read-side response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from sos_api.models.alert import AlertStatus, TriggerMethod, VerificationStatus
from sos_api.models.alert_notification import DeliveryStatus, RecipientType
from sos_api.models.alert_responder import ResponderStatus
from sos_api.models.responder import ResponderType
from sos_api.models.user import UserRole


class AlertResponse(BaseModel):
    """Single alert."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    latitude: float
    longitude: float
    address: str | None
    trigger_method: TriggerMethod
    alert_message: str | None
    audio_recording: str | None
    triggered_at: datetime
    status: AlertStatus
    verification_status: VerificationStatus
    canceled_at: datetime | None
    resolved_at: datetime | None


class AlertListResponse(BaseModel):
    """List of alerts."""

    success: bool = True
    message: str = ""
    alerts: list[AlertResponse]
    count: int


class AlertNotificationResponse(BaseModel):
    """One notification attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    contact_id: uuid.UUID | None
    responder_id: uuid.UUID | None
    recipient_type: RecipientType
    recipient_name: str
    status: DeliveryStatus
    error_message: str | None
    notification_time: datetime


class ResponderAssignmentResponse(BaseModel):
    """A responder's standing on an alert."""

    model_config = ConfigDict(from_attributes=True)

    alert_id: uuid.UUID
    responder_id: uuid.UUID
    status: ResponderStatus
    eta_minutes: int | None
    notes: str | None
    notified_at: datetime
    accepted_at: datetime | None
    arrival_time: datetime | None


class AlertDetailsResponse(BaseModel):
    """Alert with its responders and notification trail."""

    success: bool = True
    message: str = ""
    alert: AlertResponse
    responders: list[ResponderAssignmentResponse]
    notifications: list[AlertNotificationResponse]


class ParticipantInfo(BaseModel):
    """The counterpart on an alert."""

    model_config = ConfigDict(from_attributes=True)

    role: UserRole
    name: str
    phone: str | None
    email: str
    latitude: float | None
    longitude: float | None
    last_update: datetime | None
    responder_type: ResponderType | None = None
    badge_number: str | None = None


class ParticipantLocationResponse(BaseModel):
    success: bool = True
    message: str = ""
    participant: ParticipantInfo
