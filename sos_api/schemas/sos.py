"""SOS trigger request and response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from sos_api.core.location import Location
from sos_api.models.alert import AlertStatus, TriggerMethod, VerificationStatus


class LocationPayload(BaseModel):
    """Where the user is when raising the alert."""

    latitude: float = Field(..., ge=-90.0, le=90.0, description="Latitude in degrees.")
    longitude: float = Field(..., ge=-180.0, le=180.0, description="Longitude in degrees.")
    address: str | None = Field(default=None, max_length=500)

    def to_location(self) -> Location:
        return Location(self.latitude, self.longitude, self.address)


class TextCommandRequest(BaseModel):
    """Typed SOS command."""

    message: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Free-text message sent with the alert.",
    )
    keyword: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Keyword that must match the user's SOS keyword.",
    )
    location: LocationPayload

    @field_validator("message", "keyword")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "Value cannot be empty or whitespace only"
            raise ValueError(msg)
        return v


class VoiceUrlCommandRequest(BaseModel):
    """Voice SOS where the recording is already hosted at a URL."""

    audio_url: str = Field(..., max_length=1000, description="http(s) URL of the recording.")
    location: LocationPayload
    language_code: str | None = Field(default=None, max_length=10)

    @field_validator("audio_url")
    @classmethod
    def validate_audio_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            msg = "audio_url must start with http:// or https://"
            raise ValueError(msg)
        return v


class CancelAlertRequest(BaseModel):
    """Cancel one of the caller's alerts."""

    alert_id: uuid.UUID


class SOSAlertResponse(BaseModel):
    """Result of a trigger or cancel call.

    ``success`` is False (with alert fields unset) when no alert was raised
    because the keyword did not match or the audio could not be transcribed.
    """

    success: bool
    message: str
    outcome: str | None = None
    alert_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    trigger_method: TriggerMethod | None = None
    alert_message: str | None = None
    audio_recording: str | None = None
    triggered_at: datetime | None = None
    status: AlertStatus | None = None
    verification_status: VerificationStatus | None = None
    canceled_at: datetime | None = None
    resolved_at: datetime | None = None
    notified_count: int | None = None
    failed_count: int | None = None
    transcript: str | None = None
