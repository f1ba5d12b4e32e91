"""SOS alert model and its status enums.

An alert is the permanent incident record: it is never deleted, only moved
through its lifecycle by the transition functions in
``sos_api.services.alert_lifecycle``.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from sos_api.core.location import Location
from sos_api.models.base import Base, enum_column, ensure_aware, parse_enum, utcnow


class AlertStatus(str, enum.Enum):
    """Alert lifecycle state.

    ACTIVE and CRITICAL are open; everything else is terminal.
    """

    ACTIVE = "ACTIVE"
    CRITICAL = "CRITICAL"
    CANCELED = "CANCELED"
    RESOLVED = "RESOLVED"
    EXPIRED = "EXPIRED"
    FALSE_ALARM = "FALSE_ALARM"

    @classmethod
    def from_string(cls, raw: str) -> "AlertStatus":
        """Parse a status sent by older clients (``CANCELLED``, ``FALSE``...)."""
        return parse_enum(cls, raw, _ALERT_STATUS_ALIASES)

    @property
    def is_open(self) -> bool:
        return self in OPEN_ALERT_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self not in OPEN_ALERT_STATUSES


OPEN_ALERT_STATUSES = frozenset({AlertStatus.ACTIVE, AlertStatus.CRITICAL})

_ALERT_STATUS_ALIASES = {
    "CANCELLED": "CANCELED",
    "CANCEL": "CANCELED",
    "FALSE": "FALSE_ALARM",
    "FALSEALARM": "FALSE_ALARM",
    "RESOLVE": "RESOLVED",
    "EXPIRE": "EXPIRED",
}


class VerificationStatus(str, enum.Enum):
    """Whether a responder has confirmed the alert is genuine."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class TriggerMethod(str, enum.Enum):
    """How the alert was raised."""

    MANUAL = "manual"
    TEXT = "text"
    VOICE = "voice"


class Alert(Base):
    """A single SOS incident raised by a user."""

    __tablename__ = "sos_alerts"
    __table_args__ = (
        Index("ix_sos_alerts_user_triggered", "user_id", "triggered_at"),
        Index("ix_sos_alerts_status_triggered", "status", "triggered_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    trigger_method: Mapped[TriggerMethod] = mapped_column(
        enum_column(TriggerMethod, "triggermethod"),
        nullable=False,
    )
    alert_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Stored file path for uploads, or the source URL for voice-by-URL
    audio_recording: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Set once on creation
    triggered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    status: Mapped[AlertStatus] = mapped_column(
        enum_column(AlertStatus, "alertstatus"),
        nullable=False,
        default=AlertStatus.ACTIVE,
    )
    verification_status: Mapped[VerificationStatus] = mapped_column(
        enum_column(VerificationStatus, "verificationstatus"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )

    # Non-null iff status is CANCELED / RESOLVED respectively
    canceled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    @property
    def location(self) -> Location:
        return Location(self.latitude, self.longitude, self.address)

    def __repr__(self) -> str:
        return (
            f"<Alert(id={self.id}, status={self.status.value}, "
            f"trigger={self.trigger_method.value}, user={self.user_id})>"
        )


@event.listens_for(Alert, "load")
@event.listens_for(Alert, "refresh")
def _normalize_alert_timestamps(target: Alert, *_args: object) -> None:
    target.triggered_at = ensure_aware(target.triggered_at)
    target.canceled_at = ensure_aware(target.canceled_at)
    target.resolved_at = ensure_aware(target.resolved_at)
    target.updated_at = ensure_aware(target.updated_at)
