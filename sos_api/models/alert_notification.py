"""Per-recipient notification audit rows for SOS alerts."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from sos_api.models.base import Base, enum_column, ensure_aware, utcnow


class RecipientType(str, enum.Enum):
    """Who a notification was addressed to."""

    TRUSTED_CONTACT = "trusted_contact"
    EMERGENCY_SERVICE = "emergency_service"
    RESPONDER = "responder"


class DeliveryStatus(str, enum.Enum):
    """Outcome of a single delivery attempt."""

    PENDING = "pending"
    NOTIFIED = "notified"
    FAILED = "failed"


class AlertNotification(Base):
    """One delivery attempt to one recipient.

    Retries insert a new row; an existing row only ever moves from PENDING
    to NOTIFIED or FAILED.
    """

    __tablename__ = "alert_notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    alert_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("sos_alerts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Set for trusted contacts only
    contact_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    # Set for responders / emergency services
    responder_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    recipient_type: Mapped[RecipientType] = mapped_column(
        enum_column(RecipientType, "recipienttype"),
        nullable=False,
    )
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        enum_column(DeliveryStatus, "deliverystatus"),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    notification_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<AlertNotification(alert={self.alert_id}, "
            f"recipient={self.recipient_type.value}:{self.recipient_name}, "
            f"status={self.status.value})>"
        )


@event.listens_for(AlertNotification, "load")
@event.listens_for(AlertNotification, "refresh")
def _normalize_notification_time(target: AlertNotification, *_args: object) -> None:
    target.notification_time = ensure_aware(target.notification_time)
