"""Per-alert responder assignment."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from sos_api.models.base import Base, enum_column, ensure_aware, parse_enum, utcnow


class ResponderStatus(str, enum.Enum):
    """A responder's standing on one alert."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    FORWARDED = "FORWARDED"
    EN_ROUTE = "EN_ROUTE"
    ARRIVED = "ARRIVED"
    RESOLVED = "RESOLVED"

    @classmethod
    def from_string(cls, raw: str) -> "ResponderStatus":
        """Parse a status sent by clients (``ENROUTE``, ``en-route``...)."""
        return parse_enum(cls, raw, _RESPONDER_STATUS_ALIASES)

    @property
    def holds_alert(self) -> bool:
        """True while this responder is the alert's primary responder."""
        return self in ACTIVE_ASSIGNMENT_STATUSES


ACTIVE_ASSIGNMENT_STATUSES = frozenset(
    {ResponderStatus.ACCEPTED, ResponderStatus.EN_ROUTE, ResponderStatus.ARRIVED}
)

_RESPONDER_STATUS_ALIASES = {
    "ENROUTE": "EN_ROUTE",
    "ONTHEWAY": "EN_ROUTE",
    "ON_THE_WAY": "EN_ROUTE",
    "ACCEPT": "ACCEPTED",
    "REJECT": "REJECTED",
    "DECLINED": "REJECTED",
    "FORWARD": "FORWARDED",
    "ARRIVE": "ARRIVED",
}


class AlertResponder(Base):
    """Assignment of one responder to one alert.

    Created as PENDING when the responder is notified; moved through
    accept / reject / forward / progress / resolve by
    ``sos_api.services.responder_assignment`` and the alert lifecycle.
    """

    __tablename__ = "alert_responders"

    alert_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("sos_alerts.id", ondelete="RESTRICT"),
        primary_key=True,
    )
    responder_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("responders.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    status: Mapped[ResponderStatus] = mapped_column(
        enum_column(ResponderStatus, "responderstatus"),
        nullable=False,
        default=ResponderStatus.PENDING,
    )
    # Estimated minutes until arrival, reported by the responder
    eta_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    notified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    arrival_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<AlertResponder(alert={self.alert_id}, responder={self.responder_id}, "
            f"status={self.status.value})>"
        )


@event.listens_for(AlertResponder, "load")
@event.listens_for(AlertResponder, "refresh")
def _normalize_assignment_timestamps(target: AlertResponder, *_args: object) -> None:
    target.notified_at = ensure_aware(target.notified_at)
    target.accepted_at = ensure_aware(target.accepted_at)
    target.arrival_time = ensure_aware(target.arrival_time)
    target.updated_at = ensure_aware(target.updated_at)
