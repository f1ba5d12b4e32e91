"""Responder directory model."""

import enum
import uuid

from sqlalchemy import Boolean, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sos_api.core.location import Location
from sos_api.models.base import Base, TimestampMixin, enum_column


class ResponderType(str, enum.Enum):
    """Kind of service a responder provides."""

    POLICE = "POLICE"
    MEDICAL = "MEDICAL"
    FIRE = "FIRE"
    SECURITY = "SECURITY"
    OTHER = "OTHER"


class AvailabilityStatus(str, enum.Enum):
    """Whether a responder can take new alerts."""

    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    OFF_DUTY = "OFF_DUTY"


class Responder(Base, TimestampMixin):
    """Responder profile. The primary key is the responder's user ID.

    Profiles are managed elsewhere; this service reads them for dispatch and
    flips availability between AVAILABLE and BUSY as assignments change.
    """

    __tablename__ = "responders"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    responder_type: Mapped[ResponderType] = mapped_column(
        enum_column(ResponderType, "respondertype"),
        nullable=False,
    )
    badge_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    availability_status: Mapped[AvailabilityStatus] = mapped_column(
        enum_column(AvailabilityStatus, "availabilitystatus"),
        nullable=False,
        default=AvailabilityStatus.AVAILABLE,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Last reported position - null until the responder app reports one
    current_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    @property
    def location(self) -> Location | None:
        if self.current_latitude is None or self.current_longitude is None:
            return None
        return Location(self.current_latitude, self.current_longitude)

    def __repr__(self) -> str:
        return (
            f"<Responder(id={self.id}, type={self.responder_type.value}, "
            f"availability={self.availability_status.value})>"
        )
