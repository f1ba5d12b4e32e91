"""Per-user SOS preferences."""

import uuid

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sos_api.models.base import Base, TimestampMixin


class UserSettings(Base, TimestampMixin):
    """SOS preferences for one user.

    A missing row, or a blank keyword, means the configured default keyword
    applies.
    """

    __tablename__ = "user_settings"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    sos_keyword: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<UserSettings(user_id={self.user_id}, sos_keyword={self.sos_keyword})>"
