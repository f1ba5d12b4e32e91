"""User account model.

Accounts are owned by the identity service; this service reads them to
address notifications and deletes stale unverified ones during maintenance.
"""

import enum
import uuid

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sos_api.models.base import Base, TimestampMixin, enum_column


class UserRole(str, enum.Enum):
    """Roles carried in access tokens.

    - USER: can trigger, cancel and view their own alerts
    - RESPONDER: can view dashboards and act on alerts they were notified of
    - ADMIN: dashboard access
    """

    USER = "user"
    RESPONDER = "responder"
    ADMIN = "admin"


class User(Base, TimestampMixin):
    """User account."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        enum_column(UserRole, "userrole"),
        nullable=False,
        default=UserRole.USER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
