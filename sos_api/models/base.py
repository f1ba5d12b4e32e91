"""Declarative base, shared column helpers and enum parsing."""

import enum
from datetime import UTC, datetime
from typing import TypeVar

from sqlalchemy import DateTime, Enum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from sos_api.core.errors import ValidationError

E = TypeVar("E", bound=enum.Enum)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive timestamps read back from the store as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Enum stored as its string value (VARCHAR + app-side validation)."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda e: [member.value for member in e],
    )


def parse_enum(enum_cls: type[E], raw: str, aliases: dict[str, str]) -> E:
    """Parse a client-supplied status string, tolerating known spellings.

    Matching is case-insensitive, treats spaces and hyphens as underscores
    and consults ``aliases`` (normalised spelling -> canonical value).
    """
    if raw is None:
        raise ValidationError(f"{enum_cls.__name__} is required", field="status")
    key = str(raw).strip().upper().replace("-", "_").replace(" ", "_")
    key = aliases.get(key, key)
    for member in enum_cls:
        if member.value.upper() == key or member.name == key:
            return member
    raise ValidationError(
        f"Unknown {enum_cls.__name__} '{raw}'",
        field="status",
        allowed=[member.value for member in enum_cls],
    )


class TimestampMixin:
    """created_at / updated_at columns maintained by the ORM."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
