"""Read-side alert queries for users and responder dashboards."""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.core.errors import ForbiddenError, NotFoundError, ValidationError
from sos_api.core.location import Location
from sos_api.models.alert import OPEN_ALERT_STATUSES, Alert
from sos_api.models.alert_notification import AlertNotification
from sos_api.models.alert_responder import ACTIVE_ASSIGNMENT_STATUSES, AlertResponder
from sos_api.models.base import ensure_aware
from sos_api.models.responder import Responder, ResponderType
from sos_api.models.user import User, UserRole


@dataclass
class AlertDetails:
    """An alert with its responder assignments and notification trail."""

    alert: Alert
    responders: list[AlertResponder]
    notifications: list[AlertNotification]


@dataclass
class ParticipantLocation:
    """Where the other side of an alert is and how to reach them."""

    role: UserRole
    name: str
    phone: str | None
    email: str
    latitude: float | None
    longitude: float | None
    last_update: datetime | None
    responder_type: ResponderType | None = None
    badge_number: str | None = None


def _apply_limit(query: Select, limit: int | None) -> Select:
    if limit is None:
        return query
    if limit < 1:
        raise ValidationError("limit must be a positive integer", field="limit")
    return query.limit(limit)


async def get_user_alerts(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int | None = None,
) -> list[Alert]:
    """All alerts raised by a user, newest first."""
    query = (
        select(Alert)
        .where(Alert.user_id == user_id)
        .order_by(Alert.triggered_at.desc())
    )
    result = await db.execute(_apply_limit(query, limit))
    return list(result.scalars().all())


async def get_active_alerts(
    db: AsyncSession,
    limit: int | None = None,
) -> list[Alert]:
    """ACTIVE and CRITICAL alerts, newest first."""
    query = (
        select(Alert)
        .where(Alert.status.in_(OPEN_ALERT_STATUSES))
        .order_by(Alert.triggered_at.desc())
    )
    result = await db.execute(_apply_limit(query, limit))
    return list(result.scalars().all())


async def get_alerts_in_window(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    limit: int | None = None,
) -> list[Alert]:
    """Alerts triggered in ``[start, end]``, newest first."""
    start = ensure_aware(start).astimezone(UTC)
    end = ensure_aware(end).astimezone(UTC)
    if start > end:
        raise ValidationError("start must not be after end", field="start")
    query = (
        select(Alert)
        .where(Alert.triggered_at >= start, Alert.triggered_at <= end)
        .order_by(Alert.triggered_at.desc())
    )
    result = await db.execute(_apply_limit(query, limit))
    return list(result.scalars().all())


async def get_alerts_in_area(
    db: AsyncSession,
    lat_min: float,
    lat_max: float,
    lon_min: float,
    lon_max: float,
    limit: int | None = None,
) -> list[Alert]:
    """Alerts inside a latitude/longitude bounding box, newest first.

    Raises:
        ValidationError: Coordinates out of range or min greater than max.
    """
    # Location construction range-checks both corners
    south_west = Location(lat_min, lon_min)
    north_east = Location(lat_max, lon_max)
    if south_west.latitude > north_east.latitude:
        raise ValidationError("lat_min must not exceed lat_max", field="lat_min")
    if south_west.longitude > north_east.longitude:
        raise ValidationError("lon_min must not exceed lon_max", field="lon_min")

    query = (
        select(Alert)
        .where(
            Alert.latitude >= south_west.latitude,
            Alert.latitude <= north_east.latitude,
            Alert.longitude >= south_west.longitude,
            Alert.longitude <= north_east.longitude,
        )
        .order_by(Alert.triggered_at.desc())
    )
    result = await db.execute(_apply_limit(query, limit))
    return list(result.scalars().all())


async def get_alert_notifications(
    db: AsyncSession,
    alert_id: uuid.UUID,
) -> list[AlertNotification]:
    """Notification attempts for an alert in the order they were made."""
    result = await db.execute(
        select(AlertNotification)
        .where(AlertNotification.alert_id == alert_id)
        .order_by(AlertNotification.notification_time, AlertNotification.recipient_name)
    )
    return list(result.scalars().all())


async def get_alert_responders(
    db: AsyncSession,
    alert_id: uuid.UUID,
) -> list[AlertResponder]:
    result = await db.execute(
        select(AlertResponder)
        .where(AlertResponder.alert_id == alert_id)
        .order_by(AlertResponder.notified_at)
    )
    return list(result.scalars().all())


async def get_alert_details(
    db: AsyncSession,
    alert_id: uuid.UUID,
    requester_id: uuid.UUID,
    *,
    is_admin: bool = False,
) -> AlertDetails:
    """Alert plus responders and notifications for its owner or a responder on it.

    Raises:
        NotFoundError: Unknown alert.
        ForbiddenError: Requester is neither the owner, an assigned responder
            nor an admin.
    """
    alert = await db.get(Alert, alert_id)
    if alert is None:
        raise NotFoundError("Alert", alert_id=alert_id)

    responders = await get_alert_responders(db, alert_id)
    allowed = (
        is_admin
        or alert.user_id == requester_id
        or any(r.responder_id == requester_id for r in responders)
    )
    if not allowed:
        raise ForbiddenError(
            "You are not allowed to view this alert",
            details={"alert_id": str(alert_id)},
        )

    return AlertDetails(
        alert=alert,
        responders=responders,
        notifications=await get_alert_notifications(db, alert_id),
    )


async def get_participant_location(
    db: AsyncSession,
    alert_id: uuid.UUID,
    requester_id: uuid.UUID,
) -> ParticipantLocation:
    """Location and contact of the counterpart on an alert.

    The owner gets the responder currently handling the alert (ACCEPTED,
    EN_ROUTE or ARRIVED). A responder with an assignment on the alert gets
    the owner, positioned where the alert was raised.

    Raises:
        NotFoundError: Unknown alert, or no responder is handling it yet.
        ForbiddenError: Requester is neither the owner nor assigned.
    """
    alert = await db.get(Alert, alert_id)
    if alert is None:
        raise NotFoundError("Alert", alert_id=alert_id)

    responders = await get_alert_responders(db, alert_id)
    if alert.user_id == requester_id:
        holder = next(
            (r for r in responders if r.status in ACTIVE_ASSIGNMENT_STATUSES), None
        )
        if holder is None:
            raise NotFoundError("Active responder", alert_id=alert_id)
        responder = await db.get(Responder, holder.responder_id)
        user = await db.get(User, holder.responder_id)
        if responder is None or user is None:
            raise NotFoundError("Responder", responder_id=holder.responder_id)
        return ParticipantLocation(
            role=UserRole.RESPONDER,
            name=user.display_name,
            phone=user.phone,
            email=user.email,
            latitude=responder.current_latitude,
            longitude=responder.current_longitude,
            last_update=responder.updated_at,
            responder_type=responder.responder_type,
            badge_number=responder.badge_number,
        )

    if not any(r.responder_id == requester_id for r in responders):
        raise ForbiddenError(
            "You are not a participant in this alert",
            details={"alert_id": str(alert_id)},
        )
    owner = await db.get(User, alert.user_id)
    if owner is None:
        raise NotFoundError("User", user_id=alert.user_id)
    return ParticipantLocation(
        role=UserRole.USER,
        name=owner.display_name,
        phone=owner.phone,
        email=owner.email,
        latitude=alert.latitude,
        longitude=alert.longitude,
        last_update=alert.triggered_at,
    )
