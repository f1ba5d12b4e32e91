"""Alert state machine.

Every status change goes through a function in this module. Each one loads
the alert with a row lock, checks its guard, applies the change plus its
bookkeeping and commits, so readers never see a half-applied transition.

    ACTIVE -> CRITICAL | CANCELED | RESOLVED | EXPIRED | FALSE_ALARM
    CRITICAL -> ACTIVE (on accept) | CANCELED | RESOLVED | EXPIRED | FALSE_ALARM
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.config import settings
from sos_api.core.errors import ConflictError, ForbiddenError, NotFoundError
from sos_api.core.location import Location
from sos_api.logging_config import get_logger
from sos_api.models.alert import (
    OPEN_ALERT_STATUSES,
    Alert,
    AlertStatus,
    TriggerMethod,
    VerificationStatus,
)
from sos_api.models.alert_responder import (
    ACTIVE_ASSIGNMENT_STATUSES,
    AlertResponder,
    ResponderStatus,
)
from sos_api.models.base import utcnow
from sos_api.models.responder import AvailabilityStatus, Responder
from sos_api.models.user import User
from sos_api.services import notification_dispatcher
from sos_api.services.notification_channel import NotificationSender, send_notification

logger = get_logger(__name__)


async def get_alert_for_update(db: AsyncSession, alert_id: uuid.UUID) -> Alert:
    """Load an alert with a row lock, serialising transitions on it.

    Raises:
        NotFoundError: If the alert does not exist.
    """
    result = await db.execute(
        select(Alert).where(Alert.id == alert_id).with_for_update()
    )
    alert = result.scalar_one_or_none()
    if alert is None:
        raise NotFoundError("Alert", alert_id=alert_id)
    return alert


async def get_assignment(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> AlertResponder | None:
    query = select(AlertResponder).where(
        AlertResponder.alert_id == alert_id,
        AlertResponder.responder_id == responder_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def set_responder_availability(
    db: AsyncSession,
    responder_id: uuid.UUID,
    availability: AvailabilityStatus,
) -> None:
    responder = await db.get(Responder, responder_id)
    if responder is not None and responder.availability_status != AvailabilityStatus.OFF_DUTY:
        responder.availability_status = availability


def ensure_open(alert: Alert, action: str) -> None:
    if alert.status not in OPEN_ALERT_STATUSES:
        raise ConflictError(
            f"Cannot {action} an alert that is already {alert.status.value}",
            details={"alert_id": str(alert.id), "status": alert.status.value},
        )


async def _get_active_assignment(
    db: AsyncSession,
    alert: Alert,
    responder_id: uuid.UUID,
    action: str,
) -> AlertResponder:
    assignment = await get_assignment(db, alert.id, responder_id, for_update=True)
    if assignment is None or assignment.status not in ACTIVE_ASSIGNMENT_STATUSES:
        raise ForbiddenError(
            f"Only the responder handling this alert can {action} it",
            details={"alert_id": str(alert.id), "responder_id": str(responder_id)},
        )
    return assignment


async def create_alert(
    db: AsyncSession,
    user_id: uuid.UUID,
    location: Location,
    trigger_method: TriggerMethod,
    message: str | None = None,
    audio_ref: str | None = None,
    now: datetime | None = None,
) -> tuple[Alert, bool]:
    """Create an ACTIVE alert, or reuse one raised moments ago.

    If the user already has an ACTIVE or CRITICAL alert triggered within
    ``alert_dedup_window_seconds`` of ``now``, that alert is returned
    instead of inserting a duplicate. The user row is locked first so two
    concurrent triggers from one user cannot both insert. A reused alert
    without a recording takes ``audio_ref`` in the same transaction.

    Returns:
        Tuple of (alert, created). ``created`` is False on dedup reuse.

    Raises:
        NotFoundError: If the user does not exist.
    """
    now = now or utcnow()

    user_result = await db.execute(
        select(User.id).where(User.id == user_id).with_for_update()
    )
    if user_result.scalar_one_or_none() is None:
        raise NotFoundError("User", user_id=user_id)

    window_start = now - timedelta(seconds=settings.alert_dedup_window_seconds)
    existing_result = await db.execute(
        select(Alert)
        .where(
            Alert.user_id == user_id,
            Alert.status.in_(OPEN_ALERT_STATUSES),
            Alert.triggered_at >= window_start,
        )
        .order_by(Alert.triggered_at.desc())
        .limit(1)
    )
    existing = existing_result.scalar_one_or_none()
    if existing is not None:
        if audio_ref and existing.audio_recording is None:
            existing.audio_recording = audio_ref
        await db.commit()
        logger.info(
            "Reusing recent alert for repeated trigger",
            alert_id=str(existing.id),
            user_id=str(user_id),
            trigger_method=trigger_method.value,
        )
        return existing, False

    alert = Alert(
        id=uuid.uuid4(),
        user_id=user_id,
        latitude=location.latitude,
        longitude=location.longitude,
        address=location.address,
        trigger_method=trigger_method,
        alert_message=message,
        audio_recording=audio_ref,
        triggered_at=now,
        status=AlertStatus.ACTIVE,
        verification_status=VerificationStatus.PENDING,
        updated_at=now,
    )
    db.add(alert)
    await db.commit()

    logger.info(
        "SOS alert created",
        alert_id=str(alert.id),
        user_id=str(user_id),
        trigger_method=trigger_method.value,
    )
    return alert, True


async def cancel(
    db: AsyncSession,
    alert_id: uuid.UUID,
    requester_id: uuid.UUID,
    now: datetime | None = None,
) -> Alert:
    """Cancel an open alert on behalf of its owner.

    Raises:
        NotFoundError: Unknown alert.
        ForbiddenError: Requester is not the owner.
        ConflictError: Alert is already terminal (including already canceled).
    """
    alert = await get_alert_for_update(db, alert_id)
    if alert.user_id != requester_id:
        raise ForbiddenError(
            "Only the user who raised the alert can cancel it",
            details={"alert_id": str(alert_id)},
        )
    ensure_open(alert, "cancel")

    alert.status = AlertStatus.CANCELED
    alert.canceled_at = now or utcnow()
    await db.commit()

    logger.info("SOS alert canceled", alert_id=str(alert.id), user_id=str(requester_id))
    return alert


async def resolve(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    notes: str | None = None,
    now: datetime | None = None,
) -> Alert:
    """Resolve an alert; only its accepted / en-route / arrived responder may.

    Raises:
        NotFoundError: Unknown alert.
        ConflictError: Alert is already terminal.
        ForbiddenError: Responder does not hold the alert.
    """
    now = now or utcnow()
    alert = await get_alert_for_update(db, alert_id)
    ensure_open(alert, "resolve")
    assignment = await _get_active_assignment(db, alert, responder_id, "resolve")

    alert.status = AlertStatus.RESOLVED
    alert.resolved_at = now
    assignment.status = ResponderStatus.RESOLVED
    if assignment.arrival_time is None:
        assignment.arrival_time = now
    if notes:
        assignment.notes = notes
    await set_responder_availability(db, responder_id, AvailabilityStatus.AVAILABLE)
    await db.commit()

    logger.info(
        "SOS alert resolved",
        alert_id=str(alert.id),
        responder_id=str(responder_id),
    )
    return alert


async def mark_false_alarm(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    notes: str | None = None,
) -> Alert:
    """Close an alert as a false alarm and reject its verification.

    Raises:
        NotFoundError: Unknown alert.
        ConflictError: Alert is already terminal.
        ForbiddenError: Responder does not hold the alert.
    """
    alert = await get_alert_for_update(db, alert_id)
    ensure_open(alert, "mark as false alarm")
    assignment = await _get_active_assignment(db, alert, responder_id, "mark as false alarm")

    alert.status = AlertStatus.FALSE_ALARM
    alert.verification_status = VerificationStatus.REJECTED
    assignment.status = ResponderStatus.RESOLVED
    if notes:
        assignment.notes = notes
    await set_responder_availability(db, responder_id, AvailabilityStatus.AVAILABLE)
    await db.commit()

    logger.info(
        "SOS alert marked as false alarm",
        alert_id=str(alert.id),
        responder_id=str(responder_id),
    )
    return alert


async def mark_critical(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    *,
    sender: NotificationSender = send_notification,
) -> Alert:
    """Flag an open alert CRITICAL and escalate to emergency services.

    Any responder who was notified of the alert may do this. Re-flagging a
    CRITICAL alert is a no-op and does not escalate again. Timestamps are
    untouched.

    Raises:
        NotFoundError: Unknown alert.
        ForbiddenError: Responder was never notified of the alert.
        ConflictError: Alert is already terminal.
    """
    alert = await get_alert_for_update(db, alert_id)
    assignment = await get_assignment(db, alert_id, responder_id)
    if assignment is None:
        raise ForbiddenError(
            "Only responders notified of this alert can escalate it",
            details={"alert_id": str(alert_id), "responder_id": str(responder_id)},
        )
    ensure_open(alert, "escalate")
    if alert.status == AlertStatus.CRITICAL:
        await db.commit()
        return alert

    alert.status = AlertStatus.CRITICAL
    await db.commit()
    logger.warning(
        "SOS alert marked critical",
        alert_id=str(alert.id),
        responder_id=str(responder_id),
    )

    await notification_dispatcher.escalate_critical(db, alert, sender=sender)
    return alert


async def verify(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
) -> Alert:
    """Mark the alert as confirmed genuine. Status is not changed.

    Raises:
        NotFoundError: Unknown alert.
        ForbiddenError: Responder was never notified of the alert.
    """
    alert = await get_alert_for_update(db, alert_id)
    if await get_assignment(db, alert_id, responder_id) is None:
        raise ForbiddenError(
            "Only responders notified of this alert can verify it",
            details={"alert_id": str(alert_id), "responder_id": str(responder_id)},
        )
    if alert.verification_status != VerificationStatus.VERIFIED:
        alert.verification_status = VerificationStatus.VERIFIED
        logger.info("SOS alert verified", alert_id=str(alert.id), responder_id=str(responder_id))
    await db.commit()
    return alert


async def expire(
    db: AsyncSession,
    alert_id: uuid.UUID,
) -> Alert:
    """System transition used by maintenance: open -> EXPIRED.

    Already-terminal alerts are returned unchanged (silent no-op).

    Raises:
        NotFoundError: Unknown alert.
    """
    alert = await get_alert_for_update(db, alert_id)
    if alert.status not in OPEN_ALERT_STATUSES:
        await db.commit()
        return alert

    alert.status = AlertStatus.EXPIRED
    await db.commit()
    logger.info("SOS alert expired", alert_id=str(alert.id), user_id=str(alert.user_id))
    return alert
