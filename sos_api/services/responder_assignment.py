"""Responder accept / reject / forward handling.

One responder at a time may hold an alert (ACCEPTED, EN_ROUTE or ARRIVED).
Every operation locks the alert row before reading assignments, and the
accept itself is a conditional UPDATE, so of two responders racing to
accept the same alert only the first succeeds.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from sos_api.core.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from sos_api.logging_config import get_logger
from sos_api.models.alert import Alert, AlertStatus
from sos_api.models.alert_responder import (
    ACTIVE_ASSIGNMENT_STATUSES,
    AlertResponder,
    ResponderStatus,
)
from sos_api.models.base import utcnow
from sos_api.models.responder import AvailabilityStatus, Responder
from sos_api.models.user import User
from sos_api.services import notification_dispatcher
from sos_api.services.alert_lifecycle import (
    ensure_open,
    get_alert_for_update,
    get_assignment,
    set_responder_availability,
)
from sos_api.services.notification_channel import (
    NotificationSender,
    Recipient,
    send_notification,
)

logger = get_logger(__name__)

# Forward-only progress order for update_progress
_PROGRESS_ORDER = {
    ResponderStatus.ACCEPTED: 0,
    ResponderStatus.EN_ROUTE: 1,
    ResponderStatus.ARRIVED: 2,
}


@dataclass
class ForwardResult:
    """Assignments touched by a forward and the re-dispatch outcome."""

    origin: AlertResponder
    target: AlertResponder
    dispatch: notification_dispatcher.DispatchResult


async def _require_assignment(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
) -> AlertResponder:
    assignment = await get_assignment(db, alert_id, responder_id, for_update=True)
    if assignment is None:
        raise NotFoundError("Responder assignment", alert_id=alert_id, responder_id=responder_id)
    return assignment


async def _current_holder(
    db: AsyncSession,
    alert_id: uuid.UUID,
) -> AlertResponder | None:
    result = await db.execute(
        select(AlertResponder)
        .where(
            AlertResponder.alert_id == alert_id,
            AlertResponder.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
        )
        .with_for_update()
    )
    return result.scalars().first()


async def _claim(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    accepted_at: datetime,
) -> bool:
    """Mark the assignment ACCEPTED unless someone already holds the alert.

    A single conditional UPDATE, so it stays atomic even where row locks
    are unavailable.
    """
    holder = aliased(AlertResponder)
    someone_holds = (
        select(holder.responder_id)
        .where(
            holder.alert_id == alert_id,
            holder.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
        )
        .exists()
    )
    result = await db.execute(
        update(AlertResponder)
        .where(
            AlertResponder.alert_id == alert_id,
            AlertResponder.responder_id == responder_id,
            AlertResponder.status.in_([ResponderStatus.PENDING, ResponderStatus.REJECTED]),
            ~someone_holds,
        )
        .values(status=ResponderStatus.ACCEPTED, accepted_at=accepted_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _notify_owner_of_acceptance(
    db: AsyncSession,
    alert: Alert,
    responder_id: uuid.UUID,
    sender: NotificationSender,
) -> None:
    """Tell the alert owner help is coming. Failures are logged only."""
    owner = await db.get(User, alert.user_id)
    responder_user = await db.get(User, responder_id)
    if owner is None:
        return

    responder_name = responder_user.display_name if responder_user else "a responder"
    recipient = Recipient(
        name=owner.display_name,
        phone=owner.phone,
        email=owner.email,
        user_id=owner.id,
    )
    message = (
        f"Emergency Response Accepted: your emergency alert has been accepted by "
        f"{responder_name}. Help is on the way!"
    )
    try:
        await sender(recipient, message)
    except DependencyError as exc:
        logger.warning(
            "Could not notify alert owner of acceptance",
            alert_id=str(alert.id),
            user_id=str(owner.id),
            error=exc.message,
        )


async def accept(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    *,
    now: datetime | None = None,
    sender: NotificationSender = send_notification,
) -> AlertResponder:
    """Take ownership of an alert as its primary responder.

    Accepting an alert already held by this responder is a no-op. A
    CRITICAL alert returns to ACTIVE once someone accepts it. The owner is
    told best-effort after the commit.

    Raises:
        NotFoundError: Unknown alert, or responder was never notified of it.
        ConflictError: Alert is terminal, another responder holds it, or this
            responder already forwarded it.
    """
    alert = await get_alert_for_update(db, alert_id)
    ensure_open(alert, "accept")
    assignment = await _require_assignment(db, alert_id, responder_id)

    if assignment.status in ACTIVE_ASSIGNMENT_STATUSES:
        await db.commit()
        return assignment
    if assignment.status in (ResponderStatus.FORWARDED, ResponderStatus.RESOLVED):
        raise ConflictError(
            f"Cannot accept an alert you have {assignment.status.value.lower()}",
            details={"alert_id": str(alert_id), "status": assignment.status.value},
        )

    holder = await _current_holder(db, alert_id)
    if holder is not None and holder.responder_id != responder_id:
        raise ConflictError(
            "Another responder has already accepted this alert",
            details={"alert_id": str(alert_id), "holder_status": holder.status.value},
        )

    claimed_at = now or utcnow()
    if not await _claim(db, alert_id, responder_id, claimed_at):
        await db.rollback()
        raise ConflictError(
            "Another responder has already accepted this alert",
            details={"alert_id": str(alert_id)},
        )
    await db.refresh(assignment)
    if alert.status == AlertStatus.CRITICAL:
        alert.status = AlertStatus.ACTIVE
    await set_responder_availability(db, responder_id, AvailabilityStatus.BUSY)
    await db.commit()

    logger.info(
        "Responder accepted alert",
        alert_id=str(alert_id),
        responder_id=str(responder_id),
    )
    await _notify_owner_of_acceptance(db, alert, responder_id, sender)
    return assignment


async def reject(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    notes: str | None = None,
) -> AlertResponder:
    """Decline an alert (or back out of one already accepted).

    The alert's status is untouched and other responders may still accept.

    Raises:
        NotFoundError: Unknown alert, or responder was never notified of it.
        ConflictError: The assignment was already forwarded or resolved.
    """
    await get_alert_for_update(db, alert_id)
    assignment = await _require_assignment(db, alert_id, responder_id)

    if assignment.status == ResponderStatus.REJECTED:
        await db.commit()
        return assignment
    if assignment.status in (ResponderStatus.FORWARDED, ResponderStatus.RESOLVED):
        raise ConflictError(
            f"Cannot reject an alert you have {assignment.status.value.lower()}",
            details={"alert_id": str(alert_id), "status": assignment.status.value},
        )

    was_holding = assignment.status in ACTIVE_ASSIGNMENT_STATUSES
    assignment.status = ResponderStatus.REJECTED
    if notes:
        assignment.notes = notes
    if was_holding:
        await set_responder_availability(db, responder_id, AvailabilityStatus.AVAILABLE)
    await db.commit()

    logger.info(
        "Responder rejected alert",
        alert_id=str(alert_id),
        responder_id=str(responder_id),
        was_holding=was_holding,
    )
    return assignment


async def forward(
    db: AsyncSession,
    alert_id: uuid.UUID,
    from_responder_id: uuid.UUID,
    to_responder_id: uuid.UUID,
    notes: str | None = None,
    *,
    sender: NotificationSender = send_notification,
) -> ForwardResult:
    """Hand an accepted alert over to another responder.

    The origin becomes FORWARDED, the target gets a PENDING assignment and
    is notified. The target still has to accept.

    Raises:
        ValidationError: Forwarding to yourself.
        NotFoundError: Unknown alert, origin assignment or target responder.
        ConflictError: Alert is terminal or the origin does not hold ACCEPTED.
    """
    if from_responder_id == to_responder_id:
        raise ValidationError("Cannot forward an alert to yourself", field="to_responder_id")

    alert = await get_alert_for_update(db, alert_id)
    ensure_open(alert, "forward")
    origin = await _require_assignment(db, alert_id, from_responder_id)
    if origin.status != ResponderStatus.ACCEPTED:
        raise ConflictError(
            "Only an accepted alert can be forwarded",
            details={"alert_id": str(alert_id), "status": origin.status.value},
        )

    target_responder = await db.get(Responder, to_responder_id)
    if target_responder is None or not target_responder.is_active:
        raise NotFoundError("Responder", responder_id=to_responder_id)

    now = utcnow()
    origin.status = ResponderStatus.FORWARDED
    if notes:
        origin.notes = notes
    target = await get_assignment(db, alert_id, to_responder_id, for_update=True)
    if target is None:
        target = AlertResponder(
            alert_id=alert_id,
            responder_id=to_responder_id,
            status=ResponderStatus.PENDING,
            notified_at=now,
        )
        db.add(target)
    else:
        target.status = ResponderStatus.PENDING
        target.accepted_at = None
        target.notified_at = now
    await set_responder_availability(db, from_responder_id, AvailabilityStatus.AVAILABLE)
    await db.commit()

    logger.info(
        "Responder forwarded alert",
        alert_id=str(alert_id),
        from_responder_id=str(from_responder_id),
        to_responder_id=str(to_responder_id),
    )
    dispatch_result = await notification_dispatcher.notify_responder(
        db, alert, to_responder_id, reason="forwarded", sender=sender
    )
    return ForwardResult(origin=origin, target=target, dispatch=dispatch_result)


async def update_progress(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
    status: ResponderStatus,
    eta_minutes: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> AlertResponder:
    """Report EN_ROUTE / ARRIVED progress on a held alert.

    Progress only moves forward (ACCEPTED -> EN_ROUTE -> ARRIVED); repeating
    the current step updates ETA and notes. ARRIVED stamps the arrival time.

    Raises:
        ValidationError: Status other than EN_ROUTE / ARRIVED, or negative ETA.
        NotFoundError: Unknown alert or assignment.
        ConflictError: Alert is terminal, responder does not hold it, or the
            step would go backwards.
    """
    if status not in (ResponderStatus.EN_ROUTE, ResponderStatus.ARRIVED):
        raise ValidationError(
            "Progress status must be EN_ROUTE or ARRIVED",
            field="status",
            value=status.value,
        )
    if eta_minutes is not None and eta_minutes < 0:
        raise ValidationError("ETA cannot be negative", field="eta_minutes")

    alert = await get_alert_for_update(db, alert_id)
    ensure_open(alert, "update progress on")
    assignment = await _require_assignment(db, alert_id, responder_id)
    if assignment.status not in ACTIVE_ASSIGNMENT_STATUSES:
        raise ConflictError(
            "Accept the alert before reporting progress",
            details={"alert_id": str(alert_id), "status": assignment.status.value},
        )
    if _PROGRESS_ORDER[status] < _PROGRESS_ORDER[assignment.status]:
        raise ConflictError(
            f"Cannot move from {assignment.status.value} back to {status.value}",
            details={"alert_id": str(alert_id)},
        )

    assignment.status = status
    if eta_minutes is not None:
        assignment.eta_minutes = eta_minutes
    if notes:
        assignment.notes = notes
    if status == ResponderStatus.ARRIVED and assignment.arrival_time is None:
        assignment.arrival_time = now or utcnow()
        assignment.eta_minutes = 0
    await db.commit()

    logger.info(
        "Responder progress updated",
        alert_id=str(alert_id),
        responder_id=str(responder_id),
        status=status.value,
        eta_minutes=assignment.eta_minutes,
    )
    return assignment


async def get_responder_status_for_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
) -> AlertResponder:
    """Current assignment of a responder on an alert.

    Raises:
        NotFoundError: If the responder was never notified of the alert.
    """
    assignment = await get_assignment(db, alert_id, responder_id)
    if assignment is None:
        raise NotFoundError("Responder assignment", alert_id=alert_id, responder_id=responder_id)
    return assignment
