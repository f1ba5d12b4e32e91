"""Notification fan-out for SOS alerts.

Dispatch reads the owner's shareable trusted contacts and nearby available
responders, records one PENDING ``AlertNotification`` per recipient, sends
to all of them concurrently with a per-recipient timeout and an overall
deadline, then settles every row as NOTIFIED or FAILED. A failure for one
recipient never affects the others and is never raised to the caller.
"""

import asyncio
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.config import settings
from sos_api.core.errors import DependencyError
from sos_api.core.location import Location
from sos_api.logging_config import get_logger, log_context
from sos_api.models.alert import Alert
from sos_api.models.alert_notification import (
    AlertNotification,
    DeliveryStatus,
    RecipientType,
)
from sos_api.models.alert_responder import AlertResponder, ResponderStatus
from sos_api.models.base import utcnow
from sos_api.models.responder import AvailabilityStatus, Responder, ResponderType
from sos_api.models.trusted_contact import TrustedContact
from sos_api.models.user import User
from sos_api.services.notification_channel import (
    NotificationSender,
    Recipient,
    send_notification,
)

logger = get_logger(__name__)

DEADLINE_EXCEEDED = "dispatch deadline exceeded"


@dataclass
class DispatchResult:
    """Outcome of one fan-out."""

    alert_id: uuid.UUID
    notified_count: int = 0
    failed_count: int = 0
    notification_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def attempted_count(self) -> int:
        return self.notified_count + self.failed_count


@dataclass
class NearbyResponder:
    """An available responder and their distance to the alert, if known."""

    responder: Responder
    user: User
    distance_km: float | None


async def list_shareable_contacts(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> list[TrustedContact]:
    """Trusted contacts of ``user_id`` who opted into location sharing."""
    result = await db.execute(
        select(TrustedContact)
        .where(
            TrustedContact.user_id == user_id,
            TrustedContact.share_location.is_(True),
        )
        .order_by(TrustedContact.created_at)
    )
    return list(result.scalars().all())


async def list_available_responders(
    db: AsyncSession,
    location: Location | None = None,
    responder_types: Iterable[ResponderType] | None = None,
    exclude_ids: Iterable[uuid.UUID] = (),
    limit: int | None = None,
    radius_km: float | None = None,
) -> list[NearbyResponder]:
    """Active, AVAILABLE responders ordered nearest first.

    Responders without a reported position sort after every located one.
    When ``radius_km`` is positive, located responders further away than
    that are dropped; unlocated responders are kept.

    Args:
        db: Database session.
        location: Alert position used for ordering; None keeps directory order.
        responder_types: Restrict to these types.
        exclude_ids: Responders to leave out (already notified).
        limit: Maximum number of responders returned.
        radius_km: Optional proximity cut-off.
    """
    query = (
        select(Responder, User)
        .join(User, User.id == Responder.id)
        .where(
            Responder.is_active.is_(True),
            Responder.availability_status == AvailabilityStatus.AVAILABLE,
        )
    )
    if responder_types is not None:
        query = query.where(Responder.responder_type.in_(list(responder_types)))
    excluded = list(exclude_ids)
    if excluded:
        query = query.where(Responder.id.not_in(excluded))

    result = await db.execute(query.order_by(Responder.created_at))

    candidates: list[NearbyResponder] = []
    for responder, user in result.all():
        distance = None
        if location is not None and responder.location is not None:
            distance = location.distance_km(responder.location)
        if radius_km and distance is not None and distance > radius_km:
            continue
        candidates.append(NearbyResponder(responder, user, distance))

    candidates.sort(key=lambda c: (c.distance_km is None, c.distance_km or 0.0))
    if limit is not None:
        candidates = candidates[:limit]
    return candidates


async def get_notified_responder_ids(db: AsyncSession, alert_id: uuid.UUID) -> set[uuid.UUID]:
    """IDs of responders holding any assignment row on the alert."""
    result = await db.execute(
        select(AlertResponder.responder_id).where(AlertResponder.alert_id == alert_id)
    )
    return set(result.scalars().all())


def build_alert_message(alert: Alert, owner: User | None, reason: str = "new") -> str:
    """Human-readable notification text for an alert."""
    who = owner.display_name if owner else "A user"
    where = f"{alert.latitude:.5f}, {alert.longitude:.5f}"
    if alert.address:
        where = f"{alert.address} ({where})"

    if reason == "critical":
        headline = f"CRITICAL SOS: {who} needs emergency services now."
    elif reason == "forwarded":
        headline = f"SOS forwarded to you: {who} needs help."
    else:
        headline = f"SOS ALERT: {who} needs help."

    lines = [
        headline,
        f"Location: {where}",
        f"Map: https://maps.google.com/?q={alert.latitude},{alert.longitude}",
    ]
    if alert.alert_message:
        lines.append(f"Message: {alert.alert_message}")
    if owner is not None and owner.phone:
        lines.append(f"Contact them at {owner.phone}.")
    return "\n".join(lines)


def _contact_recipient(contact: TrustedContact) -> Recipient:
    return Recipient(
        recipient_type=RecipientType.TRUSTED_CONTACT,
        name=contact.name,
        phone=contact.phone,
        email=contact.email,
        contact_id=contact.id,
    )


def _responder_recipient(
    nearby: NearbyResponder,
    recipient_type: RecipientType = RecipientType.RESPONDER,
) -> Recipient:
    return Recipient(
        recipient_type=recipient_type,
        name=nearby.user.display_name,
        phone=nearby.user.phone,
        email=nearby.user.email,
        user_id=nearby.user.id,
        responder_id=nearby.responder.id,
        distance_km=nearby.distance_km,
    )


async def deliver(
    db: AsyncSession,
    alert: Alert,
    recipients: Sequence[Recipient],
    message: str,
    *,
    sender: NotificationSender = send_notification,
    recipient_timeout: float | None = None,
    total_timeout: float | None = None,
    max_concurrency: int | None = None,
) -> DispatchResult:
    """Send ``message`` to every recipient and persist one row per attempt.

    Rows are committed as PENDING before any send starts so the audit trail
    exists even if the process dies mid-dispatch. Sends run concurrently
    (bounded by ``max_concurrency``); each is cut off after
    ``recipient_timeout`` and anything still running at ``total_timeout`` is
    cancelled and recorded as failed. Responders who were reached get a
    PENDING assignment on the alert if they do not already have one.
    """
    result = DispatchResult(alert_id=alert.id)
    if not recipients:
        logger.info("No recipients to notify", alert_id=str(alert.id))
        return result

    recipient_timeout = recipient_timeout or settings.dispatch_recipient_timeout_seconds
    total_timeout = total_timeout or settings.dispatch_total_timeout_seconds
    semaphore = asyncio.Semaphore(max_concurrency or settings.dispatch_max_concurrency)

    now = utcnow()
    rows = [
        AlertNotification(
            id=uuid.uuid4(),
            alert_id=alert.id,
            contact_id=recipient.contact_id,
            responder_id=recipient.responder_id,
            recipient_type=recipient.recipient_type,
            recipient_name=recipient.name,
            status=DeliveryStatus.PENDING,
            notification_time=now,
        )
        for recipient in recipients
    ]
    db.add_all(rows)
    await db.commit()

    async def attempt(recipient: Recipient) -> str | None:
        async with semaphore:
            try:
                await asyncio.wait_for(sender(recipient, message), timeout=recipient_timeout)
            except TimeoutError:
                return f"timed out after {recipient_timeout:g}s"
            except DependencyError as exc:
                return exc.reason or exc.message
        return None

    tasks = [asyncio.create_task(attempt(recipient)) for recipient in recipients]
    _, still_running = await asyncio.wait(tasks, timeout=total_timeout)
    for task in still_running:
        task.cancel()
    if still_running:
        await asyncio.gather(*still_running, return_exceptions=True)
        logger.warning(
            "Dispatch deadline reached, remaining sends marked failed",
            alert_id=str(alert.id),
            unfinished=len(still_running),
            total_timeout=total_timeout,
        )

    for row, task, recipient in zip(rows, tasks, recipients):
        if task.cancelled():
            error: str | None = DEADLINE_EXCEEDED
        elif task.exception() is not None:
            exc = task.exception()
            logger.error(
                "Unexpected error delivering notification",
                alert_id=str(alert.id),
                recipient=recipient.name,
                error=repr(exc),
            )
            error = str(exc) or type(exc).__name__
        else:
            error = task.result()

        row.status = DeliveryStatus.NOTIFIED if error is None else DeliveryStatus.FAILED
        row.error_message = error
        result.notification_ids.append(row.id)
        if error is None:
            result.notified_count += 1
            if recipient.responder_id is not None:
                await _ensure_assignment(db, alert.id, recipient.responder_id)
        else:
            result.failed_count += 1
            logger.warning(
                "Notification delivery failed",
                alert_id=str(alert.id),
                recipient_type=recipient.recipient_type.value,
                recipient=recipient.name,
                error=error,
            )

    await db.commit()
    return result


async def _ensure_assignment(
    db: AsyncSession,
    alert_id: uuid.UUID,
    responder_id: uuid.UUID,
) -> None:
    existing = await db.get(AlertResponder, (alert_id, responder_id))
    if existing is None:
        db.add(
            AlertResponder(
                alert_id=alert_id,
                responder_id=responder_id,
                status=ResponderStatus.PENDING,
                notified_at=utcnow(),
            )
        )


async def dispatch(
    db: AsyncSession,
    alert: Alert,
    *,
    sender: NotificationSender = send_notification,
    recipient_timeout: float | None = None,
    total_timeout: float | None = None,
) -> DispatchResult:
    """Notify the owner's trusted contacts and the nearest available responders.

    Returns:
        DispatchResult with per-outcome counts. Zero recipients is a normal
        outcome (``notified_count == 0``), not an error.
    """
    with log_context(alert_id=str(alert.id), user_id=str(alert.user_id)):
        owner = await db.get(User, alert.user_id)
        contacts = await list_shareable_contacts(db, alert.user_id)
        responders = await list_available_responders(
            db,
            location=alert.location,
            exclude_ids=[alert.user_id],
            limit=settings.dispatch_max_responders,
            radius_km=settings.dispatch_radius_km or None,
        )

        recipients = [_contact_recipient(c) for c in contacts]
        recipients += [_responder_recipient(r) for r in responders]

        logger.info(
            "Dispatching alert",
            contact_count=len(contacts),
            responder_count=len(responders),
        )
        result = await deliver(
            db,
            alert,
            recipients,
            build_alert_message(alert, owner),
            sender=sender,
            recipient_timeout=recipient_timeout,
            total_timeout=total_timeout,
        )
        logger.info(
            "Alert dispatch completed",
            notified_count=result.notified_count,
            failed_count=result.failed_count,
        )
        return result


async def escalate_critical(
    db: AsyncSession,
    alert: Alert,
    *,
    sender: NotificationSender = send_notification,
) -> DispatchResult:
    """Notify emergency-service responders not yet involved in the alert.

    Recipients are available responders of the configured escalation types
    (police and medical by default) within ``dispatch_radius_km`` when set,
    recorded as ``emergency_service``.
    """
    with log_context(alert_id=str(alert.id)):
        escalation_types = [
            ResponderType(value.upper()) for value in settings.critical_escalation_responder_types
        ]
        already_notified = await get_notified_responder_ids(db, alert.id)
        responders = await list_available_responders(
            db,
            location=alert.location,
            responder_types=escalation_types,
            exclude_ids=already_notified | {alert.user_id},
            limit=settings.dispatch_max_responders,
            radius_km=settings.dispatch_radius_km or None,
        )
        owner = await db.get(User, alert.user_id)
        recipients = [
            _responder_recipient(r, RecipientType.EMERGENCY_SERVICE) for r in responders
        ]
        result = await deliver(
            db,
            alert,
            recipients,
            build_alert_message(alert, owner, reason="critical"),
            sender=sender,
        )
        logger.info(
            "Critical escalation dispatched",
            notified_count=result.notified_count,
            failed_count=result.failed_count,
        )
        return result


async def notify_responder(
    db: AsyncSession,
    alert: Alert,
    responder_id: uuid.UUID,
    *,
    reason: str = "forwarded",
    sender: NotificationSender = send_notification,
) -> DispatchResult:
    """Send the alert to one specific responder (used when forwarding)."""
    result = await db.execute(
        select(Responder, User)
        .join(User, User.id == Responder.id)
        .where(Responder.id == responder_id)
    )
    row = result.first()
    if row is None:
        return DispatchResult(alert_id=alert.id)

    responder, user = row
    distance = None
    if responder.location is not None:
        distance = alert.location.distance_km(responder.location)
    owner = await db.get(User, alert.user_id)
    return await deliver(
        db,
        alert,
        [_responder_recipient(NearbyResponder(responder, user, distance))],
        build_alert_message(alert, owner, reason=reason),
        sender=sender,
    )
