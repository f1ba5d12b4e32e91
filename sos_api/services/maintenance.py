"""Scheduled maintenance sweeps.

- Alert expiry: open alerts older than ``alert_expiry_hours`` become EXPIRED.
- Account cleanup: unverified accounts older than
  ``unverified_account_max_age_days`` are deleted unless they have alert
  history.

Each sweep holds its own lock; a tick that starts while the previous one is
still running is skipped rather than run concurrently on the same rows.
Per-item failures are logged and counted, never allowed to stop the sweep.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.config import settings
from sos_api.logging_config import get_logger, log_context
from sos_api.models.alert import OPEN_ALERT_STATUSES, Alert
from sos_api.models.alert_responder import AlertResponder
from sos_api.models.base import utcnow
from sos_api.models.responder import Responder
from sos_api.models.trusted_contact import TrustedContact
from sos_api.models.user import User
from sos_api.models.user_settings import UserSettings
from sos_api.services import alert_lifecycle

logger = get_logger(__name__)

_expiry_lock = asyncio.Lock()
_cleanup_lock = asyncio.Lock()


@dataclass
class SweepResult:
    """Counts from one maintenance sweep."""

    processed_count: int = 0
    error_count: int = 0
    skipped: bool = False


async def find_stale_alert_ids(
    db: AsyncSession,
    now: datetime | None = None,
) -> list[uuid.UUID]:
    """IDs of open alerts triggered before the expiry threshold."""
    cutoff = (now or utcnow()) - timedelta(hours=settings.alert_expiry_hours)
    result = await db.execute(
        select(Alert.id)
        .where(
            Alert.status.in_(OPEN_ALERT_STATUSES),
            Alert.triggered_at < cutoff,
        )
        .order_by(Alert.triggered_at)
    )
    return list(result.scalars().all())


async def expire_stale_alerts(
    db: AsyncSession,
    now: datetime | None = None,
) -> SweepResult:
    """Expire every open alert older than the configured threshold."""
    if _expiry_lock.locked():
        logger.warning("Alert expiry sweep already running, skipping this tick")
        return SweepResult(skipped=True)

    async with _expiry_lock:
        sweep = SweepResult()
        stale_ids = await find_stale_alert_ids(db, now)
        if not stale_ids:
            logger.debug("No stale alerts to expire")
            return sweep

        for alert_id in stale_ids:
            with log_context(alert_id=str(alert_id)):
                try:
                    await alert_lifecycle.expire(db, alert_id)
                    sweep.processed_count += 1
                except Exception as e:
                    await db.rollback()
                    logger.error("Failed to expire alert", error=str(e))
                    sweep.error_count += 1

        logger.info(
            "Alert expiry sweep completed",
            expired_count=sweep.processed_count,
            error_count=sweep.error_count,
        )
        return sweep


async def find_stale_unverified_user_ids(
    db: AsyncSession,
    now: datetime | None = None,
) -> list[uuid.UUID]:
    """Unverified accounts past the age limit with no alert history."""
    cutoff = (now or utcnow()) - timedelta(days=settings.unverified_account_max_age_days)
    result = await db.execute(
        select(User.id).where(
            User.is_verified.is_(False),
            User.created_at < cutoff,
            ~exists().where(Alert.user_id == User.id),
            ~exists().where(AlertResponder.responder_id == User.id),
        )
    )
    return list(result.scalars().all())


async def cleanup_unverified_accounts(
    db: AsyncSession,
    now: datetime | None = None,
) -> SweepResult:
    """Delete stale unverified accounts and the rows that hang off them."""
    if _cleanup_lock.locked():
        logger.warning("Account cleanup already running, skipping this tick")
        return SweepResult(skipped=True)

    async with _cleanup_lock:
        sweep = SweepResult()
        for user_id in await find_stale_unverified_user_ids(db, now):
            with log_context(user_id=str(user_id)):
                try:
                    await db.execute(delete(UserSettings).where(UserSettings.user_id == user_id))
                    await db.execute(delete(TrustedContact).where(TrustedContact.user_id == user_id))
                    await db.execute(delete(Responder).where(Responder.id == user_id))
                    await db.execute(delete(User).where(User.id == user_id))
                    await db.commit()
                    sweep.processed_count += 1
                except Exception as e:
                    await db.rollback()
                    logger.error("Failed to delete unverified account", error=str(e))
                    sweep.error_count += 1

        logger.info(
            "Unverified account cleanup completed",
            deleted_count=sweep.processed_count,
            error_count=sweep.error_count,
        )
        return sweep
