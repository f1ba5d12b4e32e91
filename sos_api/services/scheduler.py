"""Background maintenance scheduler.

Wraps an APScheduler ``AsyncIOScheduler`` in an object whose start/stop is
driven by the FastAPI lifespan. Jobs open their own database session per
run and delegate to ``sos_api.services.maintenance``.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from sos_api.config import settings
from sos_api.database import get_db_session
from sos_api.logging_config import get_logger
from sos_api.services import maintenance

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class MaintenanceScheduler:
    """Owns the APScheduler instance and the maintenance jobs."""

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self._session_factory = session_factory
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def run_alert_expiry(self) -> maintenance.SweepResult:
        """Job body: expire stale alerts."""
        async with self._session_factory() as db:
            return await maintenance.expire_stale_alerts(db)

    async def run_account_cleanup(self) -> maintenance.SweepResult:
        """Job body: delete stale unverified accounts."""
        async with self._session_factory() as db:
            return await maintenance.cleanup_unverified_accounts(db)

    def start(self) -> AsyncIOScheduler:
        """Create the scheduler, register jobs and start it.

        Must be called from within a running event loop.
        """
        if self._scheduler is not None:
            logger.warning("Maintenance scheduler already running")
            return self._scheduler

        scheduler = AsyncIOScheduler()

        scheduler.add_job(
            self.run_alert_expiry,
            trigger=IntervalTrigger(minutes=settings.alert_expiry_check_interval_minutes),
            id="alert_expiry",
            name="SOS Alert Expiry",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Scheduled alert expiry job",
            interval_minutes=settings.alert_expiry_check_interval_minutes,
            expiry_hours=settings.alert_expiry_hours,
        )

        if settings.account_cleanup_enabled:
            scheduler.add_job(
                self.run_account_cleanup,
                trigger=IntervalTrigger(hours=settings.account_cleanup_interval_hours),
                id="unverified_account_cleanup",
                name="Unverified Account Cleanup",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(
                "Scheduled unverified account cleanup job",
                interval_hours=settings.account_cleanup_interval_hours,
                max_age_days=settings.unverified_account_max_age_days,
            )

        scheduler.start()
        self._scheduler = scheduler
        logger.info("Maintenance scheduler started")
        return scheduler

    def stop(self) -> None:
        """Shut the scheduler down without waiting for running jobs."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Maintenance scheduler stopped")

    def get_job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]
