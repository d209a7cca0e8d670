"""
Auto-sync scheduler using APScheduler.
"""

import logging
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..exceptions import ConfigurationError, SyncAppException, create_error_context
from ..sync.service import SyncService
from ..sync.state import SyncState

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "auto-sync"


class AutoSyncScheduler:
    """Runs the auto-sync tick on a fixed interval while enabled."""

    def __init__(self,
                 service: SyncService,
                 state: SyncState,
                 interval_minutes: int = 60,
                 timezone: str = "UTC"):
        """Initialize the scheduler.

        Args:
            service: Sync service that performs the backup
            state: Shared sync state (holds the persisted enabled flag)
            interval_minutes: Minutes between ticks
            timezone: Timezone for the APScheduler instance
        """
        self.service = service
        self.state = state
        self.interval_minutes = interval_minutes

        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_armed(self) -> bool:
        return self._running and self.scheduler.get_job(AUTO_SYNC_JOB_ID) is not None

    async def start(self) -> None:
        """Start APScheduler and re-arm auto-sync if it was enabled before."""
        if self._running:
            logger.warning("Auto-sync scheduler already running")
            return

        self.scheduler.start()
        self._running = True

        if self.state.auto_sync_enabled:
            self._arm()

        logger.info(
            f"Auto-sync scheduler started (enabled={self.state.auto_sync_enabled}, "
            f"interval={self.interval_minutes}m)"
        )

    async def stop(self, wait: bool = False) -> None:
        """Stop the scheduler.

        Args:
            wait: Wait for a running tick to complete
        """
        if not self._running:
            return

        self.scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Auto-sync scheduler stopped")

    def enable(self) -> None:
        """Turn auto-sync on and arm the recurring job."""
        self.state.set_auto_sync_enabled(True)
        if self._running:
            self._arm()

    def disable(self) -> None:
        """Turn auto-sync off and remove the recurring job."""
        self.state.set_auto_sync_enabled(False)
        self._disarm()

    def set_interval(self, minutes: int) -> None:
        """Change the tick interval, re-arming the job when enabled.

        Raises:
            ConfigurationError: ``minutes`` is not positive
        """
        if minutes < 1:
            raise ConfigurationError(
                message=f"Invalid auto-sync interval: {minutes}",
                error_code="INVALID_SYNC_INTERVAL",
                context=create_error_context(operation="set_interval", minutes=minutes),
                user_message="The sync interval must be at least one minute.",
            )

        self.interval_minutes = minutes
        if self.state.auto_sync_enabled and self._running:
            self._disarm()
            self._arm()
        logger.info(f"Auto-sync interval set to {minutes} minutes")

    def _arm(self) -> None:
        # coalesce=True so ticks missed while suspended run once
        self.scheduler.add_job(
            func=self._run_tick,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=AUTO_SYNC_JOB_ID,
            name="Auto-sync backup",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=300,
            coalesce=True,
        )
        logger.debug(f"Auto-sync armed every {self.interval_minutes} minutes")

    def _disarm(self) -> None:
        if not self._running:
            return
        try:
            self.scheduler.remove_job(AUTO_SYNC_JOB_ID)
        except JobLookupError:
            pass

    async def _run_tick(self) -> None:
        """One scheduled tick; errors end here so later ticks still run."""
        try:
            await self.service.run_auto_sync()
        except SyncAppException as e:
            logger.error(f"Auto-sync failed: {e.to_log_string()}")
        except Exception:
            logger.exception("Auto-sync failed with an unexpected error")
