"""
Sync coordination shared by manual actions and the auto-sync scheduler.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from ..drive.models import BackupPage
from ..exceptions import SyncInProgressError
from .backup import BackupEngine
from .state import OAUTH_COMPLETED, RESTART_SCHEDULED, SyncState

logger = logging.getLogger(__name__)

RESTART_DELAY_SECONDS = 1.5


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncService:
    """
    Entry point for every sync operation.

    Backups, scheduled ticks and restores share one gate. Whoever finds it
    held does not wait: manual operations raise ``SyncInProgressError`` and
    scheduled ticks are skipped.
    """

    def __init__(self, auth, drive, engine: BackupEngine, state: SyncState,
                 on_restart_required: Optional[Callable[[], None]] = None,
                 restart_delay: float = RESTART_DELAY_SECONDS):
        """
        Initialize the sync service.

        Args:
            auth: GoogleOAuthFlow
            drive: DriveClient (its folder cache is dropped on logout)
            engine: Backup engine
            state: Shared sync state
            on_restart_required: Called after a restore once the delay elapses
            restart_delay: Seconds between a completed restore and the restart
        """
        self.auth = auth
        self.drive = drive
        self.engine = engine
        self.state = state
        self.on_restart_required = on_restart_required
        self.restart_delay = restart_delay
        self._sync_gate = asyncio.Lock()
        self._restart_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_busy(self) -> bool:
        return self._sync_gate.locked()

    @asynccontextmanager
    async def _hold_gate(self, operation: str) -> AsyncIterator[None]:
        if self._sync_gate.locked():
            raise SyncInProgressError(operation)
        async with self._sync_gate:
            yield

    async def connect(self, timeout: Optional[float] = None) -> None:
        """Run the interactive Google authorization."""
        await self.auth.authenticate(timeout=timeout)
        self.drive.clear_cache()
        self.state.notify(OAUTH_COMPLETED, {"authenticated": True})

    async def disconnect(self) -> None:
        """Forget stored credentials."""
        await self.auth.logout()
        self.drive.clear_cache()
        self.state.notify(OAUTH_COMPLETED, {"authenticated": False})

    async def is_authenticated(self) -> bool:
        return await self.auth.is_authenticated()

    async def sync_now(self) -> str:
        """
        Run a manual backup.

        Returns:
            Id of the new backup entry

        Raises:
            SyncInProgressError: Another sync or restore is running
        """
        async with self._hold_gate("sync_now"):
            self.state.set_syncing(True)
            try:
                entry_id = await self.engine.upload_backup()
            finally:
                self.state.set_syncing(False)

            self.state.set_last_synced_entry_id(entry_id)
            self.state.set_last_sync_time(_now_ms())
            return entry_id

    async def run_auto_sync(self) -> Optional[str]:
        """
        Run one scheduled backup if conditions allow.

        Returns:
            The new entry id, or None when the tick was skipped
        """
        if not self.state.is_online:
            logger.debug("Auto-sync skipped: offline")
            return None

        if not await self.auth.is_authenticated():
            logger.debug("Auto-sync skipped: not authenticated")
            return None

        if self._sync_gate.locked():
            logger.info("Auto-sync skipped: a sync is already in progress")
            return None

        async with self._sync_gate:
            logger.info("Auto-sync started")
            self.state.set_auto_syncing(True)
            try:
                entry_id = await self.engine.upload_backup()
            finally:
                self.state.set_auto_syncing(False)

            self.state.set_last_synced_entry_id(entry_id)
            self.state.set_last_sync_time(_now_ms())
            logger.info(f"Auto-sync completed: {entry_id}")
            return entry_id

    async def list_backups(self, page_token: Optional[str] = None, page_size: int = 10) -> BackupPage:
        return await self.engine.list_backups(page_token=page_token, page_size=page_size)

    async def restore(self, entry_id: str) -> None:
        """
        Restore ``entry_id`` over the live store and schedule a restart.

        Raises:
            SyncInProgressError: Another sync or restore is running
        """
        async with self._hold_gate("restore"):
            self.state.set_syncing(True)
            try:
                await self.engine.restore_backup(entry_id)
            finally:
                self.state.set_syncing(False)

            self.state.set_last_synced_entry_id(entry_id)

        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if self.on_restart_required is None:
            logger.warning("Restore completed but no restart handler is registered")
            return

        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(self.restart_delay, self.on_restart_required)
        self.state.notify(RESTART_SCHEDULED, {"delay_seconds": self.restart_delay})
        logger.info(f"Application restart scheduled in {self.restart_delay}s")
