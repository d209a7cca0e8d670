"""
Online/offline detection by periodically connecting to the Drive API host.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .state import SyncState

logger = logging.getLogger(__name__)

ReachabilityCheck = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Keeps ``SyncState.is_online`` current."""

    def __init__(self, state: SyncState, host: str = "www.googleapis.com", port: int = 443,
                 interval_seconds: float = 30.0, timeout_seconds: float = 5.0,
                 reachable: Optional[ReachabilityCheck] = None):
        self.state = state
        self.host = host
        self.port = port
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._reachable = reachable or self._tcp_connect
        self._task: Optional[asyncio.Task] = None

    async def _tcp_connect(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def check(self) -> bool:
        """Test reachability once and update the shared state."""
        online = await self._reachable()
        if online != self.state.is_online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        self.state.set_online(online)
        return online

    async def _run(self) -> None:
        while True:
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Connectivity check failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is not None:
            logger.warning("Connectivity monitor already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
