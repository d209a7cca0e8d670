"""
Main application entry point for SGMC Sync.

This module wires together:
- Configuration and logging
- Credential store and Google OAuth flow
- Drive client, local store and backup engine
- Sync state, auto-sync scheduler and connectivity monitor
- Local control API
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from .api import ControlServer
from .auth import CredentialStore, GoogleOAuthFlow
from .config import AppConfig, load_config
from .drive import DriveClient
from .exceptions import handle_unexpected_error
from .scheduling import AutoSyncScheduler
from .store import LocalStore
from .sync import (
    AttachmentSync,
    BackupEngine,
    ConnectivityMonitor,
    SyncService,
    SyncState,
)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_path: Optional[Path] = None) -> None:
    """Configure root logging with stdout and an optional file handler."""
    log_handlers = [logging.StreamHandler(sys.stdout)]
    if log_path is not None:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_handlers.append(logging.FileHandler(str(log_path)))
        except OSError:
            # File logging not available, use stdout only
            pass

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=log_handlers, force=True)

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class SyncApp:
    """Main application class for SGMC Sync."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config
        self.credential_store: Optional[CredentialStore] = None
        self.auth: Optional[GoogleOAuthFlow] = None
        self.drive: Optional[DriveClient] = None
        self.local_store: Optional[LocalStore] = None
        self.engine: Optional[BackupEngine] = None
        self.state: Optional[SyncState] = None
        self.service: Optional[SyncService] = None
        self.scheduler: Optional[AutoSyncScheduler] = None
        self.connectivity: Optional[ConnectivityMonitor] = None
        self.control_server: Optional[ControlServer] = None
        self.running = False
        self.restart_requested = False
        self._stop_event: Optional[asyncio.Event] = None
        self.logger = logging.getLogger(__name__)

    async def initialize(self) -> None:
        """Initialize all application components."""
        try:
            if self.config is None:
                self.config = load_config()

            setup_logging(self.config.log_level.value, self.config.log_path)
            self.logger.info("Initializing SGMC Sync...")

            config = self.config
            config.data_dir.mkdir(parents=True, exist_ok=True)

            self.credential_store = CredentialStore(
                config.token_store_path,
                encryption_key=config.token_encryption_key,
            )
            self.auth = GoogleOAuthFlow(config.oauth, self.credential_store)
            self.drive = DriveClient(self.auth)
            self.local_store = LocalStore(config.db_path)

            attachments = AttachmentSync(
                self.drive,
                config.attachments_dir,
                upload_batch_size=config.sync.upload_batch_size,
                download_batch_size=config.sync.download_batch_size,
            )
            self.engine = BackupEngine(self.auth, self.drive, self.local_store, attachments)

            self.state = SyncState.load(config.sync_state_path)
            self.service = SyncService(
                self.auth,
                self.drive,
                self.engine,
                self.state,
                on_restart_required=self.request_restart,
            )
            self.scheduler = AutoSyncScheduler(
                self.service,
                self.state,
                interval_minutes=config.sync.interval_minutes,
            )
            self.connectivity = ConnectivityMonitor(
                self.state,
                host=config.sync.connectivity_check_host,
                interval_seconds=config.sync.connectivity_check_seconds,
            )

            if config.control_api.enabled:
                self.control_server = ControlServer(
                    config.control_api, self.service, self.scheduler,
                    token_path=config.control_token_path,
                )

            self.logger.info(f"Local store: {config.db_path}")
            self.logger.info(f"Attachments: {config.attachments_dir}")
            self.logger.info("All components initialized successfully")

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to initialize application: {error.to_log_string()}")
            raise

    async def start(self) -> None:
        """Start background components and block until stopped."""
        if self.service is None:
            await self.initialize()

        self._stop_event = asyncio.Event()
        self.running = True

        await self.connectivity.check()
        self.connectivity.start()
        await self.scheduler.start()
        if self.control_server:
            await self.control_server.start_server()

        self.logger.info("SGMC Sync started")
        await self._stop_event.wait()

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def request_restart(self) -> None:
        """Stop the app; ``main`` re-executes the process afterwards."""
        self.logger.info("Restart requested")
        self.restart_requested = True
        self.request_stop()

    async def stop(self) -> None:
        """Stop all components."""
        if not self.running:
            return

        self.logger.info("Stopping SGMC Sync...")
        self.running = False

        if self.control_server:
            await self.control_server.stop_server()
        if self.scheduler:
            await self.scheduler.stop()
        if self.connectivity:
            await self.connectivity.stop()
        if self.drive:
            await self.drive.close()

        self.logger.info("SGMC Sync stopped")


def relaunch() -> None:
    """Replace the current process with a fresh instance of the app."""
    os.execv(sys.executable, [sys.executable, "-m", "sgmc_sync", *sys.argv[1:]])


async def main() -> bool:
    """Run the application. Returns True when a restart was requested."""
    app = SyncApp()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.request_stop)
        except NotImplementedError:
            # Windows event loops lack add_signal_handler
            pass

    try:
        await app.start()
    finally:
        await app.stop()

    return app.restart_requested


def run() -> None:
    """Console script entry point."""
    try:
        restart = asyncio.run(main())
    except KeyboardInterrupt:
        return

    if restart:
        relaunch()
