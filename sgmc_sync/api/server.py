"""
Loopback FastAPI server exposing sync controls to the desktop UI.
"""

import asyncio
import logging
import os
import secrets
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config.settings import ControlApiConfig
from ..exceptions import (
    AuthError,
    DriveAPIError,
    NetworkError,
    SyncAppException,
    SyncInProgressError,
)
from ..scheduling.scheduler import AutoSyncScheduler
from ..sync.service import SyncService
from .models import ErrorResponse
from .routes import create_sync_router

logger = logging.getLogger(__name__)


def status_code_for(error: SyncAppException) -> int:
    """HTTP status used to report ``error`` to the UI."""
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, SyncInProgressError):
        return 409
    if isinstance(error, (DriveAPIError, NetworkError)):
        return 502
    return 500


class ControlServer:
    """FastAPI server for the sync control endpoints."""

    def __init__(self,
                 config: ControlApiConfig,
                 service: SyncService,
                 scheduler: AutoSyncScheduler,
                 api_token: Optional[str] = None,
                 token_path: Optional[Path] = None):
        """Initialize control server.

        Args:
            config: Host/port settings
            service: Sync service behind the routes
            scheduler: Auto-sync scheduler behind the routes
            api_token: Bearer token for mutating routes, generated per launch if omitted
            token_path: Where the token is published for the desktop UI while serving
        """
        self.config = config
        self.service = service
        self.scheduler = scheduler
        self.api_token = api_token or secrets.token_urlsafe(32)
        self.token_path = Path(token_path) if token_path else None
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

        self.app = FastAPI(
            title="SGMC Sync API",
            description="Local control API for cloud backup and sync",
            version=__version__,
            docs_url="/docs",
            redoc_url=None,
        )

        # Only loopback host names are served
        self.app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=sorted({"127.0.0.1", "localhost", config.host}),
        )

        self._setup_routes()
        self._setup_error_handlers()

    def _setup_routes(self) -> None:
        @self.app.get("/health", tags=["Health"])
        async def health_check():
            return {
                "status": "healthy",
                "version": __version__,
                "server_time": datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ"),
                "scheduler_running": self.scheduler.is_running,
            }

        self.app.include_router(create_sync_router(self.service, self.scheduler, self.api_token))

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(SyncAppException)
        async def sync_error_handler(request: Request, exc: SyncAppException):
            status_code = status_code_for(exc)
            if status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc.to_log_string()}")
            else:
                logger.info(f"{request.method} {request.url.path} rejected: {exc.to_log_string()}")

            body = ErrorResponse(
                error_code=exc.error_code,
                message=exc.message,
                user_message=exc.user_message,
            )
            return JSONResponse(status_code=status_code, content=body.model_dump())

    def _write_token_file(self) -> None:
        if self.token_path is None:
            return
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        self.token_path.unlink(missing_ok=True)
        fd = os.open(self.token_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(self.api_token)

    def _remove_token_file(self) -> None:
        if self.token_path is None:
            return
        try:
            self.token_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove control token file: {e}")

    async def start_server(self) -> None:
        """Start serving in the background without blocking."""
        if self._server_task is not None:
            logger.warning("Control server already running")
            return

        host = self.config.host
        port = self.config.port

        server_config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
            loop="asyncio",
        )

        self._write_token_file()
        self.server = uvicorn.Server(server_config)
        self._server_task = asyncio.create_task(self.server.serve())

        logger.info(f"Control API started on http://{host}:{port}")

    async def stop_server(self) -> None:
        """Stop the server gracefully."""
        if self.server is None:
            return

        logger.info("Stopping control API...")
        self.server.should_exit = True

        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Control API shutdown timed out, cancelling task")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        self._remove_token_file()
        self.server = None
        self._server_task = None
        logger.info("Control API stopped")
