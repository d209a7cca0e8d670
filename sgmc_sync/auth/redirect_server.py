"""
Loopback HTTP listener that captures the OAuth authorization code.
"""

import asyncio
import logging
import socket
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
import uvicorn

from ..exceptions import AuthFlowError, create_error_context

logger = logging.getLogger(__name__)

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
<head><title>Authentication Successful</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 4em;">
<h1>Authentication successful</h1>
<p>You can close this window and return to the application.</p>
<script>window.close();</script>
</body>
</html>
"""

FAILURE_PAGE = """<!DOCTYPE html>
<html>
<head><title>Authentication Failed</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 4em;">
<h1>Authentication failed</h1>
<p>{reason}</p>
<p>Return to the application and try again.</p>
</body>
</html>
"""


class RedirectListener:
    """Serves the OAuth redirect URI on the loopback interface for one authorization."""

    STARTUP_TIMEOUT_SECONDS = 5.0

    def __init__(self, port: int = 14200, host: str = "127.0.0.1",
                 expected_state: Optional[str] = None):
        """Initialize the listener.

        Args:
            port: Port to bind; 0 picks a free port
            host: Interface to bind
            expected_state: ``state`` value the redirect must echo back
        """
        self.host = host
        self.port = port
        self.expected_state = expected_state
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None
        self._code_future: Optional[asyncio.Future] = None
        self.app = self._create_app()

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}"

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="SGMC Sync OAuth Redirect",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        @app.get("/", response_class=HTMLResponse)
        async def oauth_redirect(code: Optional[str] = None,
                                 state: Optional[str] = None,
                                 error: Optional[str] = None):
            return self._handle_redirect(code, state, error)

        return app

    def _handle_redirect(self, code: Optional[str], state: Optional[str],
                         error: Optional[str]) -> HTMLResponse:
        future = self._code_future
        if future is None or future.done():
            return HTMLResponse(FAILURE_PAGE.format(reason="No sign-in is in progress."), status_code=409)

        context = create_error_context(operation="oauth_redirect")

        if error:
            logger.warning(f"Authorization was denied by the provider: {error}")
            future.set_exception(AuthFlowError(f"Authorization denied: {error}", context=context))
            return HTMLResponse(FAILURE_PAGE.format(reason="Access was not granted."), status_code=400)

        if self.expected_state is not None and state != self.expected_state:
            logger.warning("OAuth redirect carried an unexpected state value")
            future.set_exception(AuthFlowError("OAuth state mismatch", context=context))
            return HTMLResponse(FAILURE_PAGE.format(reason="The sign-in request could not be verified."),
                                status_code=400)

        if not code:
            # Stray request (e.g. a browser prefetch); keep waiting
            return HTMLResponse(FAILURE_PAGE.format(reason="No authorization code received."), status_code=400)

        future.set_result(code)
        return HTMLResponse(SUCCESS_PAGE)

    async def start(self) -> None:
        """Bind the port and start serving in the background.

        Raises:
            AuthFlowError: The port could not be bound or the server did not start
        """
        if self._server_task is not None:
            logger.warning("Redirect listener already running")
            return

        loop = asyncio.get_running_loop()
        self._code_future = loop.create_future()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise AuthFlowError(
                f"Could not bind redirect listener on {self.host}:{self.port}: {e}",
                context=create_error_context(operation="redirect_listener_start", port=self.port),
                cause=e,
            ) from e

        self._socket = sock
        self.port = sock.getsockname()[1]

        server_config = uvicorn.Config(
            app=self.app,
            log_level="warning",
            access_log=False,
            lifespan="off",
            loop="asyncio",
        )
        self.server = uvicorn.Server(server_config)
        self._server_task = asyncio.create_task(self.server.serve(sockets=[sock]))

        waited = 0.0
        while not self.server.started:
            if self._server_task.done() or waited >= self.STARTUP_TIMEOUT_SECONDS:
                await self.stop()
                raise AuthFlowError(
                    "Redirect listener failed to start",
                    context=create_error_context(operation="redirect_listener_start", port=self.port),
                )
            await asyncio.sleep(0.01)
            waited += 0.01

        logger.info(f"OAuth redirect listener started on {self.redirect_uri}")

    async def wait_for_code(self, timeout: float) -> str:
        """Wait for the browser redirect and return the authorization code.

        Raises:
            AuthFlowError: Timed out, access denied, or state mismatch
        """
        if self._code_future is None:
            raise AuthFlowError("Redirect listener is not running")

        try:
            return await asyncio.wait_for(self._code_future, timeout=timeout)
        except asyncio.TimeoutError:
            raise AuthFlowError(
                f"Timed out after {timeout:g}s waiting for the authorization code",
                context=create_error_context(operation="wait_for_code"),
            )

    async def stop(self) -> None:
        """Stop the server and release the port."""
        if self.server is not None:
            self.server.should_exit = True

        if self._server_task is not None:
            try:
                await asyncio.wait_for(self._server_task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Redirect listener shutdown timed out, cancelling task")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        if self._socket is not None:
            self._socket.close()

        if self._code_future is not None and not self._code_future.done():
            self._code_future.cancel()

        self.server = None
        self._server_task = None
        self._socket = None
        logger.debug("OAuth redirect listener stopped")
