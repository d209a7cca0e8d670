"""
Google OAuth 2.0 authorization code flow with PKCE for Drive access.
"""

import asyncio
import logging
import secrets
import time
import webbrowser
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from ..config.settings import OAuthConfig
from ..exceptions import (
    AuthFlowError,
    NetworkError,
    NotAuthenticatedError,
    PkceMissingError,
    RefreshError,
    TokenExchangeError,
    create_error_context,
)
from .pkce import CODE_CHALLENGE_METHOD, generate_code_challenge, generate_code_verifier
from .redirect_server import RedirectListener
from .token_store import (
    ACCESS_TOKEN_KEY,
    PKCE_VERIFIER_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_EXPIRY_KEY,
    CredentialStore,
)

logger = logging.getLogger(__name__)

# Access tokens are treated as expired this long before their real expiry
EXPIRY_MARGIN_MS = 60_000
DEFAULT_EXPIRES_IN_SECONDS = 3600


class AuthFlowState(Enum):
    """Progress of an interactive authorization attempt."""
    IDLE = "idle"
    VERIFIER_GENERATED = "verifier_generated"
    BROWSER_OPENED = "browser_opened"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"


class GoogleOAuthFlow:
    """
    Handles the Google OAuth 2.0 flow for Drive access.

    Credentials live in the injected CredentialStore; this class holds no
    token state of its own.
    """

    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    SCOPES = [
        "https://www.googleapis.com/auth/drive.file",  # Files created by this app only
    ]

    def __init__(self,
                 config: OAuthConfig,
                 store: CredentialStore,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 browser_opener: Callable[[str], bool] = webbrowser.open):
        """
        Initialize OAuth flow.

        Args:
            config: OAuth client configuration
            store: Credential store shared with the rest of the app
            transport: Optional httpx transport (used by tests)
            browser_opener: Callable that opens a URL in the system browser
        """
        self.config = config
        self.store = store
        self._transport = transport
        self._browser_opener = browser_opener
        self._redirect_uri: Optional[str] = None
        self._refresh_lock = asyncio.Lock()
        self.flow_state = AuthFlowState.IDLE

    @property
    def redirect_uri(self) -> str:
        """Redirect URI registered for the current (or default) listener."""
        return self._redirect_uri or f"http://localhost:{self.config.redirect_port}"

    def is_configured(self) -> bool:
        """Check if OAuth client credentials are configured."""
        return self.config.is_configured()

    def build_authorization_url(self, code_challenge: str, state: str) -> str:
        """Build the consent screen URL."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "code_challenge": code_challenge,
            "code_challenge_method": CODE_CHALLENGE_METHOD,
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Always show consent to get refresh token
            "state": state,
        }
        return f"{self.GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def authenticate(self, timeout: Optional[float] = None) -> None:
        """
        Run the interactive authorization flow end to end.

        Args:
            timeout: Seconds to wait for the browser redirect (default from config)

        Raises:
            AuthFlowError: Browser, listener or redirect failure, or timeout
            TokenExchangeError: The provider rejected the authorization code
        """
        if self.flow_state != AuthFlowState.IDLE:
            raise AuthFlowError(
                "An authorization attempt is already in progress",
                context=create_error_context(operation="authenticate"),
            )

        timeout = timeout if timeout is not None else self.config.timeout_seconds

        try:
            verifier = generate_code_verifier()
            await self.store.set(PKCE_VERIFIER_KEY, verifier)
            await self.store.save()
            self.flow_state = AuthFlowState.VERIFIER_GENERATED

            state = secrets.token_urlsafe(32)
            listener = RedirectListener(port=self.config.redirect_port, expected_state=state)
            await listener.start()

            try:
                self._redirect_uri = listener.redirect_uri
                auth_url = self.build_authorization_url(generate_code_challenge(verifier), state)

                self._open_browser(auth_url)
                self.flow_state = AuthFlowState.BROWSER_OPENED

                code = await listener.wait_for_code(timeout)
                self.flow_state = AuthFlowState.CODE_RECEIVED
            finally:
                await listener.stop()

            await self.exchange_code_for_token(code, verifier)
            self.flow_state = AuthFlowState.TOKEN_EXCHANGED
            logger.info("Google Drive authorization completed")

        finally:
            self.flow_state = AuthFlowState.IDLE

    def _open_browser(self, url: str) -> None:
        logger.info("Opening system browser for Google authorization")
        try:
            opened = self._browser_opener(url)
        except webbrowser.Error as e:
            raise AuthFlowError(
                f"Failed to open browser: {e}",
                context=create_error_context(operation="open_browser"),
                cause=e,
            ) from e

        if not opened:
            raise AuthFlowError(
                "Failed to open browser",
                context=create_error_context(operation="open_browser"),
            )

    async def exchange_code_for_token(self, code: str, verifier: Optional[str] = None) -> None:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the redirect
            verifier: PKCE verifier; read from the store when omitted

        Raises:
            PkceMissingError: No verifier supplied or stored
            TokenExchangeError: Non-2xx response from the token endpoint
        """
        verifier = verifier or await self.store.get(PKCE_VERIFIER_KEY)
        if not verifier:
            raise PkceMissingError(context=create_error_context(operation="exchange_code"))

        response = await self._post_token(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "code_verifier": verifier,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            operation="exchange_code",
        )

        if not response.is_success:
            logger.error(f"Token exchange failed with status {response.status_code}")
            raise TokenExchangeError(
                response.status_code,
                response.text,
                context=create_error_context(operation="exchange_code"),
            )

        data = self._token_payload(response)
        if data is None:
            logger.error("Token exchange returned no access token")
            raise TokenExchangeError(
                response.status_code,
                response.text,
                context=create_error_context(operation="exchange_code"),
            )
        await self._store_token_response(data)

        # Verifier is single-use
        await self.store.delete(PKCE_VERIFIER_KEY)
        await self.store.save()

    async def get_access_token(self) -> str:
        """
        Return a usable access token, refreshing it when close to expiry.

        Raises:
            NotAuthenticatedError: No refresh token is stored
            RefreshError: The refresh was rejected (tokens cleared)
        """
        token = await self._fresh_access_token()
        if token:
            return token

        async with self._refresh_lock:
            # A concurrent caller may have refreshed while we waited
            token = await self._fresh_access_token()
            if token:
                return token
            return await self._refresh()

    async def refresh_access_token(self) -> str:
        """
        Obtain a new access token with the stored refresh token.

        Raises:
            NotAuthenticatedError: No refresh token is stored
            RefreshError: Non-2xx from the token endpoint; both tokens are cleared
        """
        async with self._refresh_lock:
            return await self._refresh()

    async def _fresh_access_token(self) -> Optional[str]:
        token = await self.store.get(ACCESS_TOKEN_KEY)
        expiry = await self.store.get(TOKEN_EXPIRY_KEY)
        if token and expiry and self._now_ms() < int(expiry) - EXPIRY_MARGIN_MS:
            return token
        return None

    async def _refresh(self) -> str:
        refresh_token = await self.store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise NotAuthenticatedError(context=create_error_context(operation="refresh_token"))

        response = await self._post_token(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            operation="refresh_token",
        )

        if not response.is_success:
            logger.error(f"Token refresh failed with status {response.status_code}, clearing credentials")
            await self.store.delete(ACCESS_TOKEN_KEY)
            await self.store.delete(REFRESH_TOKEN_KEY)
            await self.store.save()
            raise RefreshError(
                response.status_code,
                response.text,
                context=create_error_context(operation="refresh_token"),
            )

        data = self._token_payload(response)
        if data is None:
            # Stored refresh token is still valid; only this response was unusable
            logger.error("Token refresh returned no access token")
            raise RefreshError(
                response.status_code,
                response.text,
                context=create_error_context(operation="refresh_token"),
            )
        access_token = data["access_token"]
        await self.store.set(ACCESS_TOKEN_KEY, access_token)
        await self.store.set(TOKEN_EXPIRY_KEY, self._expiry_from(data))
        await self.store.save()

        logger.debug("Access token refreshed")
        return access_token

    async def is_authenticated(self) -> bool:
        """True when a refresh token is stored."""
        return bool(await self.store.get(REFRESH_TOKEN_KEY))

    async def logout(self) -> None:
        """Forget every stored credential."""
        await self.store.clear()
        await self.store.save()
        logger.info("Google Drive credentials cleared")

    async def _store_token_response(self, data: Dict[str, Any]) -> None:
        await self.store.set(ACCESS_TOKEN_KEY, data["access_token"])
        # Google only returns a refresh token on consent
        if data.get("refresh_token"):
            await self.store.set(REFRESH_TOKEN_KEY, data["refresh_token"])
        await self.store.set(TOKEN_EXPIRY_KEY, self._expiry_from(data))

    async def _post_token(self, data: Dict[str, str], operation: str) -> httpx.Response:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
                return await client.post(self.GOOGLE_TOKEN_URL, data=data)
        except httpx.TransportError as e:
            logger.warning(f"Token endpoint unreachable during {operation}: {e}")
            raise NetworkError(
                f"Token endpoint unreachable: {e}",
                context=create_error_context(operation=operation),
                cause=e,
            ) from e

    @staticmethod
    def _token_payload(response: httpx.Response) -> Optional[Dict[str, Any]]:
        """Parsed token response, or None when it carries no access token."""
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        return data

    def _expiry_from(self, data: Dict[str, Any]) -> int:
        expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN_SECONDS))
        return self._now_ms() + expires_in * 1000

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)
