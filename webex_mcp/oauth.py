"""OAuth 2.0 integration flow for Webex.

Handles the authorization-code flow against the Webex identity endpoints:
1. Open the authorization URL in the system browser
2. Receive the code on a local loopback callback server
3. Exchange the code for access + refresh tokens
4. Refresh the access token with the stored refresh token
"""

import asyncio
import html
import logging
import secrets
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable
from urllib.parse import urlencode, urlparse

import requests
from aiohttp import web

from webex_mcp.config import WebexConfig
from webex_mcp.errors import OAuthError
from webex_mcp.keychain import TokenStore
from webex_mcp.models import TokenRecord
from webex_mcp.utils import utcnow

logger = logging.getLogger(__name__)

# Webex defaults: access token 14 days, refresh token 90 days
DEFAULT_EXPIRES_IN = 14 * 24 * 3600


class OAuthClient:
    """Talks to the Webex ``/authorize`` and ``/access_token`` endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: list[str] | None = None,
        base_url: str = "https://webexapis.com/v1",
        session: requests.Session | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes or ["spark:all"]
        self.authorize_url = f"{base_url}/authorize"
        self.token_url = f"{base_url}/access_token"
        self._session = session or requests.Session()
        self._clock = clock
        self._state: str | None = None

    @classmethod
    def from_config(cls, config: WebexConfig) -> "OAuthClient":
        if not config.has_oauth_credentials:
            raise OAuthError(
                "OAuth not configured. Set WEBEX_OAUTH_CLIENT_ID and WEBEX_OAUTH_CLIENT_SECRET.",
                error_code="not_configured",
            )
        return cls(
            client_id=config.oauth_client_id,
            client_secret=config.oauth_client_secret,
            redirect_uri=config.oauth_redirect_uri,
            scopes=config.oauth_scopes,
            base_url=config.base_url,
        )

    def generate_state(self) -> str:
        self._state = secrets.token_urlsafe(32)
        return self._state

    def get_authorization_url(self, state: str | None = None) -> str:
        if state:
            self._state = state
        elif not self._state:
            self.generate_state()

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": self._state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def verify_state(self, state: str | None) -> bool:
        if not self._state or not state:
            return False
        return secrets.compare_digest(self._state, state)

    def exchange_code(self, code: str) -> TokenRecord:
        """Exchange an authorization code for tokens.

        Raises:
            OAuthError: If the token endpoint rejects the request.
        """
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
            },
            failure="Token exchange failed",
        )

    def refresh_tokens(self, refresh_token: str) -> TokenRecord:
        """Obtain a new access token from a refresh token.

        Raises:
            OAuthError: If the token endpoint rejects the request.
        """
        return self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            failure="Token refresh failed",
        )

    def _token_request(self, data: dict, failure: str) -> TokenRecord:
        try:
            response = self._session.post(
                self.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=30,
            )
        except requests.exceptions.RequestException as exc:
            raise OAuthError(f"{failure}: {exc}", error_code="transport") from exc

        if response.status_code != 200:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {"raw_response": response.text[:500]}
            raise OAuthError(
                f"{failure}: HTTP {response.status_code}",
                error_code=error_data.get("error", "token_request_failed"),
                details=error_data,
            )

        return self._parse_token_response(response.json())

    def _parse_token_response(self, data: dict[str, Any]) -> TokenRecord:
        now = self._clock()
        try:
            access_token = data["access_token"]
        except KeyError as e:
            raise OAuthError(
                f"Invalid token response: missing {e}",
                error_code="invalid_response",
                details={"response_keys": list(data.keys())},
            ) from e

        refresh_expires_in = data.get("refresh_token_expires_in")
        return TokenRecord(
            token=access_token,
            expires_at=now + timedelta(seconds=int(data.get("expires_in", DEFAULT_EXPIRES_IN))),
            refresh_token=data.get("refresh_token"),
            refresh_expires_at=(
                now + timedelta(seconds=int(refresh_expires_in))
                if refresh_expires_in is not None
                else None
            ),
        )


# ------------------------------------------------------------------
# Loopback callback server
# ------------------------------------------------------------------

@dataclass
class CallbackResult:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def success(self) -> bool:
        return self.code is not None and self.error is None


_SUCCESS_PAGE = (
    "<!DOCTYPE html><html><head><title>Webex MCP</title></head><body>"
    "<h1>Authorization successful</h1>"
    "<p>You can close this window.</p></body></html>"
)


class OAuthCallbackServer:
    """Temporary aiohttp server that captures the authorization redirect.

    Usage:
        async with OAuthCallbackServer("http://localhost:3000/callback") as server:
            result = await server.wait_for_callback(timeout=300)
    """

    def __init__(self, redirect_uri: str):
        parsed = urlparse(redirect_uri)
        self.host = parsed.hostname or "localhost"
        self.port = parsed.port or 80
        self.path = parsed.path or "/"
        self.result: CallbackResult | None = None
        self.callback_received = asyncio.Event()
        self._runner: web.AppRunner | None = None

    async def handle_callback(self, request: web.Request) -> web.Response:
        query = request.query
        self.result = CallbackResult(
            code=query.get("code"),
            state=query.get("state"),
            error=query.get("error"),
            error_description=query.get("error_description"),
        )
        self.callback_received.set()

        if self.result.success:
            logger.info("OAuth callback received")
            return web.Response(text=_SUCCESS_PAGE, content_type="text/html")

        reason = self.result.error_description or self.result.error or "unknown error"
        logger.warning("OAuth callback reported an error: %s", reason)
        return web.Response(
            text=(
                "<html><body><h1>Authorization failed</h1>"
                f"<p>{html.escape(reason)}</p></body></html>"
            ),
            content_type="text/html",
            status=400,
        )

    async def start(self) -> None:
        self.result = None
        self.callback_received.clear()

        app = web.Application()
        app.router.add_get(self.path, self.handle_callback)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Callback server listening on http://%s:%s%s", self.host, self.port, self.path)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def wait_for_callback(self, timeout: float = 300) -> CallbackResult:
        try:
            await asyncio.wait_for(self.callback_received.wait(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"No OAuth callback received within {timeout} seconds") from e
        return self.result

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.stop()


# ------------------------------------------------------------------
# Credential fetcher
# ------------------------------------------------------------------

class OAuthTokenFetcher:
    """Interactive credential fetcher for OAuth mode.

    Uses the stored refresh token when one is still usable; otherwise runs
    the browser authorization flow.
    """

    def __init__(
        self,
        client: OAuthClient,
        store: TokenStore,
        *,
        timeout: float = 300,
        open_browser: Callable[[str], Any] = webbrowser.open,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.store = store
        self.timeout = timeout
        self._open_browser = open_browser
        self._clock = clock

    async def fetch(self) -> TokenRecord:
        stored = self.store.load()
        if stored and stored.has_usable_refresh_token(self._clock()):
            try:
                record = await asyncio.to_thread(self.client.refresh_tokens, stored.refresh_token)
                logger.info("OAuth access token refreshed")
                return self._keep_refresh_token(record, stored)
            except OAuthError as e:
                logger.warning("OAuth refresh failed, starting authorization flow: %s", e)

        return await self.authorize()

    async def authorize(self) -> TokenRecord:
        """Run the full authorization-code flow in the user's browser.

        Raises:
            OAuthError: If authorization is denied, the state does not match,
                or the code exchange fails.
            TimeoutError: If the user does not finish within the timeout.
        """
        async with OAuthCallbackServer(self.client.redirect_uri) as server:
            state = self.client.generate_state()
            auth_url = self.client.get_authorization_url(state=state)

            logger.info("Opening browser for Webex authorization: %s", auth_url)
            self._open_browser(auth_url)

            result = await server.wait_for_callback(timeout=self.timeout)

        if not result.success:
            raise OAuthError(
                result.error_description or result.error or "Authorization failed",
                error_code=result.error,
            )
        if not self.client.verify_state(result.state):
            raise OAuthError("State mismatch in OAuth callback", error_code="state_mismatch")

        record = await asyncio.to_thread(self.client.exchange_code, result.code)
        logger.info("OAuth authorization complete")
        return record

    @staticmethod
    def _keep_refresh_token(record: TokenRecord, previous: TokenRecord) -> TokenRecord:
        # A refresh response may omit the refresh token; keep the old one then.
        if record.refresh_token:
            return record
        return TokenRecord(
            token=record.token,
            expires_at=record.expires_at,
            refresh_token=previous.refresh_token,
            refresh_expires_at=previous.refresh_expires_at,
        )
