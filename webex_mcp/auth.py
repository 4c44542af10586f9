"""Authentication facade for the Webex MCP server.

Selects one credential mode at startup and gives every tool a synchronous
way to read the current token:

* ``static``       - token from WEBEX_PUBLIC_WORKSPACE_API_KEY
* ``auto-refresh`` - personal access token fetched through the browser and
                     kept in the secure store (WEBEX_AUTO_REFRESH_TOKEN=true)
* ``oauth``        - integration tokens (WEBEX_OAUTH_CLIENT_ID/SECRET)

The mode never changes for the lifetime of the process; failures escalate
instead of falling back to another mode.
"""

import logging
from typing import Callable

from webex_mcp.browser_login import PersonalTokenFetcher
from webex_mcp.config import WebexConfig
from webex_mcp.errors import (
    AuthNotInitialized,
    NoAuthConfigured,
    NoValidToken,
    PlatformUnsupported,
    StaticTokenError,
)
from webex_mcp.keychain import OAUTH_TOKEN_ACCOUNT, PERSONAL_TOKEN_ACCOUNT, build_token_store
from webex_mcp.models import AuthMode, AuthStatus
from webex_mcp.oauth import OAuthClient, OAuthTokenFetcher
from webex_mcp.token_manager import TokenLifecycleManager
from webex_mcp.utils import strip_bearer

logger = logging.getLogger(__name__)

ManagerFactory = Callable[[AuthMode, WebexConfig], TokenLifecycleManager]


def build_token_manager(mode: AuthMode, config: WebexConfig) -> TokenLifecycleManager:
    """Wire the store and fetcher for a managed (non-static) mode."""
    if mode is AuthMode.AUTO_REFRESH:
        store = build_token_store(config, PERSONAL_TOKEN_ACCOUNT)
        fetcher = PersonalTokenFetcher(config.browser_profile_dir)
    elif mode is AuthMode.OAUTH:
        store = build_token_store(config, OAUTH_TOKEN_ACCOUNT)
        fetcher = OAuthTokenFetcher(OAuthClient.from_config(config), store)
    else:
        raise ValueError(f"Mode {mode.value} has no token manager")
    return TokenLifecycleManager(store, fetcher)


class WebexAuth:
    """Process-wide authentication state.

    ``initialize()`` must be awaited once before any request is made.
    """

    def __init__(
        self,
        config: WebexConfig,
        manager_factory: ManagerFactory = build_token_manager,
    ):
        self.config = config
        self.mode: AuthMode | None = None
        self._manager_factory = manager_factory
        self._manager: TokenLifecycleManager | None = None
        self._token: str | None = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def manager(self) -> TokenLifecycleManager | None:
        return self._manager

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def _select_mode(self) -> AuthMode:
        if self.config.static_token:
            return AuthMode.STATIC
        if self.config.auto_refresh:
            return AuthMode.AUTO_REFRESH
        if self.config.has_oauth_credentials:
            return AuthMode.OAUTH
        raise NoAuthConfigured()

    async def initialize(self) -> None:
        """Select the auth mode and acquire the first token.

        Raises:
            NoAuthConfigured: No credential source is configured.
            PlatformUnsupported: Auto-refresh without usable secure storage.
            AuthUnavailable: The initial interactive fetch failed.
        """
        mode = self._select_mode()

        if mode is AuthMode.STATIC:
            self.mode = mode
            self._token = strip_bearer(self.config.static_token)
            self._initialized = True
            logger.info("Using static API key from environment")
            return

        manager = self._manager_factory(mode, self.config)
        if mode is AuthMode.AUTO_REFRESH and not manager.store.is_supported():
            raise PlatformUnsupported(
                "Auto-refresh token needs secure storage: no usable OS keychain "
                "(or no WEBEX_TOKEN_STORE_PASSPHRASE for the file store) on this host."
            )

        self.mode = mode
        self._manager = manager
        manager.add_refresh_listener(self._on_token_refreshed)

        logger.info("Using %s authentication...", mode.value)
        self._token = await manager.get_valid_token()
        self._initialized = True
        logger.info("%s authentication complete", mode.value)

    def _on_token_refreshed(self, token: str) -> None:
        self._token = token
        logger.info("Token refreshed via %s", self.mode.value if self.mode else "manager")

    # ------------------------------------------------------------------
    # Token access
    # ------------------------------------------------------------------

    def get_token(self) -> str:
        """Return the current token (without the Bearer prefix).

        Raises:
            AuthNotInitialized: Before ``initialize()`` completed.
            NoValidToken: Initialization ran but left no token.
        """
        if self._manager is not None:
            fresh = self._manager.get_cached_token()
            if fresh:
                self._token = fresh

        if not self._initialized:
            raise AuthNotInitialized()
        if not self._token:
            raise NoValidToken()
        return self._token

    async def ensure_token(self) -> str:
        """Like ``get_token`` but recovers an expired managed token first."""
        if self._initialized and self._manager is not None:
            self._token = await self._manager.get_valid_token()
        return self.get_token()

    def headers(self, additional: dict | None = None) -> dict:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.get_token()}",
            **(additional or {}),
        }

    def json_headers(self, additional: dict | None = None) -> dict:
        return self.headers({"Content-Type": "application/json", **(additional or {})})

    def url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.config.base_url}{endpoint}"

    # ------------------------------------------------------------------
    # Rotation / logout
    # ------------------------------------------------------------------

    def _require_managed(self, action: str) -> TokenLifecycleManager:
        if self.mode is AuthMode.STATIC:
            raise StaticTokenError(
                f"Cannot {action} when using static token. Update or remove "
                "WEBEX_PUBLIC_WORKSPACE_API_KEY instead."
            )
        if self._manager is None:
            raise AuthNotInitialized()
        return self._manager

    async def reauthenticate(self, force: bool = True) -> None:
        """Obtain a token again for the active mode.

        OAuth with ``force`` discards stored credentials and runs a new
        authorization; without ``force`` a stored or cached token is reused.
        Auto-refresh always fetches a new personal token.
        """
        manager = self._require_managed("authenticate")

        if self.mode is AuthMode.OAUTH and not force:
            token = await manager.get_valid_token()
        else:
            if self.mode is AuthMode.OAUTH:
                manager.clear_cached_token()
            token = await manager.force_refresh()

        self._token = token
        self._initialized = True

    async def logout(self) -> None:
        """Clear persisted and cached credentials for the active mode."""
        manager = self._require_managed("logout")
        manager.clear_cached_token()
        self._token = None
        self._initialized = False
        logger.info("Logged out, stored tokens cleared")

    def status(self) -> AuthStatus:
        if self.mode is None:
            return {
                "authenticated": False,
                "method": None,
                "message": "Authentication not initialized",
            }

        if self.mode is AuthMode.STATIC:
            return {
                "authenticated": True,
                "method": "static_token",
                "message": "Using static API token from WEBEX_PUBLIC_WORKSPACE_API_KEY",
            }

        token_status = self._manager.get_token_status()
        method = "auto_refresh" if self.mode is AuthMode.AUTO_REFRESH else "oauth"
        if token_status["is_valid"]:
            message = f"Using {self.mode.value} token (expires in {token_status['expires_in']})"
        else:
            message = f"{self.mode.value} token expired or not yet fetched"
        return {
            "authenticated": self._initialized and token_status["is_valid"],
            "method": method,
            "message": message,
            "token_status": token_status,
        }

    async def shutdown(self) -> None:
        if self._manager is not None:
            self._manager.remove_refresh_listener(self._on_token_refreshed)
            await self._manager.shutdown()
