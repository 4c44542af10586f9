"""Environment-driven configuration for the Webex MCP server.

Values are read once at startup. A ``.env`` file in the working directory
is loaded first (existing environment variables win).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://webexapis.com/v1"
DEFAULT_REDIRECT_URI = "http://localhost:3000/callback"
DEFAULT_STATE_DIR = Path.home() / ".webex-mcp"


def _env(name: str, environ: dict) -> str:
    return environ.get(name, "").strip()


def _env_flag(name: str, environ: dict) -> bool:
    return _env(name, environ).lower() == "true"


@dataclass
class WebexConfig:
    """Settings for authentication, storage and the API endpoint."""

    static_token: str = ""
    auto_refresh: bool = False
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    oauth_redirect_uri: str = DEFAULT_REDIRECT_URI
    oauth_scopes: list[str] = field(default_factory=lambda: ["spark:all"])
    base_url: str = DEFAULT_BASE_URL
    token_store: str = "keychain"
    token_store_dir: Path = DEFAULT_STATE_DIR
    token_store_passphrase: str = ""
    browser_profile_dir: Path = DEFAULT_STATE_DIR / "browser"
    log_level: str = "INFO"

    @property
    def has_oauth_credentials(self) -> bool:
        return bool(self.oauth_client_id and self.oauth_client_secret)

    @classmethod
    def from_env(cls, environ: dict | None = None, *, dotenv: bool = True) -> "WebexConfig":
        """Build the configuration from environment variables."""
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = dict(os.environ)

        state_dir = Path(
            _env("WEBEX_TOKEN_STORE_DIR", environ) or str(DEFAULT_STATE_DIR)
        ).expanduser()
        scopes = _env("WEBEX_OAUTH_SCOPES", environ)

        return cls(
            static_token=_env("WEBEX_PUBLIC_WORKSPACE_API_KEY", environ),
            auto_refresh=_env_flag("WEBEX_AUTO_REFRESH_TOKEN", environ),
            oauth_client_id=_env("WEBEX_OAUTH_CLIENT_ID", environ),
            oauth_client_secret=_env("WEBEX_OAUTH_CLIENT_SECRET", environ),
            oauth_redirect_uri=_env("WEBEX_OAUTH_REDIRECT_URI", environ) or DEFAULT_REDIRECT_URI,
            oauth_scopes=scopes.split() if scopes else ["spark:all"],
            base_url=(_env("WEBEX_API_BASE_URL", environ) or DEFAULT_BASE_URL).rstrip("/"),
            token_store=(_env("WEBEX_TOKEN_STORE", environ) or "keychain").lower(),
            token_store_dir=state_dir,
            token_store_passphrase=_env("WEBEX_TOKEN_STORE_PASSPHRASE", environ),
            browser_profile_dir=Path(
                _env("WEBEX_BROWSER_PROFILE_DIR", environ) or str(state_dir / "browser")
            ).expanduser(),
            log_level=(_env("WEBEX_LOG_LEVEL", environ) or "INFO").upper(),
        )
