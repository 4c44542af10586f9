"""Error types for the Webex MCP server.

Every error carries a human-readable message plus optional diagnostic
details, and can be rendered as the ``{"error", "details"}`` dict that
tools return instead of raising.
"""

from typing import Any


class WebexMCPError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


# ------------------------------------------------------------------
# Startup / configuration (fatal)
# ------------------------------------------------------------------

class NoAuthConfigured(WebexMCPError):
    """No credential source is configured."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or (
                "No authentication configured. Either set WEBEX_PUBLIC_WORKSPACE_API_KEY, "
                "WEBEX_AUTO_REFRESH_TOKEN=true, or configure OAuth with "
                "WEBEX_OAUTH_CLIENT_ID and WEBEX_OAUTH_CLIENT_SECRET"
            )
        )


class PlatformUnsupported(WebexMCPError):
    """The host lacks the secure storage the selected auth mode needs."""


# ------------------------------------------------------------------
# Per-request
# ------------------------------------------------------------------

class AuthNotInitialized(WebexMCPError):
    def __init__(self, message: str | None = None):
        super().__init__(
            message or "Authentication not initialized. Call initialize() first."
        )


class NoValidToken(WebexMCPError):
    def __init__(self, message: str | None = None):
        super().__init__(
            message or "No valid token available. Authentication may have failed."
        )


class AuthUnavailable(WebexMCPError):
    """The interactive credential fetch failed or was cancelled."""


class StaticTokenError(WebexMCPError):
    """Operation needs a rotatable credential but a static token is in use."""


class InvalidTimeBound(WebexMCPError):
    def __init__(self, value: str):
        super().__init__(
            f"Invalid 'after' date format: {value}. "
            "Use ISO 8601 format (e.g., 2024-01-27T18:00:00Z).",
            details={"after": value},
        )


class UpstreamHttpError(WebexMCPError):
    """Non-2xx response from the Webex API. The raw body is preserved."""

    def __init__(self, status_code: int, body: Any, url: str = ""):
        super().__init__(
            f"Webex API request failed (HTTP {status_code})",
            details={"status_code": status_code, "body": body, "url": url},
        )
        self.status_code = status_code
        self.body = body


# ------------------------------------------------------------------
# Collaborator failures
# ------------------------------------------------------------------

class OAuthError(WebexMCPError):
    """Token endpoint or authorization flow failure."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details=details or {})
        self.error_code = error_code


class TokenStoreError(WebexMCPError):
    """The secure credential store could not persist a record."""


def error_payload(exc: Exception) -> dict:
    """Render any exception as the ``{"error", "details"}`` tool result."""
    if isinstance(exc, WebexMCPError):
        return exc.to_dict()
    return {"error": str(exc) or type(exc).__name__, "details": type(exc).__name__}
