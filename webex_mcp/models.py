"""Data types shared across the Webex MCP server.

Tool return shapes use TypedDict for lightweight structured types;
the token record is a frozen dataclass because it is compared, persisted
and superseded as a whole.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TypedDict

from webex_mcp.utils import format_iso, parse_timestamp


class AuthMode(str, Enum):
    STATIC = "static"
    AUTO_REFRESH = "auto-refresh"
    OAUTH = "oauth"


@dataclass(frozen=True)
class TokenRecord:
    """A bearer token and the instant it stops being accepted."""
    token: str
    expires_at: datetime
    refresh_token: str | None = None
    refresh_expires_at: datetime | None = None

    def is_valid(self, now: datetime) -> bool:
        return bool(self.token) and self.expires_at > now

    def has_usable_refresh_token(self, now: datetime) -> bool:
        if not self.refresh_token:
            return False
        return self.refresh_expires_at is None or self.refresh_expires_at > now

    def expires_in(self, now: datetime) -> timedelta:
        return self.expires_at - now

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "expires_at": format_iso(self.expires_at),
            "refresh_token": self.refresh_token,
            "refresh_expires_at": (
                format_iso(self.refresh_expires_at) if self.refresh_expires_at else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenRecord":
        """Build a record from its stored form.

        Raises KeyError/ValueError on malformed data.
        """
        refresh_expires = data.get("refresh_expires_at")
        return cls(
            token=data["token"],
            expires_at=parse_timestamp(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
            refresh_expires_at=parse_timestamp(refresh_expires) if refresh_expires else None,
        )


class SinceResult(TypedDict):
    """Result of a time-bounded message listing."""
    items: list[dict]
    count: int
    truncatedByMax: bool
    filtered: bool
    afterFilter: str


class TokenStatus(TypedDict):
    has_token: bool
    is_valid: bool
    expires_at: str | None
    expires_in: str | None


class AuthStatus(TypedDict, total=False):
    authenticated: bool
    method: str | None
    message: str
    token_status: TokenStatus


class RoomSummary(TypedDict, total=False):
    id: str
    title: str
    type: str
    isLocked: bool
    lastActivity: str
    created: str
