"""Shared utility functions for the Webex MCP server.

Timestamp parsing/formatting and message projection helpers.
"""

import re
from datetime import datetime, timezone

SUMMARY_FIELDS = (
    "id",
    "personEmail",
    "personId",
    "created",
    "text",
    "parentId",
    "roomType",
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp to an aware UTC datetime.

    Accepts a trailing 'Z', explicit offsets, and bare dates. Naive
    values are taken as UTC. Raises ValueError on anything else.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Could not parse timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """Format an aware datetime as ISO 8601 with millisecond precision and 'Z'."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def format_datetime(dt_str: str) -> str:
    """Format an ISO datetime string as 'YYYY-MM-DD HH:MM'.

    Strips timezone suffixes (Z, +offset) for cleaner display.
    """
    if not dt_str:
        return ""
    if "T" in dt_str:
        date_part, time_part = dt_str.split("T", 1)
        time_part = time_part.split("Z")[0].split("+")[0]
        return f"{date_part} {time_part[:5]}"
    return dt_str


def format_minutes(seconds: float) -> str:
    return f"{round(seconds / 60)} minutes"


def strip_bearer(token: str) -> str:
    """Remove a leading 'Bearer ' prefix some users paste with the token."""
    return re.sub(r"^Bearer\s+", "", token.strip())


def summarize_message(msg: dict) -> dict:
    """Keep only the essential fields of a message to reduce response size."""
    return {field: msg.get(field) for field in SUMMARY_FIELDS}
