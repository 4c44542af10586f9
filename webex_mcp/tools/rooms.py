"""Room tools for the Webex MCP server."""

import asyncio
import json
import logging

from mcp.server.fastmcp import Context

from webex_mcp.errors import WebexMCPError, error_payload
from webex_mcp.models import RoomSummary
from webex_mcp.server import AppContext, mcp
from webex_mcp.utils import format_datetime

logger = logging.getLogger(__name__)


def _get_app_ctx(ctx: Context) -> AppContext:
    """Extract the AppContext from the MCP lifespan context."""
    return ctx.request_context.lifespan_context


def _summarize_room(room: dict) -> RoomSummary:
    return {
        "id": room.get("id", ""),
        "title": room.get("title", ""),
        "type": room.get("type", ""),
        "isLocked": room.get("isLocked", False),
        "lastActivity": format_datetime(room.get("lastActivity", "")),
        "created": format_datetime(room.get("created", "")),
    }


@mcp.tool()
async def list_rooms(
    room_type: str = "",
    team_id: str = "",
    sort_by: str = "lastactivity",
    max: int = 100,
    summarize: bool = True,
    ctx: Context = None,
) -> str:
    """List rooms (spaces) the authenticated user belongs to.

    Args:
        room_type: ``direct`` or ``group``; empty for both.
        team_id: Only rooms belonging to this team.
        sort_by: ``id``, ``lastactivity`` or ``created``.
        max: Maximum number of rooms to return.
        summarize: Return id, title, type, isLocked, lastActivity and created only.
    """
    app_ctx = _get_app_ctx(ctx)
    try:
        await app_ctx.auth.ensure_token()
        data = await asyncio.to_thread(
            lambda: app_ctx.client.list_rooms(
                team_id=team_id or None,
                room_type=room_type or None,
                sort_by=sort_by or None,
                max=max,
            )
        )
    except Exception as e:
        if not isinstance(e, WebexMCPError):
            logger.exception("Error listing rooms")
        return json.dumps(error_payload(e), default=str)

    if summarize and data.get("items"):
        data["items"] = [_summarize_room(r) for r in data["items"]]
    return json.dumps(data, ensure_ascii=False)


@mcp.tool()
async def get_room_details(room_id: str, ctx: Context = None) -> str:
    """Get details for a room.

    Args:
        room_id: The unique identifier of the room.
    """
    app_ctx = _get_app_ctx(ctx)
    try:
        await app_ctx.auth.ensure_token()
        data = await asyncio.to_thread(app_ctx.client.get_room, room_id)
    except Exception as e:
        if not isinstance(e, WebexMCPError):
            logger.exception("Error getting room")
        return json.dumps(error_payload(e), default=str)
    return json.dumps(data, ensure_ascii=False)
