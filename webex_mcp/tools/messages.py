"""Message tools for the Webex MCP server.

Provides tools for listing (optionally time-bounded), reading, sending and
deleting messages in Webex rooms.
"""

import asyncio
import json
import logging

from mcp.server.fastmcp import Context

from webex_mcp.errors import WebexMCPError, error_payload
from webex_mcp.pagination import fetch_messages, parse_time_bound
from webex_mcp.server import AppContext, mcp

logger = logging.getLogger(__name__)


def _get_app_ctx(ctx: Context) -> AppContext:
    """Extract the AppContext from the MCP lifespan context."""
    return ctx.request_context.lifespan_context


def _failure(e: Exception, action: str) -> str:
    if not isinstance(e, WebexMCPError):
        logger.exception("Error %s", action)
    return json.dumps(error_payload(e), ensure_ascii=False, default=str)


@mcp.tool()
async def list_messages(
    room_id: str,
    parent_id: str = "",
    mentioned_people: str = "",
    before: str = "",
    before_message: str = "",
    after: str = "",
    max: int = 50,
    summarize: bool = True,
    ctx: Context = None,
) -> str:
    """List messages in a Webex room, newest first.

    Supports fetching everything since a point in time with ``after``
    (client-side filtering with automatic backward pagination).

    Args:
        room_id: The ID of the room to list messages from.
        parent_id: Only list replies to this parent message.
        mentioned_people: Only messages mentioning these people, by ID (``me`` for yourself).
        before: Only messages sent before this time (ISO 8601).
        before_message: Only messages sent before this message, by ID.
        after: Only messages sent at or after this time (ISO 8601, e.g. 2024-01-27T18:00:00Z).
        max: Maximum number of messages to return. Default 50.
        summarize: Return only id, personEmail, personId, created, text,
            parentId and roomType for each message (default). Set false for
            full message objects.

    Returns:
        JSON with ``items``. With ``after`` it also has ``count`` and
        ``truncatedByMax`` (true when more matching messages exist beyond ``max``).
    """
    app_ctx = _get_app_ctx(ctx)
    try:
        if after:
            parse_time_bound(after)
        await app_ctx.auth.ensure_token()
        result = await asyncio.to_thread(
            fetch_messages,
            app_ctx.client,
            room_id,
            parent_id=parent_id or None,
            mentioned_people=mentioned_people or None,
            before=before or None,
            before_message=before_message or None,
            after=after or None,
            max=max,
            summarize=summarize,
        )
    except Exception as e:
        return _failure(e, "listing messages")

    return json.dumps(result, ensure_ascii=False)


@mcp.tool()
async def get_message_details(message_id: str, ctx: Context = None) -> str:
    """Get the full details of a single message.

    Args:
        message_id: The unique identifier of the message.
    """
    app_ctx = _get_app_ctx(ctx)
    try:
        await app_ctx.auth.ensure_token()
        data = await asyncio.to_thread(app_ctx.client.get_message, message_id)
    except Exception as e:
        return _failure(e, "getting message")
    return json.dumps(data, ensure_ascii=False)


@mcp.tool()
async def create_message(
    room_id: str = "",
    to_person_email: str = "",
    text: str = "",
    markdown: str = "",
    parent_id: str = "",
    ctx: Context = None,
) -> str:
    """Post a message to a room or as a direct message.

    Args:
        room_id: Room to post into. Either this or to_person_email is required.
        to_person_email: Send a 1:1 message to this person instead.
        text: Plain-text message body.
        markdown: Markdown message body (takes precedence for rendering).
        parent_id: Reply in the thread of this message.
    """
    if not room_id and not to_person_email:
        return json.dumps({"error": "Either room_id or to_person_email is required.", "details": None})
    if not text and not markdown:
        return json.dumps({"error": "Either text or markdown is required.", "details": None})

    app_ctx = _get_app_ctx(ctx)
    try:
        await app_ctx.auth.ensure_token()
        data = await asyncio.to_thread(
            lambda: app_ctx.client.create_message(
                room_id=room_id or None,
                to_person_email=to_person_email or None,
                text=text or None,
                markdown=markdown or None,
                parent_id=parent_id or None,
            )
        )
    except Exception as e:
        return _failure(e, "creating message")
    return json.dumps(data, ensure_ascii=False)


@mcp.tool()
async def delete_message(message_id: str, ctx: Context = None) -> str:
    """Delete a message.

    Args:
        message_id: The unique identifier of the message to delete.
    """
    app_ctx = _get_app_ctx(ctx)
    try:
        await app_ctx.auth.ensure_token()
        await asyncio.to_thread(app_ctx.client.delete_message, message_id)
    except Exception as e:
        return _failure(e, "deleting message")
    return json.dumps({"success": True, "message_id": message_id})
