"""Time-bounded retrieval over the reverse-chronological /messages endpoint.

The Webex API has no "after" filter, so messages newer than a point in time
are collected by walking backward with the ``beforeMessage`` cursor until
the first older message, the end of history, the item limit, or a safety
cap on the number of batches.
"""

import logging
from datetime import datetime
from typing import Callable

from webex_mcp.errors import InvalidTimeBound
from webex_mcp.models import SinceResult
from webex_mcp.utils import parse_timestamp, summarize_message

logger = logging.getLogger(__name__)

# Largest page the API allows
BATCH_SIZE = 100
# Upper bound on batches per call when the boundary is never crossed
MAX_ITERATIONS = 20

FetchBatch = Callable[..., dict]


def parse_time_bound(after: str) -> datetime:
    """Parse the caller's lower bound, failing before any request is made."""
    try:
        return parse_timestamp(after)
    except (TypeError, ValueError) as e:
        raise InvalidTimeBound(after) from e


def _is_in_range(msg: dict, after: datetime) -> bool:
    created = msg.get("created")
    try:
        return parse_timestamp(created) >= after
    except (TypeError, ValueError):
        # Unreadable timestamps end the walk like an older message would.
        logger.warning("Message %s has unparsable created %r", msg.get("id"), created)
        return False


def list_since(
    fetch_batch: FetchBatch,
    room_id: str,
    after: str,
    max_items: int | None = None,
    *,
    parent_id: str | None = None,
    mentioned_people: str | None = None,
    before: str | None = None,
    before_message: str | None = None,
) -> SinceResult:
    """Collect messages created at or after ``after``, newest first.

    Args:
        fetch_batch: Called as ``fetch_batch(room_id, parent_id=...,
            mentioned_people=..., before=..., before_message=..., max=...)``
            and returns the API body with an ``items`` list.
        room_id: Room to list.
        after: ISO 8601 lower time bound (inclusive).
        max_items: Maximum number of messages to return; ``None`` for no limit.
        parent_id, mentioned_people, before: Passed through on every batch.
        before_message: Initial cursor; ``None`` starts at the newest message.

    Returns:
        ``items`` in API order, ``count``, and ``truncatedByMax`` telling
        whether in-range messages were dropped because of ``max_items``.

    Raises:
        InvalidTimeBound: ``after`` is not a parsable timestamp.
        UpstreamHttpError: A batch request failed.
    """
    after_dt = parse_time_bound(after)

    collected: list[dict] = []
    cursor = before_message

    for iteration in range(1, MAX_ITERATIONS + 1):
        data = fetch_batch(
            room_id,
            parent_id=parent_id,
            mentioned_people=mentioned_people,
            before=before,
            before_message=cursor,
            max=BATCH_SIZE,
        )
        items = data.get("items") or []
        if not items:
            break

        crossed_boundary = False
        for msg in items:
            if _is_in_range(msg, after_dt):
                collected.append(msg)
            else:
                crossed_boundary = True
                break

        if crossed_boundary:
            break

        if max_items is not None and len(collected) >= max_items:
            break

        cursor = items[-1].get("id")
        if len(items) < BATCH_SIZE or not cursor:
            break
    else:
        logger.warning(
            "Stopped listing %s after %d batches without reaching %s",
            room_id,
            MAX_ITERATIONS,
            after,
        )

    truncated = max_items is not None and len(collected) > max_items
    if truncated:
        collected = collected[:max_items]

    logger.debug(
        "Collected %d messages since %s in %d batch(es)", len(collected), after, iteration
    )
    return {
        "items": collected,
        "count": len(collected),
        "truncatedByMax": truncated,
        "filtered": True,
        "afterFilter": after,
    }


def fetch_messages(
    client,
    room_id: str,
    *,
    parent_id: str | None = None,
    mentioned_people: str | None = None,
    before: str | None = None,
    before_message: str | None = None,
    after: str | None = None,
    max: int | None = 50,
    summarize: bool = True,
) -> dict:
    """List room messages, walking back in time when ``after`` is given.

    Without ``after`` this is a single request returning the API body.
    """
    if not after:
        data = client.list_messages(
            room_id,
            parent_id=parent_id,
            mentioned_people=mentioned_people,
            before=before,
            before_message=before_message,
            max=max,
        )
        if summarize and data.get("items"):
            data["items"] = [summarize_message(m) for m in data["items"]]
        return data

    result = list_since(
        client.list_messages,
        room_id,
        after,
        max,
        parent_id=parent_id,
        mentioned_people=mentioned_people,
        before=before,
        before_message=before_message,
    )
    if summarize:
        result["items"] = [summarize_message(m) for m in result["items"]]
    return result
