"""Test time-bounded message retrieval with backward cursor pagination."""

from datetime import datetime, timedelta, timezone

import pytest

from webex_mcp.errors import InvalidTimeBound, UpstreamHttpError
from webex_mcp.pagination import BATCH_SIZE, MAX_ITERATIONS, fetch_messages, list_since
from webex_mcp.utils import SUMMARY_FIELDS, format_iso

NEWEST = datetime(2024, 1, 28, 12, 0, tzinfo=timezone.utc)


class FakeRoom:
    """Serves a newest-first message history the way GET /messages does."""

    def __init__(self, count: int, start: datetime = NEWEST, step=timedelta(minutes=1)):
        self.messages = [
            {
                "id": f"m{i}",
                "roomId": "R1",
                "roomType": "group",
                "personEmail": "alice@example.com",
                "personId": "P1",
                "text": f"message {i}",
                "html": f"<p>message {i}</p>",
                "created": format_iso(start - i * step),
            }
            for i in range(count)
        ]
        self.calls: list[dict] = []

    def list_messages(self, room_id, *, before_message=None, max=None, **filters):
        self.calls.append({"room_id": room_id, "before_message": before_message,
                           "max": max, **filters})
        start = 0
        if before_message is not None:
            start = next(
                i for i, m in enumerate(self.messages) if m["id"] == before_message
            ) + 1
        return {"items": self.messages[start:start + (max or 50)]}


def _minutes_before_newest(minutes: int) -> str:
    return format_iso(NEWEST - timedelta(minutes=minutes))


class TestListSince:
    def test_stops_at_boundary_inside_second_batch(self):
        room = FakeRoom(300)

        result = list_since(room.list_messages, "R1", _minutes_before_newest(149))

        assert len(room.calls) == 2
        assert result["count"] == 150
        assert result["items"][-1]["id"] == "m149"
        assert result["truncatedByMax"] is False
        assert result["filtered"] is True

    def test_cursor_is_id_of_last_item(self):
        room = FakeRoom(300)

        list_since(room.list_messages, "R1", _minutes_before_newest(250))

        assert [c["before_message"] for c in room.calls] == [None, "m99", "m199"]
        assert all(c["max"] == BATCH_SIZE for c in room.calls)

    def test_filters_are_passed_on_every_batch(self):
        room = FakeRoom(150)

        list_since(room.list_messages, "R1", _minutes_before_newest(500),
                   parent_id="PARENT", mentioned_people="me", before="2024-02-01T00:00:00Z")

        assert len(room.calls) == 2
        for call in room.calls:
            assert call["parent_id"] == "PARENT"
            assert call["mentioned_people"] == "me"
            assert call["before"] == "2024-02-01T00:00:00Z"

    def test_initial_cursor(self):
        room = FakeRoom(50)
        list_since(room.list_messages, "R1", _minutes_before_newest(500), before_message="m9")
        assert room.calls[0]["before_message"] == "m9"

    def test_all_recent_messages_in_single_short_batch(self):
        room = FakeRoom(5)

        result = list_since(room.list_messages, "R1", "2024-01-27T00:00:00Z", 10)

        assert len(room.calls) == 1
        assert result["count"] == 5
        assert result["truncatedByMax"] is False
        assert result["afterFilter"] == "2024-01-27T00:00:00Z"

    def test_truncated_when_more_in_range_than_max(self):
        room = FakeRoom(30)

        result = list_since(room.list_messages, "R1", "2024-01-27T00:00:00Z", 10)

        assert len(room.calls) == 1
        assert [m["id"] for m in result["items"]] == [f"m{i}" for i in range(10)]
        assert result["count"] == 10
        assert result["truncatedByMax"] is True

    def test_exactly_max_is_not_truncated(self):
        room = FakeRoom(10)
        result = list_since(room.list_messages, "R1", "2024-01-27T00:00:00Z", 10)
        assert result["count"] == 10
        assert result["truncatedByMax"] is False

    def test_max_zero_fetches_once(self):
        room = FakeRoom(300)

        result = list_since(room.list_messages, "R1", "2024-01-27T00:00:00Z", 0)

        assert len(room.calls) == 1
        assert result["items"] == []
        assert result["truncatedByMax"] is True

    def test_iteration_cap(self):
        room = FakeRoom(BATCH_SIZE * (MAX_ITERATIONS + 5), step=timedelta(seconds=1))

        result = list_since(room.list_messages, "R1", "2020-01-01T00:00:00Z")

        assert len(room.calls) == MAX_ITERATIONS
        assert result["count"] == BATCH_SIZE * MAX_ITERATIONS
        assert result["truncatedByMax"] is False

    def test_boundary_is_inclusive(self):
        room = FakeRoom(10)
        result = list_since(room.list_messages, "R1", _minutes_before_newest(3))
        assert [m["id"] for m in result["items"]] == ["m0", "m1", "m2", "m3"]

    def test_empty_history(self):
        room = FakeRoom(0)
        result = list_since(room.list_messages, "R1", "2024-01-27T00:00:00Z")
        assert result["count"] == 0
        assert len(room.calls) == 1

    def test_unparsable_created_ends_walk(self):
        room = FakeRoom(5)
        room.messages[2]["created"] = "yesterday"

        result = list_since(room.list_messages, "R1", "2024-01-27T00:00:00Z")

        assert [m["id"] for m in result["items"]] == ["m0", "m1"]

    @pytest.mark.parametrize("after", ["not-a-date", "", "2024-13-45"])
    def test_invalid_after_makes_no_calls(self, after):
        room = FakeRoom(10)

        with pytest.raises(InvalidTimeBound) as exc_info:
            list_since(room.list_messages, "R1", after)

        assert room.calls == []
        assert exc_info.value.details == {"after": after}

    def test_upstream_error_propagates(self):
        def failing(room_id, **kwargs):
            raise UpstreamHttpError(404, {"message": "room not found"})

        with pytest.raises(UpstreamHttpError) as exc_info:
            list_since(failing, "R1", "2024-01-27T00:00:00Z")
        assert exc_info.value.details["body"] == {"message": "room not found"}


class TestFetchMessages:
    def test_without_after_is_single_request(self):
        room = FakeRoom(300)

        data = fetch_messages(room, "R1", max=50)

        assert len(room.calls) == 1
        assert room.calls[0]["max"] == 50
        assert len(data["items"]) == 50
        assert "count" not in data

    def test_summarized_items(self):
        room = FakeRoom(3)

        data = fetch_messages(room, "R1", after="2024-01-27T00:00:00Z")

        assert set(data["items"][0]) == set(SUMMARY_FIELDS)
        assert data["items"][0]["parentId"] is None

    def test_full_items(self):
        room = FakeRoom(3)
        data = fetch_messages(room, "R1", summarize=False)
        assert data["items"][0]["html"] == "<p>message 0</p>"

    def test_after_uses_max_as_limit(self):
        room = FakeRoom(300)

        data = fetch_messages(room, "R1", after="2024-01-27T00:00:00Z", max=120)

        assert len(room.calls) == 2
        assert data["count"] == 120
        assert data["truncatedByMax"] is True
