"""Test the Webex HTTP client against a mocked requests session."""

from unittest.mock import MagicMock

import pytest
import requests

from webex_mcp.auth import WebexAuth
from webex_mcp.config import WebexConfig
from webex_mcp.errors import UpstreamHttpError, WebexMCPError
from webex_mcp.webex_client import WebexClient, _clean_params


def _response(status_code=200, body=None, text=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    if body is not None:
        resp.json.return_value = body
        resp.content = b"{...}"
        resp.text = str(body)
    else:
        resp.json.side_effect = ValueError("no json")
        resp.text = text or ""
        resp.content = (text or "").encode()
    return resp


@pytest.fixture
async def auth():
    auth = WebexAuth(WebexConfig(static_token="abc", base_url="https://webexapis.com/v1"))
    await auth.initialize()
    return auth


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def test_clean_params_drops_unset_values():
    assert _clean_params({"roomId": "R1", "parentId": None, "before": "", "max": 0}) == {
        "roomId": "R1",
        "max": 0,
    }
    assert _clean_params(None) == {}


async def test_list_messages_sends_only_set_params(auth, session):
    session.request.return_value = _response(body={"items": []})
    client = WebexClient(auth, session=session)

    client.list_messages("R1", before_message="M9", max=100)

    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("GET", "https://webexapis.com/v1/messages")
    assert kwargs["params"] == {"roomId": "R1", "beforeMessage": "M9", "max": 100}
    assert kwargs["headers"]["Authorization"] == "Bearer abc"
    assert kwargs["json"] is None


async def test_create_message_posts_json(auth, session):
    session.request.return_value = _response(body={"id": "M1"})
    client = WebexClient(auth, session=session)

    assert client.create_message(room_id="R1", markdown="**hi**") == {"id": "M1"}

    kwargs = session.request.call_args.kwargs
    assert kwargs["json"] == {"roomId": "R1", "markdown": "**hi**"}
    assert kwargs["headers"]["Content-Type"] == "application/json"


async def test_delete_returns_empty_dict_on_204(auth, session):
    session.request.return_value = _response(status_code=204, text="")
    client = WebexClient(auth, session=session)

    assert client.delete_message("M1") == {}
    assert session.request.call_args.args == ("DELETE", "https://webexapis.com/v1/messages/M1")


async def test_error_keeps_json_body(auth, session):
    body = {"message": "The requested resource could not be found.", "trackingId": "T1"}
    session.request.return_value = _response(status_code=404, body=body)
    client = WebexClient(auth, session=session)

    with pytest.raises(UpstreamHttpError) as exc_info:
        client.get_room("missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.details["body"] == body
    assert exc_info.value.details["url"] == "https://webexapis.com/v1/rooms/missing"


async def test_error_keeps_text_body(auth, session):
    session.request.return_value = _response(status_code=502, text="Bad Gateway")
    client = WebexClient(auth, session=session)

    with pytest.raises(UpstreamHttpError) as exc_info:
        client.get_me()

    assert exc_info.value.body == "Bad Gateway"


async def test_transport_failure(auth, session):
    session.request.side_effect = requests.exceptions.ConnectionError("refused")
    client = WebexClient(auth, session=session)

    with pytest.raises(WebexMCPError) as exc_info:
        client.get_me()

    assert not isinstance(exc_info.value, UpstreamHttpError)


def test_retries_once_when_token_rotated(session):
    auth = MagicMock()
    auth.url.return_value = "https://webexapis.com/v1/people/me"
    auth.get_token.side_effect = ["old", "new", "new", "new"]
    session.request.side_effect = [
        _response(status_code=401, body={"message": "expired"}),
        _response(body={"id": "P1"}),
    ]
    client = WebexClient(auth, session=session)

    assert client.get_me() == {"id": "P1"}
    assert session.request.call_count == 2


def test_401_with_unchanged_token_is_not_retried(session):
    auth = MagicMock()
    auth.url.return_value = "https://webexapis.com/v1/people/me"
    auth.get_token.return_value = "same"
    session.request.return_value = _response(status_code=401, body={"message": "expired"})
    client = WebexClient(auth, session=session)

    with pytest.raises(UpstreamHttpError) as exc_info:
        client.get_me()

    assert exc_info.value.status_code == 401
    assert session.request.call_count == 1
