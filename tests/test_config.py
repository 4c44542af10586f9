"""Test environment-driven configuration and small helpers."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from webex_mcp.config import DEFAULT_BASE_URL, DEFAULT_REDIRECT_URI, WebexConfig
from webex_mcp.utils import format_iso, parse_timestamp, strip_bearer


def test_defaults():
    config = WebexConfig.from_env({})
    assert config.base_url == DEFAULT_BASE_URL
    assert config.oauth_redirect_uri == DEFAULT_REDIRECT_URI
    assert config.oauth_scopes == ["spark:all"]
    assert config.token_store == "keychain"


def test_from_env():
    config = WebexConfig.from_env({
        "WEBEX_PUBLIC_WORKSPACE_API_KEY": " Bearer abc ",
        "WEBEX_AUTO_REFRESH_TOKEN": "TRUE",
        "WEBEX_OAUTH_CLIENT_ID": "id",
        "WEBEX_OAUTH_CLIENT_SECRET": "secret",
        "WEBEX_OAUTH_SCOPES": "spark:messages_read spark:rooms_read",
        "WEBEX_API_BASE_URL": "https://example.test/v1/",
        "WEBEX_TOKEN_STORE": "File",
        "WEBEX_TOKEN_STORE_DIR": "/tmp/webex-state",
        "WEBEX_TOKEN_STORE_PASSPHRASE": "pw",
        "WEBEX_LOG_LEVEL": "debug",
    })

    assert config.static_token == "Bearer abc"
    assert config.auto_refresh is True
    assert config.has_oauth_credentials
    assert config.oauth_scopes == ["spark:messages_read", "spark:rooms_read"]
    assert config.base_url == "https://example.test/v1"
    assert config.token_store == "file"
    assert config.token_store_dir == Path("/tmp/webex-state")
    assert config.browser_profile_dir == Path("/tmp/webex-state/browser")
    assert config.log_level == "DEBUG"


def test_auto_refresh_needs_literal_true():
    assert not WebexConfig.from_env({"WEBEX_AUTO_REFRESH_TOKEN": "1"}).auto_refresh


@pytest.mark.parametrize("value, expected", [
    ("2024-01-27T18:00:00Z", datetime(2024, 1, 27, 18, tzinfo=timezone.utc)),
    ("2024-01-27T18:00:00.123Z", datetime(2024, 1, 27, 18, 0, 0, 123000, tzinfo=timezone.utc)),
    ("2024-01-27T20:00:00+02:00", datetime(2024, 1, 27, 18, tzinfo=timezone.utc)),
    ("2024-01-27", datetime(2024, 1, 27, tzinfo=timezone.utc)),
])
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


def test_format_iso():
    assert format_iso(datetime(2024, 1, 27, 18, tzinfo=timezone.utc)) == "2024-01-27T18:00:00.000Z"


def test_strip_bearer():
    assert strip_bearer("Bearer xyz") == "xyz"
    assert strip_bearer("  xyz ") == "xyz"
