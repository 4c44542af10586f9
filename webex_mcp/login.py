#!/usr/bin/env python3
"""
Webex personal token login
Usage: webex-mcp-login [--status | --clear]
Sign in through the browser window; the token is kept in the secure store
so the MCP server (WEBEX_AUTO_REFRESH_TOKEN=true) starts without prompting.
"""
import asyncio
import json
import sys

from webex_mcp.auth import build_token_manager
from webex_mcp.config import WebexConfig
from webex_mcp.errors import WebexMCPError
from webex_mcp.models import AuthMode
from webex_mcp.token_manager import TokenLifecycleManager


async def login(manager: TokenLifecycleManager) -> bool:
    """Fetch a personal access token and persist it."""
    if not manager.store.is_supported():
        print("ERROR: no usable secure storage on this host. "
              "Set WEBEX_TOKEN_STORE=file and WEBEX_TOKEN_STORE_PASSPHRASE.")
        return False

    try:
        await manager.force_refresh()
    except WebexMCPError as e:
        print(f"Login failed: {e}")
        return False
    finally:
        await manager.shutdown()

    status = manager.get_token_status()
    print(f"*** SUCCESS! Token stored, expires at {status['expires_at']} ***")
    return True


def main():
    config = WebexConfig.from_env()
    manager = build_token_manager(AuthMode.AUTO_REFRESH, config)

    if len(sys.argv) > 1 and sys.argv[1] == "--status":
        print(json.dumps(manager.get_token_status(), indent=2))
        return

    if len(sys.argv) > 1 and sys.argv[1] == "--clear":
        manager.clear_cached_token()
        print("Stored token cleared.")
        return

    if not asyncio.run(login(manager)):
        sys.exit(1)


if __name__ == "__main__":
    main()
