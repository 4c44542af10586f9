"""Webex MCP Server.

Exposes Webex messaging, room, people and auth tools via MCP.
Uses FastMCP with a lifespan context manager to share a single
authenticated WebexClient across all tool invocations.
"""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from webex_mcp.auth import WebexAuth
from webex_mcp.config import WebexConfig
from webex_mcp.webex_client import WebexClient

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Shared application state available to all tools via lifespan context."""
    client: WebexClient
    auth: WebexAuth


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Authenticate on startup; no tool runs before this completes.

    NoAuthConfigured / PlatformUnsupported propagate and abort startup.
    """
    config = WebexConfig.from_env()
    auth = WebexAuth(config)
    await auth.initialize()
    try:
        yield AppContext(client=WebexClient(auth), auth=auth)
    finally:
        await auth.shutdown()


# Create the MCP server instance
mcp = FastMCP("webex", lifespan=app_lifespan)

# ------------------------------------------------------------------
# Import tool modules so their @mcp.tool() decorators register tools.
# Each module imports `mcp` from this file and decorates its functions.
# ------------------------------------------------------------------
import webex_mcp.tools.messages  # noqa: E402, F401
import webex_mcp.tools.rooms     # noqa: E402, F401
import webex_mcp.tools.people    # noqa: E402, F401
import webex_mcp.tools.auth      # noqa: E402, F401


def configure_logging(level: str = "INFO") -> None:
    """Log to stderr; stdout carries the MCP stdio protocol."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )


def main():
    """Entry point: run the MCP server over stdio."""
    configure_logging(WebexConfig.from_env().log_level)
    mcp.run()


if __name__ == "__main__":
    main()
