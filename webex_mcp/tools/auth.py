"""Authentication tools for the Webex MCP server.

Lets the MCP client inspect the active credential mode, rotate the token
(browser fetch for auto-refresh mode, OAuth authorization for oauth mode)
and log out. A static token cannot be rotated or cleared from here.
"""

import json
import logging

from mcp.server.fastmcp import Context

from webex_mcp.errors import WebexMCPError, error_payload
from webex_mcp.server import AppContext, mcp

logger = logging.getLogger(__name__)


def _get_app_ctx(ctx: Context) -> AppContext:
    """Extract the AppContext from the MCP lifespan context."""
    return ctx.request_context.lifespan_context


@mcp.tool()
def auth_status(ctx: Context = None) -> str:
    """Show which authentication method is active and when the token expires."""
    try:
        status = _get_app_ctx(ctx).auth.status()
    except Exception as e:
        logger.exception("Error reading auth status")
        return json.dumps(error_payload(e), default=str)
    return json.dumps(status)


@mcp.tool()
async def authenticate(force: bool = True, ctx: Context = None) -> str:
    """Authenticate again with Webex.

    In auto-refresh mode this opens the browser to fetch a new personal
    access token. In OAuth mode ``force`` runs a new authorization in the
    browser; without it a stored token is reused when still valid.

    Args:
        force: Discard stored credentials and authenticate from scratch.

    Returns:
        JSON result with success status and any error details.
    """
    auth = _get_app_ctx(ctx).auth
    try:
        await auth.reauthenticate(force=force)
    except WebexMCPError as e:
        return json.dumps({"success": False, **e.to_dict()}, default=str)
    except Exception as e:
        logger.exception("Authentication failed")
        return json.dumps({"success": False, **error_payload(e)}, default=str)
    return json.dumps({"success": True, "message": "Authentication successful"})


@mcp.tool()
async def logout(ctx: Context = None) -> str:
    """Clear stored Webex tokens. Call authenticate to sign in again."""
    auth = _get_app_ctx(ctx).auth
    try:
        await auth.logout()
    except Exception as e:
        if not isinstance(e, WebexMCPError):
            logger.exception("Logout failed")
        return json.dumps({"success": False, **error_payload(e)}, default=str)
    return json.dumps({
        "success": True,
        "message": "Logged out successfully. Stored tokens have been cleared.",
    })
