"""People tools for the Webex MCP server."""

import asyncio
import json

from mcp.server.fastmcp import Context

from webex_mcp.errors import error_payload
from webex_mcp.server import AppContext, mcp


@mcp.tool()
async def get_my_own_details(ctx: Context = None) -> str:
    """Get the profile of the authenticated user (id, emails, displayName, orgId...)."""
    app_ctx: AppContext = ctx.request_context.lifespan_context
    try:
        await app_ctx.auth.ensure_token()
        data = await asyncio.to_thread(app_ctx.client.get_me)
    except Exception as e:
        return json.dumps(error_payload(e), default=str)
    return json.dumps(data, ensure_ascii=False)
