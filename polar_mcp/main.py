"""
Main entry point for the Polar AccessLink MCP server.

The stdio transport serves a single user whose token and user id come from
the environment. The http and sse transports host the authorization flow
and serve any number of users, each bound to a session or OAuth grant.
"""

import asyncio
import sys
import traceback

from fastmcp import FastMCP

from polar_mcp.auth.credentials import (
    CredentialResolver,
    RequestCredentialResolver,
    SettingsCredentialResolver,
)
from polar_mcp.auth.middleware import setup_middleware
from polar_mcp.auth.setup import setup_auth_routes
from polar_mcp.config import Settings, get_settings
from polar_mcp.context import AppContext, build_app_context
from polar_mcp.core import logger
from polar_mcp.tools import ToolRunner, register_tools

SERVER_NAME = "Polar AccessLink"

# Normalize transport names to FastMCP Transport literals
TRANSPORT_MAP = {
    "http": "streamable-http",
    "sse": "sse",
    "stdio": "stdio",
}


def create_mcp_server(context: AppContext) -> FastMCP:
    """
    Create the FastMCP server for an application context.

    Registers every tool and, for hosted transports, the HTTP endpoints of the
    authorization flow.
    """
    mcp = FastMCP(SERVER_NAME)

    resolver: CredentialResolver
    if context.hosted:
        resolver = RequestCredentialResolver(context)
        setup_auth_routes(mcp, context)
    else:
        resolver = SettingsCredentialResolver(context.settings)

    register_tools(mcp, ToolRunner(context.dispatcher, resolver))
    return mcp


async def main(settings: Settings | None = None) -> None:
    """
    Main async function to run the MCP server.
    """
    settings = settings or get_settings()
    logger.info("Initializing FastMCP server...")
    logger.debug("Settings: %s", settings.to_dict())

    context = build_app_context(settings)
    mcp = create_mcp_server(context)

    fastmcp_transport = TRANSPORT_MAP[settings.transport]
    logger.info("Transport mode: %s", fastmcp_transport)

    # Flush output before starting server
    sys.stderr.flush()

    if fastmcp_transport == "stdio":
        logger.info("Setting up stdio server...")
        await mcp.run_async(transport="stdio")
        return

    logger.info(
        "Setting up %s server on %s:%s (public URL: %s)",
        fastmcp_transport,
        settings.host,
        settings.port,
        settings.public_base_url,
    )
    await mcp.run_async(
        transport=fastmcp_transport,  # type: ignore[arg-type]
        host=settings.host,
        port=settings.port,
        middleware=setup_middleware(context),
    )


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped")
    except Exception as e:
        logger.error(f"Error in main: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        sys.exit(1)


if __name__ == "__main__":
    run()
