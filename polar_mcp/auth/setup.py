"""
HTTP route registration for the hosted FastMCP server.

Route handlers live in polar_mcp.auth.routes; this module wraps them in
closures that inject the application context and registers them with
``mcp.custom_route``.
"""

from typing import TYPE_CHECKING

from polar_mcp.core import logger

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from polar_mcp.context import AppContext


def setup_auth_routes(mcp: "FastMCP", context: "AppContext") -> int:
    """
    Register the hosted server's HTTP endpoints with FastMCP.

    Registers:
    - / (landing page) and /health
    - /authorize (GET/POST - approval and redirect to Polar)
    - /callback (Polar redirect target)

    and in delegated mode additionally:
    - /.well-known/oauth-authorization-server (RFC 8414)
    - /.well-known/oauth-protected-resource (RFC 9728)
    - /register (RFC 7591 - Dynamic Client Registration)
    - /token (Token exchange)

    Args:
        mcp: FastMCP server instance
        context: Application context with a configured authorization flow

    Returns:
        Number of registered routes
    """
    from polar_mcp.auth.routes import (
        authorization_server_metadata,
        authorize_get,
        authorize_post,
        callback,
        health,
        landing,
        protected_resource_metadata,
        register_client,
        token_endpoint,
    )

    @mcp.custom_route("/", methods=["GET"])
    async def _landing(request):
        """Landing page."""
        return await landing(request, context)

    @mcp.custom_route("/health", methods=["GET"])
    async def _health(request):
        """Health check."""
        return await health(request, context)

    @mcp.custom_route("/authorize", methods=["GET"])
    async def _authorize_get(request):
        """Authorization endpoint (GET) - shows approval page."""
        return await authorize_get(request, context)

    @mcp.custom_route("/authorize", methods=["POST"])
    async def _authorize_post(request):
        """Authorization endpoint (POST) - processes approval."""
        return await authorize_post(request, context)

    @mcp.custom_route("/callback", methods=["GET"])
    async def _callback(request):
        """Polar OAuth callback."""
        return await callback(request, context)

    route_count = 5

    if context.delegated:
        @mcp.custom_route("/.well-known/oauth-authorization-server", methods=["GET"])
        async def _authorization_server_metadata(request):
            """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
            return await authorization_server_metadata(request, context)

        @mcp.custom_route("/.well-known/oauth-protected-resource", methods=["GET"])
        async def _protected_resource_metadata(request):
            """Protected Resource Metadata (RFC 9728)."""
            return await protected_resource_metadata(request, context)

        @mcp.custom_route("/register", methods=["POST"])
        async def _register_client(request):
            """Dynamic Client Registration (RFC 7591)."""
            return await register_client(request, context)

        @mcp.custom_route("/token", methods=["POST"])
        async def _token_endpoint(request):
            """Token endpoint - exchanges authorization code for access token."""
            return await token_endpoint(request, context)

        route_count += 4

    logger.info("✓ HTTP endpoints registered (%d routes)", route_count)
    return route_count
