"""
Polar AccessLink authentication helper.

Obtains an access token for the local (stdio) server:

1. Set POLAR_CLIENT_ID and POLAR_CLIENT_SECRET
2. Run ``polar-mcp-auth``
3. Open the printed URL and authorize the application
4. Export the printed POLAR_ACCESS_TOKEN and POLAR_USER_ID

The Polar application must list http://localhost:8888/callback as redirect URI.
"""

import argparse
import asyncio
import socket
import sys

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route

from polar_mcp.auth.polar_oauth import PolarOAuth
from polar_mcp.auth.storage import AccessGrant
from polar_mcp.config import Settings, get_settings
from polar_mcp.core import logger
from polar_mcp.core.constants import (
    HTTP_BAD_REQUEST,
    LOCAL_CALLBACK_PORT,
)
from polar_mcp.core.exceptions import (
    AuthorizationFlowError,
    ConfigurationError,
    FlowFailure,
    TokenExchangeError,
)

CALLBACK_HOST = "127.0.0.1"

SUCCESS_PAGE = (
    "<html><body><h1>Success!</h1>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)


def build_callback_app(code_future: "asyncio.Future[str]") -> Starlette:
    """One-route app resolving ``code_future`` with the code or the Polar error."""

    async def callback(request: Request):
        error = request.query_params.get("error")
        code = request.query_params.get("code")
        if error:
            if not code_future.done():
                code_future.set_exception(
                    AuthorizationFlowError(FlowFailure.VENDOR_DENIED, error)
                )
            return HTMLResponse(
                "<html><body><h1>Error</h1><p>Authorization was denied.</p></body></html>",
                status_code=HTTP_BAD_REQUEST,
            )
        if not code:
            return HTMLResponse("Missing code", status_code=HTTP_BAD_REQUEST)
        if not code_future.done():
            code_future.set_result(code)
        return HTMLResponse(SUCCESS_PAGE)

    return Starlette(routes=[Route("/callback", callback, methods=["GET"])])


def bind_callback_socket(port: int = LOCAL_CALLBACK_PORT) -> socket.socket:
    """
    Reserve the callback port before the user is sent to Polar.

    Raises:
        ConfigurationError: If the port cannot be bound
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((CALLBACK_HOST, port))
    except OSError as e:
        sock.close()
        raise ConfigurationError(
            f"Cannot listen on {CALLBACK_HOST}:{port} for the OAuth callback ({e}). "
            "Stop the process using it or pick another port with --port.",
        ) from e
    return sock


async def wait_for_code(sock: socket.socket) -> str:
    """
    Serve the callback on ``sock`` until Polar redirects back once.

    Raises:
        AuthorizationFlowError: If Polar reports an error on the callback
        ConfigurationError: If the callback server stops before a code arrives
    """
    code_future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
    config = uvicorn.Config(
        build_callback_app(code_future),
        log_level="warning",
        access_log=False,
    )
    server = uvicorn.Server(config)
    serve_task = asyncio.create_task(server.serve(sockets=[sock]))
    try:
        await asyncio.wait({code_future, serve_task}, return_when=asyncio.FIRST_COMPLETED)
        if not code_future.done():
            serve_task.result()
            raise ConfigurationError(
                "Local callback server stopped before authorization completed",
            )
        return code_future.result()
    finally:
        server.should_exit = True
        if not serve_task.done():
            await serve_task


async def authenticate(polar_oauth: PolarOAuth, port: int = LOCAL_CALLBACK_PORT) -> AccessGrant:
    """
    Run the one-shot local authorization.

    Raises:
        ConfigurationError: If the callback port is unavailable
        AuthorizationFlowError: If Polar reports an error on the callback
        TokenExchangeError: If the code cannot be exchanged
    """
    redirect_uri = f"http://localhost:{port}/callback"
    sock = bind_callback_socket(port)
    try:
        print("Step 1: Open this URL in your browser to authorize:\n")
        print(f"  {polar_oauth.authorize_url(redirect_uri)}\n")
        print("Waiting for authorization...\n")
        code = await wait_for_code(sock)
    finally:
        sock.close()

    print("Step 2: Exchanging code for access token...")
    grant = await polar_oauth.exchange_code(code, redirect_uri)

    print("Step 3: Registering user with AccessLink...")
    if not await polar_oauth.register_user(grant.access_token, grant.user_id):
        print("  Registration did not succeed; data endpoints may be unavailable.")
    return grant


def print_exports(grant: AccessGrant) -> None:
    print("\nSUCCESS! Add this to your MCP client config or environment:\n")
    print(f'  export POLAR_ACCESS_TOKEN="{grant.access_token}"')
    print(f'  export POLAR_USER_ID="{grant.user_id}"\n')


def build_polar_oauth(settings: Settings) -> PolarOAuth:
    return PolarOAuth(
        settings.polar_client_id or "",
        settings.polar_client_secret or "",
        auth_url=settings.polar_auth_url,
        token_url=settings.polar_token_url,
        api_base=settings.polar_api_base,
    )


def run() -> None:
    """Console script entry point."""
    parser = argparse.ArgumentParser(
        description="Obtain a Polar AccessLink access token for the local MCP server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Get client credentials at https://admin.polaraccesslink.com/",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=LOCAL_CALLBACK_PORT,
        help="Local callback port (default: %(default)s)",
    )
    args = parser.parse_args()

    settings = get_settings()
    if not settings.has_polar_client():
        print(
            "Error: Please set POLAR_CLIENT_ID and POLAR_CLIENT_SECRET environment variables",
            file=sys.stderr,
        )
        sys.exit(1)

    try:
        grant = asyncio.run(authenticate(build_polar_oauth(settings), args.port))
    except (AuthorizationFlowError, ConfigurationError, TokenExchangeError) as e:
        logger.error("Authentication failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    print_exports(grant)


if __name__ == "__main__":
    run()
