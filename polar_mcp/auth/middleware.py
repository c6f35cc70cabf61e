"""
Session gate middleware for the MCP transport endpoints.

Requests to /mcp and /sse must carry a live session (session mode) or a
valid bearer grant (delegated mode). Everything else (landing page, OAuth
endpoints, health checks) passes through.
"""

from typing import List, TYPE_CHECKING

from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from polar_mcp.auth.credentials import resolve_request_credentials
from polar_mcp.core import logger
from polar_mcp.core.constants import APPROVAL_COOKIE_MAX_AGE, HTTP_UNAUTHORIZED
from polar_mcp.core.exceptions import SessionNotFoundError

if TYPE_CHECKING:
    from polar_mcp.context import AppContext

PROTECTED_PATHS = ("/mcp", "/sse")
APPROVAL_SESSION_COOKIE = "polar-mcp-approval"


class SessionGateMiddleware(BaseHTTPMiddleware):
    """
    Middleware rejecting MCP transport requests without valid credentials.

    Session mode expects ``?session=<id>``; delegated mode expects
    ``Authorization: Bearer <jwt>``. If neither is valid, returns 401 with a
    pointer to /authorize.
    """

    def __init__(self, app, context: "AppContext"):
        """
        Initialize middleware.

        Args:
            app: ASGI application
            context: Application context with store and authorization server
        """
        super().__init__(app)
        self.context = context

    async def dispatch(self, request: Request, call_next):
        """Process request with session validation."""
        if not request.url.path.startswith(PROTECTED_PATHS):
            return await call_next(request)

        try:
            await resolve_request_credentials(request, self.context)
        except SessionNotFoundError as e:
            return self._unauthorized_response(str(e))

        return await call_next(request)

    def _unauthorized_response(self, message: str) -> JSONResponse:
        """Create 401 Unauthorized response with re-authorization guidance."""
        base_url = self.context.settings.public_base_url
        headers = {}
        if self.context.delegated:
            # Include resource metadata URL for OAuth2 discovery
            resource_metadata_url = f"{base_url}/.well-known/oauth-protected-resource"
            headers["WWW-Authenticate"] = f'Bearer resource_metadata="{resource_metadata_url}"'

        return JSONResponse(
            {
                "error": message,
                "authorize_url": f"{base_url}/authorize",
            },
            status_code=HTTP_UNAUTHORIZED,
            headers=headers,
        )


def setup_middleware(context: "AppContext") -> List[Middleware]:
    """
    Configure middleware for the hosted server.

    Returns:
        SessionMiddleware (signed approval cookie) followed by the session
        gate; an empty list for the local stdio server
    """
    if not context.hosted:
        return []

    settings = context.settings
    middleware = [
        Middleware(
            SessionMiddleware,
            secret_key=settings.session_secret_key,
            session_cookie=APPROVAL_SESSION_COOKIE,
            max_age=APPROVAL_COOKIE_MAX_AGE,
            https_only=(settings.public_base_url or "").startswith("https://"),
        ),
        Middleware(SessionGateMiddleware, context=context),
    ]
    logger.info("✓ Approval session and MCP session gate enabled")
    return middleware
