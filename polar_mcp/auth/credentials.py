"""Resolve the Polar credentials a tool call runs with.

The local server uses the token and user id from its settings. The hosted
server looks up the session (session mode) or the bearer grant (delegated
mode) attached to the current HTTP request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastmcp.server.dependencies import get_http_request
from starlette.requests import Request

from polar_mcp.core.exceptions import ConfigurationError, SessionNotFoundError

if TYPE_CHECKING:
    from polar_mcp.config import Settings
    from polar_mcp.context import AppContext

SESSION_QUERY_PARAM = "session"


@dataclass(frozen=True)
class Credentials:
    """Access token and (optional) user id of the caller."""

    access_token: str
    user_id: int | None = None


def bearer_token(request: Request) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()  # Remove "Bearer "
    return token or None


async def resolve_request_credentials(request: Request, context: "AppContext") -> Credentials:
    """
    Find the Polar credentials bound to an inbound MCP request.

    Raises:
        SessionNotFoundError: If the request carries no valid session or grant
    """
    authorize_url = f"{context.settings.public_base_url}/authorize"

    if context.oauth2_server is not None:
        token = bearer_token(request)
        grant = await context.oauth2_server.load_grant(token) if token else None
        if grant is None:
            raise SessionNotFoundError(
                f"Missing or expired access token. Please authorize again at {authorize_url}",
            )
        return Credentials(grant.access_token, grant.user_id)

    session_id = request.query_params.get(SESSION_QUERY_PARAM)
    if not session_id:
        raise SessionNotFoundError(f"Missing session. Please authorize first at {authorize_url}")
    session = await context.store.get_session(session_id)
    if session is None:
        raise SessionNotFoundError(
            f"Session expired. Please authorize again at {authorize_url}",
        )
    return Credentials(session.access_token, session.user_id)


class CredentialResolver(ABC):
    """Source of credentials for the tool call in progress."""

    @abstractmethod
    async def resolve(self) -> Credentials:
        """Return credentials or raise ConfigurationError/SessionNotFoundError."""


class SettingsCredentialResolver(CredentialResolver):
    """Local deployment: credentials come from POLAR_ACCESS_TOKEN/POLAR_USER_ID."""

    def __init__(self, settings: "Settings") -> None:
        self.settings = settings

    async def resolve(self) -> Credentials:
        if not self.settings.polar_access_token:
            raise ConfigurationError(
                "POLAR_ACCESS_TOKEN environment variable is required. "
                "Please set it with your Polar AccessLink access token.",
            )
        return Credentials(self.settings.polar_access_token, self.settings.polar_user_id)


class RequestCredentialResolver(CredentialResolver):
    """Hosted deployment: credentials come from the current HTTP request."""

    def __init__(self, context: "AppContext") -> None:
        self.context = context

    async def resolve(self) -> Credentials:
        try:
            request = get_http_request()
        except RuntimeError as e:
            raise SessionNotFoundError("No HTTP request bound to this tool call") from e
        return await resolve_request_credentials(request, self.context)
