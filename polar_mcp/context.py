"""Application context for the Polar MCP server.

Everything request handlers need is built once from ``Settings`` at startup
and passed around explicitly; nothing below this point reads the environment.
"""

import logging
from dataclasses import dataclass

import httpx

from polar_mcp.auth.flow import (
    AuthorizationFlow,
    DelegatedGrantTerminalAction,
    SessionTerminalAction,
    TerminalAction,
)
from polar_mcp.auth.oauth2_server import OAuth2Server
from polar_mcp.auth.polar_oauth import PolarOAuth
from polar_mcp.auth.store import KeyValueStore, OAuthStateStore, create_store
from polar_mcp.config import Settings
from polar_mcp.core.exceptions import ConfigurationError
from polar_mcp.services.polar import PolarClient, ToolDispatcher

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Components shared by routes, middleware and tools."""

    settings: Settings
    store: OAuthStateStore
    client: PolarClient
    dispatcher: ToolDispatcher
    polar_oauth: PolarOAuth | None = None
    oauth2_server: OAuth2Server | None = None
    flow: AuthorizationFlow | None = None

    @property
    def hosted(self) -> bool:
        return self.flow is not None

    @property
    def delegated(self) -> bool:
        return self.oauth2_server is not None


def build_app_context(
    settings: Settings,
    *,
    kv: KeyValueStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AppContext:
    """
    Assemble the application context.

    Args:
        settings: Loaded settings
        kv: Key-value store to use instead of the configured backend
        transport: httpx transport for all outbound calls (tests)

    Returns:
        AppContext; hosted components are only built for HTTP transports

    Raises:
        ConfigurationError: If a hosted transport lacks Polar client credentials
    """
    store = OAuthStateStore(kv or create_store(settings.store_backend, settings.store_dir))
    client = PolarClient(settings.polar_api_base, transport=transport)
    context = AppContext(
        settings=settings,
        store=store,
        client=client,
        dispatcher=ToolDispatcher(client),
    )

    if settings.transport == "stdio":
        return context

    if not settings.has_polar_client():
        raise ConfigurationError(
            "POLAR_CLIENT_ID and POLAR_CLIENT_SECRET are required for the hosted server",
        )

    context.polar_oauth = PolarOAuth(
        settings.polar_client_id or "",
        settings.polar_client_secret or "",
        auth_url=settings.polar_auth_url,
        token_url=settings.polar_token_url,
        api_base=settings.polar_api_base,
        transport=transport,
    )

    terminal_action: TerminalAction
    if settings.auth_mode == "delegated":
        context.oauth2_server = OAuth2Server(
            issuer=settings.public_base_url or "",
            secret_key=settings.oauth2_secret_key,
            store=store,
            access_token_ttl_seconds=settings.access_token_ttl_seconds,
            scopes=settings.get_oauth2_scopes_list(),
        )
        terminal_action = DelegatedGrantTerminalAction(context.oauth2_server)
    else:
        terminal_action = SessionTerminalAction(store)

    context.flow = AuthorizationFlow(
        store=store,
        polar_oauth=context.polar_oauth,
        terminal_action=terminal_action,
        callback_url=settings.callback_url,
    )
    logger.info("Hosted authorization enabled (mode: %s)", settings.auth_mode)
    return context
