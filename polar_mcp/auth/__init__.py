"""Authorization for the hosted Polar MCP server.

Covers the redirect flow with Polar (CSRF state, pending requests, code
exchange), the opaque-session and delegated-OAuth terminal actions, the
HTTP endpoints and the session gate in front of the MCP transports.
"""

from polar_mcp.auth.credentials import (
    CredentialResolver,
    Credentials,
    RequestCredentialResolver,
    SettingsCredentialResolver,
)
from polar_mcp.auth.flow import (
    AuthorizationFlow,
    AuthorizationRequest,
    DelegatedGrantTerminalAction,
    FlowCompletion,
    SessionTerminalAction,
)
from polar_mcp.auth.oauth2_server import OAuth2Server
from polar_mcp.auth.polar_oauth import PolarOAuth
from polar_mcp.auth.store import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    OAuthStateStore,
    create_store,
)

__all__ = [
    "AuthorizationFlow",
    "AuthorizationRequest",
    "CredentialResolver",
    "Credentials",
    "DelegatedGrantTerminalAction",
    "FileKeyValueStore",
    "FlowCompletion",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "OAuth2Server",
    "OAuthStateStore",
    "PolarOAuth",
    "RequestCredentialResolver",
    "SessionTerminalAction",
    "SettingsCredentialResolver",
    "create_store",
]
