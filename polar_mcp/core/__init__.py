"""Core functionality for the Polar MCP server."""

from .constants import (
    AUTH_REQUEST_TTL,
    CSRF_STATE_TTL,
    HTTP_OK,
    POLAR_API_BASE,
    SESSION_TTL,
)
from .decorators import track_request
from .exceptions import (
    AuthorizationFlowError,
    ConfigurationError,
    FlowFailure,
    MCPToolError,
    PolarMCPError,
    SessionNotFoundError,
    TokenExchangeError,
    UpstreamError,
    UpstreamErrorKind,
)
from .logging import configure_logging, logger

__all__ = [
    # Core
    "AuthorizationFlowError",
    "ConfigurationError",
    "FlowFailure",
    "MCPToolError",
    "PolarMCPError",
    "SessionNotFoundError",
    "TokenExchangeError",
    "UpstreamError",
    "UpstreamErrorKind",
    "configure_logging",
    "logger",
    "track_request",
    # Constants - most commonly used
    "AUTH_REQUEST_TTL",
    "CSRF_STATE_TTL",
    "HTTP_OK",
    "POLAR_API_BASE",
    "SESSION_TTL",
]
