"""Custom exceptions for the Polar MCP server."""

from enum import Enum

from fastmcp.exceptions import ToolError


class MCPToolError(ToolError):
    """Custom exception for MCP tool errors that should be returned as JSON-RPC errors."""

    def __init__(self, message: str, code: int = -32000):
        self.message = message
        self.code = code
        super().__init__(message)


# ========================================
# Base Exceptions
# ========================================


class PolarMCPError(Exception):
    """Base exception for all Polar MCP errors."""


# ========================================
# Configuration Exceptions
# ========================================


class ConfigurationError(PolarMCPError):
    """A required setting (token, user id, client credentials) is missing."""


# ========================================
# Upstream API Exceptions
# ========================================


class UpstreamErrorKind(str, Enum):
    """Classification of a failed upstream call."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    HTTP = "http"
    TRANSPORT = "transport"

    @classmethod
    def from_status(cls, status: int) -> "UpstreamErrorKind":
        if status in (401, 403):
            return cls.AUTH
        if status == 404:
            return cls.NOT_FOUND
        return cls.HTTP


class UpstreamError(PolarMCPError):
    """Polar AccessLink answered with a non-success status, or not at all."""

    def __init__(self, kind: UpstreamErrorKind, status: int | None, body: str):
        self.kind = kind
        self.status = status
        self.body = body
        if status is None:
            message = f"Polar API transport error: {body}"
        else:
            message = f"Polar API error ({status}): {body}"
        super().__init__(message)


class TokenExchangeError(PolarMCPError):
    """The Polar token endpoint rejected an authorization code."""

    def __init__(self, status: int | None, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Polar token exchange failed ({status}): {body}")


# ========================================
# Authorization Flow Exceptions
# ========================================


class FlowFailure(str, Enum):
    """Terminal failure reasons of an authorization attempt."""

    VENDOR_DENIED = "vendor_denied"
    BAD_REQUEST = "bad_request"
    CSRF_INVALID = "csrf_invalid"
    REQUEST_EXPIRED = "request_expired"
    TOKEN_EXCHANGE_ERROR = "token_exchange_error"


class AuthorizationFlowError(PolarMCPError):
    """An authorization attempt ended in FAILED(reason)."""

    def __init__(self, reason: FlowFailure, detail: str):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}")


class SessionNotFoundError(PolarMCPError):
    """A tool call referenced an unknown or expired session."""


# ========================================
# Downstream OAuth Exceptions
# ========================================


class OAuth2Error(PolarMCPError):
    """Base exception for errors raised by the downstream authorization server."""

    error_code = "invalid_request"


class InvalidClientError(OAuth2Error):
    """Unknown client or bad client credentials."""

    error_code = "invalid_client"


class InvalidGrantError(OAuth2Error):
    """Authorization code is unknown, expired, reused or fails PKCE."""

    error_code = "invalid_grant"


class UnsupportedResponseTypeError(OAuth2Error):
    """The /authorize request asked for something other than a code."""

    error_code = "unsupported_response_type"
