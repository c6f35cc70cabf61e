"""Application-wide constants for the Polar MCP server.

Upstream endpoints, storage key layout and lifetimes of the OAuth artefacts
live here so that the flow, the store adapter and the tests agree on them.
"""

# ========================================
# Polar AccessLink Endpoints
# ========================================

POLAR_API_BASE = "https://www.polaraccesslink.com/v3"
POLAR_AUTH_URL = "https://flow.polar.com/oauth2/authorization"
POLAR_TOKEN_URL = "https://polarremote.com/v2/oauth2/token"

# Prefix of the member id sent when registering a user with AccessLink
MEMBER_ID_PREFIX = "mcp_user_"

# ========================================
# HTTP Status Codes
# ========================================

HTTP_OK = 200
HTTP_CREATED = 201
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_CONFLICT = 409

# ========================================
# Key-Value Store Layout
# ========================================

STATE_KEY_PREFIX = "state:"
AUTH_REQUEST_KEY_PREFIX = "auth_request:"
SESSION_KEY_PREFIX = "session:"
CLIENT_KEY_PREFIX = "client:"
AUTH_CODE_KEY_PREFIX = "auth_code:"
GRANT_KEY_PREFIX = "grant:"

# ========================================
# Lifetimes (seconds)
# ========================================

CSRF_STATE_TTL = 600  # 10 minutes
AUTH_REQUEST_TTL = 600  # 10 minutes
SESSION_TTL = 86400  # 24 hours
AUTH_CODE_TTL = 600  # 10 minutes
ACCESS_TOKEN_TTL_DEFAULT = 86400  # matches the session lifetime
APPROVAL_COOKIE_MAX_AGE = 31536000  # 1 year

# ========================================
# Local Deployment
# ========================================

LOCAL_CALLBACK_PORT = 8888

# Client id recorded for browser-initiated flows in opaque-session mode
SESSION_MODE_CLIENT_ID = "polar-mcp-session"
