"""
HTTP endpoints of the hosted Polar MCP server using Starlette.

Implements:
- Landing page and health check
- Authorization endpoint with a Jinja2 approval page
- Polar OAuth callback
- Authorization Server Metadata (RFC 8414)
- Protected Resource Metadata (RFC 9728)
- Dynamic Client Registration (RFC 7591)
- Token endpoint
"""

import base64
import binascii
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional
from urllib.parse import unquote

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse

from polar_mcp.auth.credentials import SESSION_QUERY_PARAM
from polar_mcp.auth.flow import AuthorizationRequest
from polar_mcp.core import logger
from polar_mcp.core.constants import (
    HTTP_BAD_REQUEST,
    HTTP_CREATED,
    HTTP_OK,
    HTTP_UNAUTHORIZED,
    SESSION_MODE_CLIENT_ID,
)
from polar_mcp.core.exceptions import (
    AuthorizationFlowError,
    InvalidClientError,
    OAuth2Error,
)
from polar_mcp.services.polar import list_descriptors

if TYPE_CHECKING:
    from polar_mcp.context import AppContext

# Initialize Jinja2 templates
template_dir = Path(__file__).parent / "templates"
jinja_env = Environment(
    loader=FileSystemLoader(str(template_dir)),
    autoescape=select_autoescape(["html"]),
)

APPROVED_CLIENTS_KEY = "approved_clients"


# Pydantic models for request/response validation
class ClientRegistrationRequest(BaseModel):
    """Dynamic Client Registration request (RFC 7591)."""

    redirect_uris: List[str]
    client_name: Optional[str] = None
    token_endpoint_auth_method: str = "client_secret_post"
    grant_types: Optional[List[str]] = None
    response_types: Optional[List[str]] = None


class ClientRegistrationResponse(BaseModel):
    """Dynamic Client Registration response."""

    client_id: str
    client_secret: Optional[str] = None
    client_name: Optional[str] = None
    redirect_uris: List[str]
    grant_types: List[str] = ["authorization_code"]
    response_types: List[str] = ["code"]
    token_endpoint_auth_method: str


class TokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: str
    token_type: str
    expires_in: int
    scope: Optional[str] = None


# Helper function to render Jinja2 templates
def render_template(
    template_name: str, context: dict, status_code: int = HTTP_OK
) -> HTMLResponse:
    """Render Jinja2 template."""
    template = jinja_env.get_template(template_name)
    html_content = template.render(**context)
    return HTMLResponse(content=html_content, status_code=status_code)


def oauth_error_response(error: OAuth2Error) -> JSONResponse:
    """JSON body for an OAuth2 error; invalid_client maps to 401."""
    status_code = HTTP_UNAUTHORIZED if isinstance(error, InvalidClientError) else HTTP_BAD_REQUEST
    return JSONResponse(
        {"error": error.error_code, "error_description": str(error)},
        status_code=status_code,
    )


def render_error(message: str, detail: Optional[str] = None) -> HTMLResponse:
    return render_template(
        "error.html",
        {"message": message, "detail": detail},
        status_code=HTTP_BAD_REQUEST,
    )


# Public endpoints
async def landing(request: Request, context: "AppContext"):
    """Landing page describing the server and its tools."""
    settings = context.settings
    return render_template(
        "landing.html",
        {
            "authorize_url": f"{settings.public_base_url}/authorize",
            "mcp_url": f"{settings.public_base_url}/mcp",
            "delegated": context.delegated,
            "tools": list_descriptors(),
        },
    )


async def health(request: Request, context: "AppContext"):
    """Liveness check."""
    return JSONResponse({"status": "ok", "auth_mode": context.settings.auth_mode})


# Authorization flow endpoints
async def authorize_get(request: Request, context: "AppContext"):
    """Authorization endpoint (GET) - starts an attempt, then approves or redirects."""
    params = request.query_params
    client_name = "Polar MCP"
    redirect_uri = None

    if context.oauth2_server is not None:
        try:
            client = await context.oauth2_server.validate_authorization_request(
                client_id=params.get("client_id"),
                redirect_uri=params.get("redirect_uri"),
                response_type=params.get("response_type"),
                code_challenge=params.get("code_challenge"),
                code_challenge_method=params.get("code_challenge_method"),
            )
        except OAuth2Error as e:
            return oauth_error_response(e)

        scope = params.get("scope", "")
        auth_request = AuthorizationRequest(
            client_id=client.client_id,
            redirect_uri=params.get("redirect_uri"),
            scopes=scope.split() if scope else context.oauth2_server.scopes,
            code_challenge=params.get("code_challenge"),
            code_challenge_method=params.get("code_challenge_method"),
            client_state=params.get("state"),
            resource=params.get("resource"),
        )
        client_name = client.client_name or client.client_id
        redirect_uri = auth_request.redirect_uri
    else:
        auth_request = AuthorizationRequest(client_id=SESSION_MODE_CLIENT_ID)

    pending = await context.flow.start(auth_request)

    # Previously approved in this browser: go straight to Polar
    if pending.client_id in request.session.get(APPROVED_CLIENTS_KEY, []):
        return RedirectResponse(url=context.flow.vendor_redirect(pending), status_code=302)

    return render_template(
        "approve.html",
        {
            "client_name": client_name,
            "redirect_uri": redirect_uri,
            "scopes": pending.scopes,
            "request_id": pending.request_id,
        },
    )


async def authorize_post(request: Request, context: "AppContext"):
    """Authorization endpoint (POST) - records approval and redirects to Polar."""
    form = await request.form()
    request_id = form.get("request_id")

    pending = await context.flow.load_pending(str(request_id)) if request_id else None
    if pending is None:
        return render_error("Authorization request expired, please try again")

    approved = list(request.session.get(APPROVED_CLIENTS_KEY, []))
    if pending.client_id not in approved:
        approved.append(pending.client_id)
        request.session[APPROVED_CLIENTS_KEY] = approved

    return RedirectResponse(url=context.flow.vendor_redirect(pending), status_code=302)


async def callback(request: Request, context: "AppContext"):
    """Polar redirects here with ``code``/``state`` or ``error``."""
    params = request.query_params
    try:
        completion = await context.flow.complete(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
        )
    except AuthorizationFlowError as e:
        logger.warning("Authorization failed (%s): %s", e.reason.value, e.detail)
        return render_error(e.detail or "Authorization failed", e.reason.value)
    except OAuth2Error as e:
        return oauth_error_response(e)

    if completion.redirect_to:
        return RedirectResponse(url=completion.redirect_to, status_code=302)

    base_url = context.settings.public_base_url
    return render_template(
        "success.html",
        {
            "user_id": completion.grant.user_id,
            "mcp_url": f"{base_url}/mcp?{SESSION_QUERY_PARAM}={completion.session_id}",
        },
    )


# OAuth2 endpoint handlers (delegated mode)
async def authorization_server_metadata(request: Request, context: "AppContext"):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    return JSONResponse(context.oauth2_server.get_authorization_server_metadata())


async def protected_resource_metadata(request: Request, context: "AppContext"):
    """Protected Resource Metadata (RFC 9728)."""
    return JSONResponse(context.oauth2_server.get_protected_resource_metadata())


async def register_client(request: Request, context: "AppContext"):
    """Dynamic Client Registration (RFC 7591)."""
    try:
        body = await request.json()
        req = ClientRegistrationRequest(**body)
    except (ValueError, ValidationError) as e:
        return JSONResponse(
            {"error": "invalid_client_metadata", "error_description": str(e)},
            status_code=HTTP_BAD_REQUEST,
        )

    try:
        client, client_secret = await context.oauth2_server.register_client(
            redirect_uris=req.redirect_uris,
            client_name=req.client_name,
            token_endpoint_auth_method=req.token_endpoint_auth_method,
        )
    except OAuth2Error as e:
        return JSONResponse(
            {"error": "invalid_redirect_uri", "error_description": str(e)},
            status_code=HTTP_BAD_REQUEST,
        )

    response = ClientRegistrationResponse(
        client_id=client.client_id,
        client_secret=client_secret,
        client_name=client.client_name,
        redirect_uris=client.redirect_uris,
        token_endpoint_auth_method="none" if client_secret is None else req.token_endpoint_auth_method,
    )
    return JSONResponse(response.model_dump(exclude_none=True), status_code=HTTP_CREATED)


def _basic_client_credentials(request: Request) -> tuple[Optional[str], Optional[str]]:
    """Client credentials from an ``Authorization: Basic`` header (client_secret_basic)."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return None, None
    try:
        decoded = base64.b64decode(auth_header[6:]).decode()
    except (binascii.Error, UnicodeDecodeError):
        return None, None
    client_id, _, client_secret = decoded.partition(":")
    return unquote(client_id), unquote(client_secret)


async def token_endpoint(request: Request, context: "AppContext"):
    """Token endpoint - exchanges authorization code for access token."""
    form = await request.form()
    grant_type = form.get("grant_type")

    # Validate grant type
    if grant_type != "authorization_code":
        return JSONResponse({"error": "unsupported_grant_type"}, status_code=HTTP_BAD_REQUEST)

    client_id, client_secret = _basic_client_credentials(request)
    client_id = client_id or form.get("client_id")
    client_secret = client_secret or form.get("client_secret")

    try:
        token = await context.oauth2_server.exchange_code_for_token(
            code=form.get("code"),
            client_id=client_id,
            client_secret=client_secret,
            code_verifier=form.get("code_verifier"),
            redirect_uri=form.get("redirect_uri"),
        )
    except OAuth2Error as e:
        return oauth_error_response(e)

    response = TokenResponse(**token)
    return JSONResponse(
        response.model_dump(exclude_none=True),
        headers={"Cache-Control": "no-store"},
    )
