"""Authorization flow controller.

One state machine drives every authorization attempt::

    start ──> pending request + CSRF state stored (as a pair)
          ──> redirect to Polar
          ──> callback: error? missing params? unknown state? expired request?
          ──> code exchange ──> terminal action

Both single-use records are deleted as soon as the callback resolves them.
Abandoned attempts are left to expire through the store TTL. How a completed
attempt surfaces to the caller is delegated to a ``TerminalAction``: an opaque
session id, or a downstream OAuth authorization code.
"""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from polar_mcp.auth.oauth2_server import OAuth2Server
from polar_mcp.auth.polar_oauth import PolarOAuth
from polar_mcp.auth.storage import (
    AccessGrant,
    StoredAuthRequest,
    StoredCsrfState,
    StoredSession,
)
from polar_mcp.auth.store import OAuthStateStore
from polar_mcp.core.constants import AUTH_REQUEST_TTL, CSRF_STATE_TTL, SESSION_TTL
from polar_mcp.core.exceptions import (
    AuthorizationFlowError,
    FlowFailure,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)


@dataclass
class AuthorizationRequest:
    """Inbound request that starts an authorization attempt."""

    client_id: str
    redirect_uri: str | None = None
    scopes: list[str] = field(default_factory=list)
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    client_state: str | None = None
    resource: str | None = None


@dataclass(frozen=True)
class FlowCompletion:
    """Outcome of a COMPLETED attempt."""

    grant: AccessGrant
    request: StoredAuthRequest
    session_id: str | None = None
    redirect_to: str | None = None


class TerminalAction(ABC):
    """Final step of a successful attempt."""

    @abstractmethod
    async def finalize(self, request: StoredAuthRequest, grant: AccessGrant) -> FlowCompletion:
        """Turn the Polar grant into whatever the caller receives."""


class SessionTerminalAction(TerminalAction):
    """Opaque-session mode: mint a session id the caller embeds in the MCP URL."""

    def __init__(self, store: OAuthStateStore) -> None:
        self.store = store

    async def finalize(self, request: StoredAuthRequest, grant: AccessGrant) -> FlowCompletion:
        now = time.time()
        session = StoredSession(
            session_id=secrets.token_urlsafe(32),
            access_token=grant.access_token,
            user_id=grant.user_id,
            created_at=now,
            expires_at=now + SESSION_TTL,
        )
        await self.store.put_session(session)
        logger.info("Created session for Polar user %s", grant.user_id)
        return FlowCompletion(grant=grant, request=request, session_id=session.session_id)


class DelegatedGrantTerminalAction(TerminalAction):
    """Delegated mode: finish the MCP client's own OAuth request with a code."""

    def __init__(self, oauth2_server: OAuth2Server) -> None:
        self.oauth2_server = oauth2_server

    async def finalize(self, request: StoredAuthRequest, grant: AccessGrant) -> FlowCompletion:
        code = await self.oauth2_server.create_authorization_code(request, grant)
        redirect_to = self.oauth2_server.build_redirect(
            request.redirect_uri or "", code, request.client_state
        )
        logger.info("Issued authorization code to client %s", request.client_id)
        return FlowCompletion(grant=grant, request=request, redirect_to=redirect_to)


class AuthorizationFlow:
    """Runs the redirect-based OAuth2 dance with Polar."""

    def __init__(
        self,
        store: OAuthStateStore,
        polar_oauth: PolarOAuth,
        terminal_action: TerminalAction,
        callback_url: str,
    ) -> None:
        """
        Initialize the flow.

        Args:
            store: Typed store for CSRF state and pending requests
            polar_oauth: Polar OAuth client used for the code exchange
            terminal_action: What a completed attempt produces
            callback_url: Redirect URI registered with Polar; stored with each
                attempt so the exchange reuses the identical string
        """
        self.store = store
        self.polar_oauth = polar_oauth
        self.terminal_action = terminal_action
        self.callback_url = callback_url

    async def start(self, request: AuthorizationRequest) -> StoredAuthRequest:
        """Create the pending request and its CSRF state together."""
        now = time.time()
        pending = StoredAuthRequest(
            request_id=secrets.token_urlsafe(24),
            csrf_token=secrets.token_urlsafe(32),
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            scopes=request.scopes,
            code_challenge=request.code_challenge,
            code_challenge_method=request.code_challenge_method,
            client_state=request.client_state,
            resource=request.resource,
            vendor_redirect_uri=self.callback_url,
            created_at=now,
            expires_at=now + AUTH_REQUEST_TTL,
        )
        await self.store.put_auth_request(pending)
        await self.store.put_csrf_state(
            pending.csrf_token,
            StoredCsrfState(
                request_id=pending.request_id,
                created_at=now,
                expires_at=now + CSRF_STATE_TTL,
            ),
        )
        logger.debug("Started authorization attempt for client %s", request.client_id)
        return pending

    async def load_pending(self, request_id: str) -> StoredAuthRequest | None:
        """Read a pending request without consuming it (approval step)."""
        return await self.store.get_auth_request(request_id)

    def vendor_redirect(self, pending: StoredAuthRequest) -> str:
        """Polar authorize URL for a pending attempt."""
        return self.polar_oauth.authorize_url(pending.vendor_redirect_uri, pending.csrf_token)

    async def complete(
        self,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> FlowCompletion:
        """
        Handle the Polar callback.

        Args:
            code: Authorization code from Polar
            state: CSRF token echoed back by Polar
            error: Error reported by Polar, if any

        Returns:
            FlowCompletion produced by the terminal action

        Raises:
            AuthorizationFlowError: For every FAILED(reason) outcome
        """
        if error:
            raise AuthorizationFlowError(FlowFailure.VENDOR_DENIED, error)

        if not code or not state:
            raise AuthorizationFlowError(FlowFailure.BAD_REQUEST, "Missing code or state")

        csrf_state = await self.store.get_csrf_state(state)
        if csrf_state is None:
            raise AuthorizationFlowError(FlowFailure.CSRF_INVALID, "Invalid or expired state")
        await self.store.delete_csrf_state(state)

        pending = await self.store.get_auth_request(csrf_state.request_id)
        if pending is None:
            raise AuthorizationFlowError(
                FlowFailure.REQUEST_EXPIRED,
                "Authorization request expired, please try again",
            )
        await self.store.delete_auth_request(pending.request_id)

        try:
            grant = await self.polar_oauth.exchange_code(code, pending.vendor_redirect_uri)
        except TokenExchangeError as e:
            logger.warning("Token exchange failed: %s", e)
            raise AuthorizationFlowError(FlowFailure.TOKEN_EXCHANGE_ERROR, str(e)) from e

        await self.polar_oauth.register_user(grant.access_token, grant.user_id)

        return await self.terminal_action.finalize(pending, grant)
