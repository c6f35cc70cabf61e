"""
OAuth2 Authorization Server for MCP (delegated-authorization mode).

Implements OAuth 2.1 with PKCE according to the MCP specification, acting as
authorization server toward the MCP client while Polar remains the upstream
identity provider. Supports Dynamic Client Registration (DCR).

The Polar grant obtained on the callback becomes the private payload of the
authorization code and, after the token exchange, of a stored grant record
referenced by the JWT's ``jti`` claim. The Polar token itself never leaves
the server.
"""

import base64
import hashlib
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import urlencode

from jose import JWTError, jwt
from passlib.context import CryptContext

from polar_mcp.auth.storage import (
    AccessGrant,
    StoredAuthCode,
    StoredAuthRequest,
    StoredClient,
    StoredGrant,
)
from polar_mcp.auth.store import OAuthStateStore
from polar_mcp.core.constants import ACCESS_TOKEN_TTL_DEFAULT, AUTH_CODE_TTL
from polar_mcp.core.exceptions import (
    InvalidClientError,
    InvalidGrantError,
    OAuth2Error,
    UnsupportedResponseTypeError,
)

logger = logging.getLogger(__name__)

# Client secret hashing context
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class OAuth2Server:
    """
    OAuth2 Authorization Server implementing the MCP specification.

    Features:
    - OAuth 2.1 with PKCE (required by MCP)
    - Dynamic Client Registration (RFC 7591)
    - Authorization Server Metadata (RFC 8414)
    - Protected Resource Metadata (RFC 9728)
    """

    def __init__(
        self,
        issuer: str,
        secret_key: str,
        store: OAuthStateStore,
        algorithm: str = "HS256",
        access_token_ttl_seconds: int = ACCESS_TOKEN_TTL_DEFAULT,
        scopes: Optional[List[str]] = None,
    ):
        """
        Initialize OAuth2 server.

        Args:
            issuer: OAuth2 issuer URL (the public base URL of this server)
            secret_key: Secret key for JWT signing
            store: Typed key-value store for clients, codes and grants
            algorithm: JWT algorithm (default: HS256)
            access_token_ttl_seconds: Access token lifetime
            scopes: Scopes advertised in the metadata documents
        """
        self.issuer = issuer.rstrip("/")
        self.secret_key = secret_key
        self.store = store
        self.algorithm = algorithm
        self.access_token_ttl_seconds = access_token_ttl_seconds
        self.scopes = scopes or ["polar:read"]

    @property
    def resource_url(self) -> str:
        """Audience of issued tokens."""
        return self.issuer

    def get_authorization_server_metadata(self) -> dict:
        """
        Get OAuth 2.0 Authorization Server Metadata (RFC 8414).

        Returns:
            Authorization server metadata
        """
        return {
            "issuer": self.issuer,
            "authorization_endpoint": f"{self.issuer}/authorize",
            "token_endpoint": f"{self.issuer}/token",
            "registration_endpoint": f"{self.issuer}/register",
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code"],
            "code_challenge_methods_supported": ["S256"],
            "token_endpoint_auth_methods_supported": [
                "client_secret_post",
                "client_secret_basic",
                "none",
            ],
            "scopes_supported": self.scopes,
        }

    def get_protected_resource_metadata(self) -> dict:
        """
        Get Protected Resource Metadata (RFC 9728).

        Returns:
            Protected resource metadata
        """
        return {
            "resource": self.resource_url,
            "authorization_servers": [self.issuer],
            "scopes_supported": self.scopes,
            "bearer_methods_supported": ["header"],
            "resource_signing_alg_values_supported": [self.algorithm],
        }

    async def register_client(
        self,
        redirect_uris: List[str],
        client_name: Optional[str] = None,
        token_endpoint_auth_method: str = "client_secret_post",
    ) -> tuple[StoredClient, Optional[str]]:
        """
        Register a new OAuth2 client (Dynamic Client Registration - RFC 7591).

        Args:
            redirect_uris: List of allowed redirect URIs
            client_name: Client application name
            token_endpoint_auth_method: "none" registers a public client

        Returns:
            The stored client and its plain-text secret (None for public clients)
        """
        if not redirect_uris:
            raise OAuth2Error("redirect_uris must not be empty")

        client_id = f"mcp_{secrets.token_urlsafe(16)}"
        client_secret = None
        secret_hash = None
        if token_endpoint_auth_method != "none":
            client_secret = secrets.token_urlsafe(32)
            secret_hash = pwd_context.hash(client_secret)

        client = StoredClient(
            client_id=client_id,
            client_secret_hash=secret_hash,
            client_name=client_name,
            redirect_uris=redirect_uris,
        )
        await self.store.put_client(client)
        logger.info("Registered client: %s", client_id)
        return client, client_secret

    async def validate_authorization_request(
        self,
        client_id: Optional[str],
        redirect_uri: Optional[str],
        response_type: Optional[str],
        code_challenge: Optional[str],
        code_challenge_method: Optional[str],
    ) -> StoredClient:
        """
        Check the parameters of an incoming /authorize request.

        Raises:
            OAuth2Error: With an OAuth error code describing the first problem
        """
        if response_type != "code":
            raise UnsupportedResponseTypeError("response_type must be 'code'")

        client = await self.store.get_client(client_id) if client_id else None
        if client is None:
            raise InvalidClientError("Unknown client_id")

        if redirect_uri not in client.redirect_uris:
            raise OAuth2Error("redirect_uri is not registered for this client")

        if not code_challenge or code_challenge_method != "S256":
            raise OAuth2Error("PKCE with code_challenge_method=S256 is required")

        return client

    async def create_authorization_code(
        self,
        request: StoredAuthRequest,
        grant: AccessGrant,
    ) -> str:
        """
        Create an authorization code for a completed authorization request.

        Args:
            request: The pending request the Polar callback resolved
            grant: Polar credentials to attach to the code

        Returns:
            Authorization code
        """
        if not request.redirect_uri or not request.code_challenge:
            raise OAuth2Error("Authorization request lacks redirect_uri or PKCE challenge")

        code = secrets.token_urlsafe(32)
        await self.store.put_auth_code(
            StoredAuthCode(
                code=code,
                client_id=request.client_id,
                redirect_uri=request.redirect_uri,
                scopes=request.scopes,
                code_challenge=request.code_challenge,
                resource=request.resource,
                grant=grant,
                expires_at=time.time() + AUTH_CODE_TTL,
            )
        )
        return code

    @staticmethod
    def build_redirect(redirect_uri: str, code: str, state: Optional[str]) -> str:
        """Client redirect URL carrying the code and the client's own state."""
        params = {"code": code}
        if state:
            params["state"] = state
        separator = "&" if "?" in redirect_uri else "?"
        return f"{redirect_uri}{separator}{urlencode(params)}"

    @staticmethod
    def verify_code_verifier(code_challenge: str, code_verifier: str) -> bool:
        """
        Verify PKCE code verifier against the stored S256 challenge.

        Args:
            code_challenge: Challenge recorded at authorization time
            code_verifier: PKCE code verifier sent to the token endpoint

        Returns:
            True if verifier is valid
        """
        challenge = (
            base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode()).digest())
            .decode()
            .rstrip("=")
        )
        return secrets.compare_digest(challenge, code_challenge)

    async def authenticate_client(
        self, client_id: Optional[str], client_secret: Optional[str]
    ) -> StoredClient:
        """Load a client and check its secret (public clients have none)."""
        client = await self.store.get_client(client_id) if client_id else None
        if client is None:
            raise InvalidClientError("Invalid client credentials")
        if client.client_secret_hash is not None:
            if not client_secret or not pwd_context.verify(
                client_secret, client.client_secret_hash
            ):
                raise InvalidClientError("Invalid client credentials")
        return client

    async def exchange_code_for_token(
        self,
        code: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        code_verifier: Optional[str],
        redirect_uri: Optional[str],
    ) -> dict:
        """
        Exchange authorization code for access token.

        Args:
            code: Authorization code
            client_id: Client ID
            client_secret: Client secret (None for public clients)
            code_verifier: PKCE code verifier
            redirect_uri: Redirect URI

        Returns:
            Token response body

        Raises:
            InvalidClientError: If client authentication fails
            InvalidGrantError: If the code is unknown, expired, reused or
                fails validation
        """
        client = await self.authenticate_client(client_id, client_secret)

        auth_code = await self.store.get_auth_code(code) if code else None
        if auth_code is None:
            raise InvalidGrantError("Invalid authorization code")

        # Single use, whatever the outcome of the checks below
        await self.store.delete_auth_code(auth_code.code)

        if auth_code.expires_at < time.time():
            raise InvalidGrantError("Authorization code expired")

        if auth_code.client_id != client.client_id:
            raise InvalidGrantError("Client ID mismatch")

        if auth_code.redirect_uri != redirect_uri:
            raise InvalidGrantError("Redirect URI mismatch")

        if not code_verifier or not self.verify_code_verifier(
            auth_code.code_challenge, code_verifier
        ):
            raise InvalidGrantError("Invalid code verifier")

        grant_id = secrets.token_urlsafe(16)
        await self.store.put_grant(
            StoredGrant(
                grant_id=grant_id,
                client_id=client.client_id,
                scopes=auth_code.scopes,
                grant=auth_code.grant,
                expires_at=time.time() + self.access_token_ttl_seconds,
            ),
            self.access_token_ttl_seconds,
        )

        access_token = self._create_access_token(
            grant_id=grant_id,
            subject=str(auth_code.grant.user_id),
            client_id=client.client_id,
            scope=" ".join(auth_code.scopes),
        )
        logger.info("Issued access token for client: %s", client.client_id)

        return {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": self.access_token_ttl_seconds,
            "scope": " ".join(auth_code.scopes),
        }

    def _create_access_token(
        self,
        grant_id: str,
        subject: str,
        client_id: str,
        scope: str,
    ) -> str:
        """Create JWT access token."""
        now = datetime.now(timezone.utc)
        expire = now + timedelta(seconds=self.access_token_ttl_seconds)

        to_encode = {
            "sub": subject,
            "client_id": client_id,
            "scope": scope,
            "jti": grant_id,
            "aud": self.resource_url,
            "iss": self.issuer,
            "exp": expire,
            "iat": now,
        }

        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> Optional[dict]:
        """
        Validate access token signature, expiry, issuer and audience.

        Args:
            token: Access token

        Returns:
            Token payload if valid, None otherwise
        """
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.resource_url,
                issuer=self.issuer,
            )
        except JWTError:
            return None

    async def load_grant(self, token: str) -> Optional[AccessGrant]:
        """Resolve a bearer token to the Polar grant it stands for."""
        payload = self.decode_access_token(token)
        if not payload or not payload.get("jti"):
            return None
        stored = await self.store.get_grant(payload["jti"])
        if stored is None:
            return None
        return stored.grant
