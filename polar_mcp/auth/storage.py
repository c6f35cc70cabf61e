"""Pydantic models for OAuth entity storage.

These models define the structure of everything the authorization flow and
the downstream authorization server keep in the key-value store.
"""

import time

from pydantic import BaseModel, Field


class AccessGrant(BaseModel):
    """Polar credentials obtained from one successful code exchange."""

    access_token: str
    user_id: int


class StoredCsrfState(BaseModel):
    """CSRF state token, linked to the pending request it protects."""

    request_id: str
    created_at: float = Field(default_factory=time.time)
    expires_at: float


class StoredAuthRequest(BaseModel):
    """Authorization request parked while the Polar redirect completes."""

    request_id: str
    csrf_token: str
    client_id: str
    redirect_uri: str | None = None
    scopes: list[str] = Field(default_factory=list)
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    client_state: str | None = None
    resource: str | None = None
    vendor_redirect_uri: str
    created_at: float = Field(default_factory=time.time)
    expires_at: float


class StoredSession(BaseModel):
    """Opaque session handed to a caller in session mode."""

    session_id: str
    access_token: str
    user_id: int
    created_at: float = Field(default_factory=time.time)
    expires_at: float


class StoredClient(BaseModel):
    """Dynamically registered downstream OAuth client."""

    client_id: str
    client_secret_hash: str | None = None
    client_name: str | None = None
    redirect_uris: list[str] = Field(default_factory=list)
    created_at: float = Field(default_factory=time.time)


class StoredAuthCode(BaseModel):
    """Downstream authorization code carrying the Polar grant."""

    code: str
    client_id: str
    redirect_uri: str
    scopes: list[str] = Field(default_factory=list)
    code_challenge: str
    resource: str | None = None
    grant: AccessGrant
    expires_at: float


class StoredGrant(BaseModel):
    """Polar grant referenced by an issued downstream access token."""

    grant_id: str
    client_id: str
    scopes: list[str] = Field(default_factory=list)
    grant: AccessGrant
    expires_at: float
