"""Key-value storage for OAuth state, pending requests and sessions.

``KeyValueStore`` is the abstract get/put/delete store with per-key expiry.
Two backends are provided: an in-process dictionary and a directory of JSON
files that survives restarts. ``OAuthStateStore`` sits on top and speaks in
typed records under namespaced keys.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

from polar_mcp.auth.storage import (
    StoredAuthCode,
    StoredAuthRequest,
    StoredClient,
    StoredCsrfState,
    StoredGrant,
    StoredSession,
)
from polar_mcp.core.constants import (
    AUTH_CODE_KEY_PREFIX,
    AUTH_CODE_TTL,
    AUTH_REQUEST_KEY_PREFIX,
    AUTH_REQUEST_TTL,
    CLIENT_KEY_PREFIX,
    CSRF_STATE_TTL,
    GRANT_KEY_PREFIX,
    SESSION_KEY_PREFIX,
    SESSION_TTL,
    STATE_KEY_PREFIX,
)

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract string store with optional per-key TTL."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store value under key, expiring after ttl_seconds when given."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key; deleting a missing key is not an error."""


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store. Expired entries are dropped when read."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.time() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """Store entries as JSON files on disk.

    Each file holds the value and its absolute expiry. For deployments with
    more than one server process use a shared store instead.
    """

    def __init__(self, storage_dir: str | Path = ".oauth_storage") -> None:
        self._storage_dir = Path(storage_dir)
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Initialized FileKeyValueStore at %s", self._storage_dir)

    def _get_file_path(self, key: str) -> Path:
        """Get file path for a storage key (sanitized)."""
        # Sanitize key to prevent path traversal
        safe_key = (
            key.replace("/", "_").replace("\\", "_").replace("..", "_").replace(":", "__")
        )
        return self._storage_dir / f"{safe_key}.json"

    def _read(self, key: str) -> str | None:
        file_path = self._get_file_path(key)
        if not file_path.exists():
            return None
        entry = json.loads(file_path.read_text())
        expires_at = entry.get("expires_at")
        if expires_at is not None and time.time() >= expires_at:
            file_path.unlink(missing_ok=True)
            return None
        return entry["value"]

    def _write(self, key: str, value: str, ttl_seconds: int | None) -> None:
        entry = {
            "value": value,
            "expires_at": time.time() + ttl_seconds if ttl_seconds else None,
        }
        self._get_file_path(key).write_text(json.dumps(entry))

    def _delete(self, key: str) -> None:
        self._get_file_path(key).unlink(missing_ok=True)

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await asyncio.to_thread(self._write, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)


def create_store(backend: str, storage_dir: str | Path = ".oauth_storage") -> KeyValueStore:
    """Build the configured store backend."""
    if backend == "file":
        return FileKeyValueStore(storage_dir)
    if backend == "memory":
        return MemoryKeyValueStore()
    msg = f"Unknown store backend: {backend}"
    raise ValueError(msg)


class OAuthStateStore:
    """Typed access to the OAuth records kept in a KeyValueStore."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    # ========== CSRF State ==========

    async def put_csrf_state(self, csrf_token: str, state: StoredCsrfState) -> None:
        await self.kv.put(
            f"{STATE_KEY_PREFIX}{csrf_token}", state.model_dump_json(), CSRF_STATE_TTL
        )

    async def get_csrf_state(self, csrf_token: str) -> StoredCsrfState | None:
        raw = await self.kv.get(f"{STATE_KEY_PREFIX}{csrf_token}")
        return StoredCsrfState.model_validate_json(raw) if raw is not None else None

    async def delete_csrf_state(self, csrf_token: str) -> None:
        await self.kv.delete(f"{STATE_KEY_PREFIX}{csrf_token}")

    # ========== Pending Authorization Requests ==========

    async def put_auth_request(self, request: StoredAuthRequest) -> None:
        await self.kv.put(
            f"{AUTH_REQUEST_KEY_PREFIX}{request.request_id}",
            request.model_dump_json(),
            AUTH_REQUEST_TTL,
        )

    async def get_auth_request(self, request_id: str) -> StoredAuthRequest | None:
        raw = await self.kv.get(f"{AUTH_REQUEST_KEY_PREFIX}{request_id}")
        return StoredAuthRequest.model_validate_json(raw) if raw is not None else None

    async def delete_auth_request(self, request_id: str) -> None:
        await self.kv.delete(f"{AUTH_REQUEST_KEY_PREFIX}{request_id}")

    # ========== Sessions ==========

    async def put_session(self, session: StoredSession) -> None:
        await self.kv.put(
            f"{SESSION_KEY_PREFIX}{session.session_id}",
            session.model_dump_json(),
            SESSION_TTL,
        )

    async def get_session(self, session_id: str) -> StoredSession | None:
        raw = await self.kv.get(f"{SESSION_KEY_PREFIX}{session_id}")
        return StoredSession.model_validate_json(raw) if raw is not None else None

    # ========== Downstream Clients ==========

    async def put_client(self, client: StoredClient) -> None:
        await self.kv.put(f"{CLIENT_KEY_PREFIX}{client.client_id}", client.model_dump_json())

    async def get_client(self, client_id: str) -> StoredClient | None:
        raw = await self.kv.get(f"{CLIENT_KEY_PREFIX}{client_id}")
        return StoredClient.model_validate_json(raw) if raw is not None else None

    # ========== Downstream Authorization Codes ==========

    async def put_auth_code(self, code: StoredAuthCode) -> None:
        await self.kv.put(
            f"{AUTH_CODE_KEY_PREFIX}{code.code}", code.model_dump_json(), AUTH_CODE_TTL
        )

    async def get_auth_code(self, code: str) -> StoredAuthCode | None:
        raw = await self.kv.get(f"{AUTH_CODE_KEY_PREFIX}{code}")
        return StoredAuthCode.model_validate_json(raw) if raw is not None else None

    async def delete_auth_code(self, code: str) -> None:
        await self.kv.delete(f"{AUTH_CODE_KEY_PREFIX}{code}")

    # ========== Downstream Grants ==========

    async def put_grant(self, grant: StoredGrant, ttl_seconds: int) -> None:
        await self.kv.put(
            f"{GRANT_KEY_PREFIX}{grant.grant_id}", grant.model_dump_json(), ttl_seconds
        )

    async def get_grant(self, grant_id: str) -> StoredGrant | None:
        raw = await self.kv.get(f"{GRANT_KEY_PREFIX}{grant_id}")
        return StoredGrant.model_validate_json(raw) if raw is not None else None
