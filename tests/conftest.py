"""
Shared pytest fixtures for the Polar MCP server tests.

Outbound HTTP never leaves the process: every component that talks to Polar
accepts an httpx transport, and the tests hand it the ``upstream`` recorder,
which serves canned responses and remembers each request.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from polar_mcp.auth.store import MemoryKeyValueStore, OAuthStateStore
from polar_mcp.config import Settings
from polar_mcp.services.polar import PolarClient, ToolDispatcher

API_BASE = "https://polar.test/v3"
AUTH_URL = "https://flow.polar.test/oauth2/authorization"
TOKEN_URL = "https://remote.polar.test/v2/oauth2/token"
PUBLIC_BASE_URL = "https://mcp.test"
ACCESS_TOKEN = "polar-access-token"
USER_ID = 12345


class UpstreamRecorder:
    """Fake Polar API for httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        *,
        json_body: Any = None,
        content: bytes | None = None,
        text: str | None = None,
    ) -> None:
        """Serve a canned response for ``method path`` (path as seen on the wire)."""

        def respond(request: httpx.Request) -> httpx.Response:
            if json_body is not None:
                return httpx.Response(status, json=json_body)
            if content is not None:
                return httpx.Response(status, content=content)
            return httpx.Response(status, text=text or "")

        self._routes[(method, path)] = respond

    def add_error(self, method: str, path: str, exc: Exception) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            raise exc

        self._routes[(method, path)] = respond

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        respond = self._routes.get((request.method, request.url.path))
        if respond is None:
            return httpx.Response(404, text="Not Found")
        return respond(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]

    @staticmethod
    def json_of(request: httpx.Request) -> Any:
        return json.loads(request.content)


@pytest.fixture
def upstream():
    """Recorder standing in for every Polar endpoint."""
    return UpstreamRecorder()


@pytest.fixture
def settings():
    """Hosted-server settings that ignore the environment and any .env file."""
    return Settings(
        _env_file=None,
        transport="http",
        public_base_url=PUBLIC_BASE_URL,
        polar_client_id="client-id",
        polar_client_secret="client-secret",
        polar_api_base=API_BASE,
        polar_auth_url=AUTH_URL,
        polar_token_url=TOKEN_URL,
        session_secret_key="test-session-secret",
        oauth2_secret_key="test-jwt-secret",
    )


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return OAuthStateStore(kv)


@pytest.fixture
def client(upstream):
    return PolarClient(API_BASE, transport=upstream.transport)


@pytest.fixture
def dispatcher(client):
    return ToolDispatcher(client)
