"""
Tests for the local authentication helper CLI.
"""

import asyncio
import socket
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from polar_mcp.auth.polar_oauth import PolarOAuth
from polar_mcp.auth.storage import AccessGrant
from polar_mcp.cli.auth_helper import (
    authenticate,
    bind_callback_socket,
    build_callback_app,
    print_exports,
    wait_for_code,
)
from polar_mcp.core.exceptions import AuthorizationFlowError, ConfigurationError, FlowFailure


def callback_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://localhost")


class TestCallbackApp:
    @pytest.mark.asyncio
    async def test_code_resolves_future(self):
        future = asyncio.get_running_loop().create_future()
        app = build_callback_app(future)

        async with callback_client(app) as client:
            response = await client.get("/callback", params={"code": "abc"})

        assert response.status_code == 200
        assert future.result() == "abc"

    @pytest.mark.asyncio
    async def test_error_fails_future(self):
        future = asyncio.get_running_loop().create_future()
        app = build_callback_app(future)

        async with callback_client(app) as client:
            response = await client.get("/callback", params={"error": "access_denied"})

        assert response.status_code == 400
        with pytest.raises(AuthorizationFlowError) as exc_info:
            future.result()
        assert exc_info.value.reason is FlowFailure.VENDOR_DENIED


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_exchanges_and_registers(self, settings, upstream, capsys):
        upstream.add(
            "POST",
            "/v2/oauth2/token",
            json_body={"access_token": "polar-tok", "x_user_id": 12345},
        )
        upstream.add("POST", "/v3/users", 409)
        polar_oauth = PolarOAuth(
            "client-id",
            "client-secret",
            auth_url=settings.polar_auth_url,
            token_url=settings.polar_token_url,
            api_base=settings.polar_api_base,
            transport=upstream.transport,
        )

        with (
            patch("polar_mcp.cli.auth_helper.bind_callback_socket") as bind,
            patch("polar_mcp.cli.auth_helper.wait_for_code", AsyncMock(return_value="abc")),
        ):
            grant = await authenticate(polar_oauth, port=8888)

        bind.assert_called_once_with(8888)
        bind.return_value.close.assert_called_once()

        assert grant == AccessGrant(access_token="polar-tok", user_id=12345)
        assert "redirect_uri=http%3A%2F%2Flocalhost%3A8888%2Fcallback" in capsys.readouterr().out

    def test_print_exports(self, capsys):
        print_exports(AccessGrant(access_token="polar-tok", user_id=12345))

        out = capsys.readouterr().out
        assert 'export POLAR_ACCESS_TOKEN="polar-tok"' in out
        assert 'export POLAR_USER_ID="12345"' in out


class TestCallbackServer:
    def test_busy_port_is_reported(self):
        holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        holder.bind(("127.0.0.1", 0))
        holder.listen()
        try:
            port = holder.getsockname()[1]
            with pytest.raises(ConfigurationError, match=f"127.0.0.1:{port}"):
                bind_callback_socket(port)
        finally:
            holder.close()

    @pytest.mark.asyncio
    async def test_server_exit_before_code_does_not_hang(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            with patch("uvicorn.Server.serve", AsyncMock(return_value=None)):
                with pytest.raises(ConfigurationError, match="stopped before authorization"):
                    await asyncio.wait_for(wait_for_code(sock), timeout=5)
        finally:
            sock.close()

    @pytest.mark.asyncio
    async def test_server_startup_error_is_raised(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            with patch("uvicorn.Server.serve", AsyncMock(side_effect=OSError("bind failed"))):
                with pytest.raises(OSError, match="bind failed"):
                    await asyncio.wait_for(wait_for_code(sock), timeout=5)
        finally:
            sock.close()
