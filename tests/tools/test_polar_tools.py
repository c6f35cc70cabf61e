"""
Unit tests for the Polar MCP tools.

Tools run against the fake Polar API, either directly or through an
in-memory FastMCP client talking to the assembled server.
"""

import json

import pytest
from fastmcp import Client

from polar_mcp.auth.credentials import CredentialResolver, Credentials
from polar_mcp.context import build_app_context
from polar_mcp.core import MCPToolError
from polar_mcp.core.exceptions import SessionNotFoundError
from polar_mcp.main import create_mcp_server
from polar_mcp.services.polar import TOOL_ROUTES, list_descriptors
from polar_mcp.services.polar.catalog import parameter_schema
from polar_mcp.tools import PolarTool, ToolRunner, register_tools


class StaticResolver(CredentialResolver):
    def __init__(self, credentials=None, error=None):
        self.credentials = credentials
        self.error = error

    async def resolve(self):
        if self.error:
            raise self.error
        return self.credentials


@pytest.fixture
def runner(dispatcher):
    return ToolRunner(dispatcher, StaticResolver(Credentials("tok", 42)))


@pytest.fixture
def tools(runner):
    return {d.name: PolarTool(d, runner) for d in list_descriptors()}


@pytest.fixture
def local_server(settings, kv, upstream):
    """Stdio-mode server whose credentials come from settings."""
    local = settings.model_copy(
        update={"transport": "stdio", "polar_access_token": "tok", "polar_user_id": 42}
    )
    return create_mcp_server(build_app_context(local, kv=kv, transport=upstream.transport))


def text_of(result):
    return result.content[0].text


class TestRegistration:
    def test_every_route_is_registered(self, runner):
        added = []

        class MockMCP:
            def add_tool(self, tool):
                added.append(tool)
                return tool

        assert register_tools(MockMCP(), runner) == len(TOOL_ROUTES)
        assert [tool.name for tool in added] == list(TOOL_ROUTES)
        for tool in added:
            route = TOOL_ROUTES[tool.name]
            assert tool.description == route.description
            assert tool.parameters == parameter_schema(route)


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_sleep_for_date(self, tools, upstream):
        upstream.add("GET", "/v3/users/sleep/2024-01-15", json_body={"sleep_score": 81})

        result = await tools["get_sleep"].run({"date": "2024-01-15"})

        assert json.loads(text_of(result)) == {"sleep_score": 81}

    @pytest.mark.asyncio
    async def test_range_arguments_pass_through(self, tools, upstream):
        upstream.add("GET", "/v3/users/nightly-recharge", json_body=[])

        await tools["get_nightly_recharge_range"].run({"from": "2024-01-01", "to": "2024-01-07"})

        assert dict(upstream.requests[0].url.params) == {"from": "2024-01-01", "to": "2024-01-07"}

    @pytest.mark.asyncio
    async def test_exercise_flags(self, tools, upstream):
        upstream.add("GET", "/v3/exercises/abc", json_body={"id": "abc"})

        await tools["get_exercise"].run({"exercise_id": "abc", "samples": False, "zones": True})

        assert dict(upstream.requests[0].url.params) == {"zones": "true"}

    @pytest.mark.asyncio
    async def test_gpx_is_returned_verbatim(self, tools, upstream):
        upstream.add("GET", "/v3/exercises/abc/gpx", text="<gpx/>")

        result = await tools["get_exercise_gpx"].run({"exercise_id": "abc"})

        assert text_of(result) == "<gpx/>"

    @pytest.mark.asyncio
    async def test_user_scoped_tool_uses_resolved_user(self, tools, upstream):
        upstream.add("GET", "/v3/users/42", json_body={"polar-user-id": 42})

        result = await tools["get_user_info"].run({})

        assert json.loads(text_of(result)) == {"polar-user-id": 42}

    @pytest.mark.asyncio
    async def test_upstream_error_raises_tool_error(self, tools, upstream):
        upstream.add("GET", "/v3/users/cardio-load", 401, text="expired token")

        with pytest.raises(MCPToolError) as exc_info:
            await tools["get_cardio_load"].run({})

        assert exc_info.value.message == "Error: Polar API error (401): expired token"


class TestThroughClient:
    """The assembled server as an MCP client sees it."""

    @pytest.mark.asyncio
    async def test_range_tool_schema_uses_from_and_to(self, local_server):
        async with Client(local_server) as client:
            listed = {tool.name: tool for tool in await client.list_tools()}

        schema = listed["get_nightly_recharge_range"].inputSchema
        assert set(schema["properties"]) == {"from", "to"}
        assert schema["required"] == ["from", "to"]

    @pytest.mark.asyncio
    async def test_range_tool_accepts_from_and_to(self, local_server, upstream):
        upstream.add("GET", "/v3/users/nightly-recharge", json_body=[{"ans_charge": 3.2}])

        async with Client(local_server) as client:
            result = await client.call_tool(
                "get_nightly_recharge_range", {"from": "2024-01-01", "to": "2024-01-07"}
            )

        assert not result.is_error
        assert json.loads(text_of(result)) == [{"ans_charge": 3.2}]
        sent = upstream.calls("GET", "/v3/users/nightly-recharge")[0]
        assert sent.url.query == b"from=2024-01-01&to=2024-01-07"
        assert sent.headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_missing_argument_is_error_result(self, local_server, upstream):
        async with Client(local_server) as client:
            result = await client.call_tool(
                "get_sleep_range", {"from": "2024-01-01"}, raise_on_error=False
            )

        assert result.is_error
        assert "Missing required argument(s) for get_sleep_range: to" in text_of(result)
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_cardio_load_period(self, local_server, upstream):
        upstream.add("GET", "/v3/users/cardio-load/period/days/14", json_body=[])

        async with Client(local_server) as client:
            await client.call_tool("get_cardio_load_period", {"period": "days", "count": 14})

        assert len(upstream.calls("GET", "/v3/users/cardio-load/period/days/14")) == 1


class TestToolRunner:
    @pytest.mark.asyncio
    async def test_resolver_error_becomes_result(self, dispatcher, upstream):
        runner = ToolRunner(dispatcher, StaticResolver(error=SessionNotFoundError("Session expired")))

        result = await runner.execute("get_sleep", {})

        assert result.error == "Session expired"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_run_raises_on_error(self, dispatcher):
        runner = ToolRunner(dispatcher, StaticResolver(Credentials("tok")))

        with pytest.raises(MCPToolError, match="Missing required argument"):
            await runner.run("get_sleep_range", {})
