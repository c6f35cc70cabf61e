"""
Unit tests for the tool dispatcher.

Covers request building for every route shape, argument validation and the
physical-information transaction protocol.
"""

import json

import pytest

from polar_mcp.services.polar import TOOL_ROUTES, ToolResult
from polar_mcp.services.polar.dispatcher import build_request

TOKEN = "tok"
USER_ID = 42
TX_BASE = f"/v3/users/{USER_ID}/physical-information-transactions"


class TestToolResult:
    """Result envelope serialization."""

    def test_success_json(self):
        assert ToolResult.success({"a": 1}).text() == json.dumps({"a": 1}, indent=2)

    def test_success_string_is_raw(self):
        assert ToolResult.success("<gpx/>").text() == "<gpx/>"

    def test_failure(self):
        result = ToolResult.failure("boom")

        assert result.is_error
        assert result.text() == "Error: boom"


class TestBuildRequest:
    """Path and query construction."""

    def test_date_segment_appended(self):
        path, params = build_request(TOOL_ROUTES["get_sleep"], {"date": "2024-01-15"})

        assert path == "/users/sleep/2024-01-15"
        assert params == {}

    def test_date_segment_omitted(self):
        path, _ = build_request(TOOL_ROUTES["get_nightly_recharge"], {})

        assert path == "/users/nightly-recharge"

    def test_range_params(self):
        path, params = build_request(
            TOOL_ROUTES["get_cardio_load_range"], {"from": "2024-01-01", "to": "2024-01-31"}
        )

        assert path == "/users/cardio-load/date"
        assert list(params.items()) == [("from", "2024-01-01"), ("to", "2024-01-31")]

    def test_path_params_are_escaped(self):
        path, _ = build_request(TOOL_ROUTES["get_exercise"], {"exercise_id": "a/b c"})

        assert path == "/exercises/a%2Fb%20c"

    def test_flags_only_when_true(self):
        _, params = build_request(
            TOOL_ROUTES["get_exercises"], {"samples": True, "zones": False}
        )

        assert params == {"samples": "true"}

    def test_truthy_non_boolean_flag_is_not_sent(self):
        _, params = build_request(TOOL_ROUTES["get_exercises"], {"samples": "yes"})

        assert params == {}

    def test_period_route(self):
        path, _ = build_request(
            TOOL_ROUTES["get_cardio_load_period"], {"period": "days", "count": 14}
        )

        assert path == "/users/cardio-load/period/days/14"

    def test_user_scoped_route(self):
        path, _ = build_request(TOOL_ROUTES["get_user_info"], {}, USER_ID)

        assert path == f"/users/{USER_ID}"


class TestExecute:
    """Single-call tools."""

    @pytest.mark.asyncio
    async def test_sleep_for_date(self, dispatcher, upstream):
        upstream.add("GET", "/v3/users/sleep/2024-01-15", json_body={"sleep_score": 81})

        result = await dispatcher.execute("get_sleep", {"date": "2024-01-15"}, TOKEN)

        assert not result.is_error
        assert result.payload == {"sleep_score": 81}
        assert len(upstream.requests) == 1
        assert upstream.requests[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_nightly_recharge_range(self, dispatcher, upstream):
        upstream.add("GET", "/v3/users/nightly-recharge", json_body={"recharges": []})

        result = await dispatcher.execute(
            "get_nightly_recharge_range", {"from": "2024-01-01", "to": "2024-01-07"}, TOKEN
        )

        assert not result.is_error
        sent = upstream.requests[0]
        assert sent.url.path == "/v3/users/nightly-recharge"
        assert sent.url.query == b"from=2024-01-01&to=2024-01-07"

    @pytest.mark.asyncio
    async def test_missing_range_argument_makes_no_call(self, dispatcher, upstream):
        result = await dispatcher.execute("get_sleep_range", {"from": "2024-01-01"}, TOKEN)

        assert result.is_error
        assert result.error == "Missing required argument(s) for get_sleep_range: to"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_none_arguments_count_as_missing(self, dispatcher, upstream):
        result = await dispatcher.execute(
            "get_sleep_range", {"from": None, "to": None}, TOKEN
        )

        assert result.error == "Missing required argument(s) for get_sleep_range: from, to"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_period_outside_enum_makes_no_call(self, dispatcher, upstream):
        result = await dispatcher.execute(
            "get_cardio_load_period", {"period": "weeks", "count": 4}, TOKEN
        )

        assert result.error == (
            "Invalid argument for get_cardio_load_period: period must be one of days, months"
        )
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_non_integer_count_makes_no_call(self, dispatcher, upstream):
        result = await dispatcher.execute(
            "get_cardio_load_period", {"period": "days", "count": "two"}, TOKEN
        )

        assert result.error == (
            "Invalid argument for get_cardio_load_period: count must be a positive integer"
        )
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher, upstream):
        result = await dispatcher.execute("get_weather", {}, TOKEN)

        assert result.error == "Unknown tool: get_weather"
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_exercises_with_flags(self, dispatcher, upstream):
        upstream.add("GET", "/v3/exercises", json_body=[{"id": "x"}])

        await dispatcher.execute("get_exercises", {"samples": True, "zones": False}, TOKEN)

        assert dict(upstream.requests[0].url.params) == {"samples": "true"}

    @pytest.mark.asyncio
    async def test_user_info_without_user_id(self, dispatcher, upstream):
        result = await dispatcher.execute("get_user_info", {}, TOKEN)

        assert result.is_error
        assert "POLAR_USER_ID" in result.error
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_user_info_with_user_id(self, dispatcher, upstream):
        upstream.add("GET", f"/v3/users/{USER_ID}", json_body={"first-name": "Ada"})

        result = await dispatcher.execute("get_user_info", {}, TOKEN, USER_ID)

        assert result.payload == {"first-name": "Ada"}

    @pytest.mark.asyncio
    async def test_upstream_error_becomes_failure(self, dispatcher, upstream):
        upstream.add("GET", "/v3/users/sleep", 401, text="invalid token")

        result = await dispatcher.execute("get_sleep", {}, TOKEN)

        assert result.is_error
        assert result.text() == "Error: Polar API error (401): invalid token"

    @pytest.mark.asyncio
    async def test_fit_download_is_base64(self, dispatcher, upstream):
        upstream.add("GET", "/v3/exercises/abc/fit", content=b"FIT")

        result = await dispatcher.execute("get_exercise_fit", {"exercise_id": "abc"}, TOKEN)

        assert result.payload == "RklU"


class TestPhysicalInfo:
    """Create, list, fetch and commit a physical-information transaction."""

    @pytest.mark.asyncio
    async def test_requires_user_id(self, dispatcher, upstream):
        result = await dispatcher.execute("get_physical_info", {}, TOKEN)

        assert result.is_error
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_no_new_data(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 204)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.payload == {"message": "No new physical information available"}
        assert upstream.calls("PUT") == []

    @pytest.mark.asyncio
    async def test_single_item_is_unwrapped(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add(
            "GET",
            f"{TX_BASE}/7",
            json_body={
                "physical-informations": [
                    f"https://polar.test/v3/users/{USER_ID}/physical-information-transactions/7/physical-informations/1"
                ]
            },
        )
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/1", json_body={"weight": 70})
        upstream.add("PUT", f"{TX_BASE}/7", 200)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.payload == {"weight": 70}
        assert len(upstream.calls("PUT", f"{TX_BASE}/7")) == 1

    @pytest.mark.asyncio
    async def test_multiple_items_are_listed(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add(
            "GET",
            f"{TX_BASE}/7",
            json_body={
                "physical-informations": [
                    f"https://polar.test{TX_BASE}/7/physical-informations/1",
                    f"https://polar.test{TX_BASE}/7/physical-informations/2",
                ]
            },
        )
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/1", json_body={"weight": 70})
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/2", json_body={"weight": 71})
        upstream.add("PUT", f"{TX_BASE}/7", 200)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.payload == [{"weight": 70}, {"weight": 71}]
        assert len(upstream.calls("PUT")) == 1

    @pytest.mark.asyncio
    async def test_empty_listing_still_commits(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add("GET", f"{TX_BASE}/7", json_body={"physical-informations": []})
        upstream.add("PUT", f"{TX_BASE}/7", 200)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.payload == {"message": "No physical information data available"}
        assert len(upstream.calls("PUT")) == 1

    @pytest.mark.asyncio
    async def test_listing_failure_commits_and_reports(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add("GET", f"{TX_BASE}/7", 500, text="listing broke")
        upstream.add("PUT", f"{TX_BASE}/7", 200)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.error == "Polar API error (500): listing broke"
        assert len(upstream.calls("PUT")) == 1

    @pytest.mark.asyncio
    async def test_partial_fetch_failure_returns_successes(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add(
            "GET",
            f"{TX_BASE}/7",
            json_body={
                "physical-informations": [
                    f"https://polar.test{TX_BASE}/7/physical-informations/1",
                    f"https://polar.test{TX_BASE}/7/physical-informations/2",
                ]
            },
        )
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/1", 500, text="gone")
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/2", json_body={"weight": 71})
        upstream.add("PUT", f"{TX_BASE}/7", 200)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.payload == {"weight": 71}
        assert len(upstream.calls("PUT")) == 1

    @pytest.mark.asyncio
    async def test_all_fetches_failing_reports_first_error(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add(
            "GET",
            f"{TX_BASE}/7",
            json_body={
                "physical-informations": [
                    f"https://polar.test{TX_BASE}/7/physical-informations/1",
                    f"https://polar.test{TX_BASE}/7/physical-informations/2",
                ]
            },
        )
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/1", 500, text="first")
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/2", 500, text="second")
        upstream.add("PUT", f"{TX_BASE}/7", 200)

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.error == "Polar API error (500): first"
        assert len(upstream.calls("PUT")) == 1

    @pytest.mark.asyncio
    async def test_commit_failure_is_not_reported(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 201, json_body={"transaction-id": 7})
        upstream.add(
            "GET",
            f"{TX_BASE}/7",
            json_body={"physical-informations": [f"https://polar.test{TX_BASE}/7/physical-informations/1"]},
        )
        upstream.add("GET", f"{TX_BASE}/7/physical-informations/1", json_body={"weight": 70})
        upstream.add("PUT", f"{TX_BASE}/7", 500, text="commit failed")

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.payload == {"weight": 70}

    @pytest.mark.asyncio
    async def test_create_failure_makes_no_commit(self, dispatcher, upstream):
        upstream.add("POST", TX_BASE, 403, text="not registered")

        result = await dispatcher.execute("get_physical_info", {}, TOKEN, USER_ID)

        assert result.error == "Polar API error (403): not registered"
        assert upstream.calls("PUT") == []
