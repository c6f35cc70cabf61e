"""Static table of the tools exposed over MCP and the upstream routes behind them.

One ``ToolRoute`` per tool. The dispatcher builds the request from the route
alone, so adding an endpoint that fits one of the existing shapes (literal
path, optional date segment, required from/to range, path parameters) only
means adding an entry here. ``polar_mcp.tools`` registers one MCP tool per
entry with the JSON schema from ``parameter_schema``.
"""

from dataclasses import dataclass, field
from typing import Any

from polar_mcp.services.polar.client import ResponseFormat

DATE_DESCRIPTION = "Date in YYYY-MM-DD format. If omitted, returns the data currently available."
FROM_DESCRIPTION = "Start date of the range (YYYY-MM-DD)"
TO_DESCRIPTION = "End date of the range (YYYY-MM-DD)"

FLAG_DESCRIPTIONS = {
    "samples": (
        "Include detailed sample data (heart rate, speed, cadence, altitude, "
        "distance, temperature)"
    ),
    "zones": "Include heart rate zone information showing time spent in each training zone",
}

PHYSICAL_INFO_TOOL = "get_physical_info"


@dataclass(frozen=True)
class PathParam:
    """A required argument substituted into the path template."""

    name: str
    description: str
    json_type: str = "string"
    enum: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ToolRoute:
    """How one tool maps onto the AccessLink API."""

    name: str
    description: str
    path: str
    path_params: tuple[PathParam, ...] = ()
    date_segment: bool = False
    date_range: bool = False
    flags: tuple[str, ...] = ()
    needs_user_id: bool = False
    response_format: ResponseFormat = "json"
    multi_step: bool = False

    @property
    def required_args(self) -> tuple[str, ...]:
        names = tuple(p.name for p in self.path_params)
        if self.date_range:
            names += ("from", "to")
        return names


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and JSON schema of a tool as advertised to clients."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


def _date_tool(name: str, path: str, what: str) -> ToolRoute:
    return ToolRoute(
        name=name,
        description=f"Get {what}. Pass a date for a single day.",
        path=path,
        date_segment=True,
    )


def _range_tool(name: str, path: str, what: str) -> ToolRoute:
    return ToolRoute(
        name=name,
        description=f"Get {what} for a date range (both 'from' and 'to' are required).",
        path=path,
        date_range=True,
    )


_EXERCISE_ID = PathParam("exercise_id", "The exercise ID to retrieve")

_ROUTES: tuple[ToolRoute, ...] = (
    # ---- user ----
    ToolRoute(
        name="get_user_info",
        description=(
            "Get information about the registered Polar user including name, weight, "
            "height, birthdate, and other profile data"
        ),
        path="/users/{user_id}",
        needs_user_id=True,
    ),
    # ---- training ----
    ToolRoute(
        name="get_exercises",
        description=(
            "Get exercise data from Polar. Returns exercises from the last 30 days. "
            "Can include detailed samples and training zones for deeper analysis."
        ),
        path="/exercises",
        flags=("samples", "zones"),
    ),
    ToolRoute(
        name="get_exercise",
        description=(
            "Get detailed data for a specific exercise by ID. Can include samples "
            "and zones for detailed analysis."
        ),
        path="/exercises/{exercise_id}",
        path_params=(_EXERCISE_ID,),
        flags=("samples", "zones"),
    ),
    ToolRoute(
        name="get_exercise_fit",
        description="Download an exercise as a FIT file (returned base64 encoded).",
        path="/exercises/{exercise_id}/fit",
        path_params=(_EXERCISE_ID,),
        response_format="base64",
    ),
    ToolRoute(
        name="get_exercise_tcx",
        description="Download an exercise in TCX (XML) format.",
        path="/exercises/{exercise_id}/tcx",
        path_params=(_EXERCISE_ID,),
        response_format="text",
    ),
    ToolRoute(
        name="get_exercise_gpx",
        description="Download the route of an exercise in GPX (XML) format.",
        path="/exercises/{exercise_id}/gpx",
        path_params=(_EXERCISE_ID,),
        response_format="text",
    ),
    # ---- recovery & sleep ----
    _date_tool(
        "get_nightly_recharge",
        "/users/nightly-recharge",
        "Nightly Recharge data: ANS charge, HRV, breathing rate and overall "
        "recovery status. Data from the last 28 days is available",
    ),
    _range_tool(
        "get_nightly_recharge_range",
        "/users/nightly-recharge",
        "Nightly Recharge data",
    ),
    _date_tool(
        "get_sleep",
        "/users/sleep",
        "sleep tracking data including sleep stages (deep, light, REM), sleep "
        "score, duration, interruptions and sleep quality metrics",
    ),
    _range_tool("get_sleep_range", "/users/sleep", "sleep tracking data"),
    ToolRoute(
        name="get_sleepwise_alertness",
        description="Get SleepWise alertness predictions for the available period.",
        path="/users/sleepwise/alertness",
    ),
    _range_tool(
        "get_sleepwise_alertness_range",
        "/users/sleepwise/alertness/date",
        "SleepWise alertness predictions",
    ),
    ToolRoute(
        name="get_sleepwise_circadian_bedtime",
        description="Get SleepWise circadian bedtime recommendations for the available period.",
        path="/users/sleepwise/circadian-bedtime",
    ),
    _range_tool(
        "get_sleepwise_circadian_bedtime_range",
        "/users/sleepwise/circadian-bedtime/date",
        "SleepWise circadian bedtime recommendations",
    ),
    # ---- activity ----
    _date_tool(
        "get_daily_activity",
        "/users/activities",
        "daily activity summary including steps, calories burned, active time "
        "and activity goal progress",
    ),
    _range_tool("get_daily_activity_range", "/users/activities", "daily activity summaries"),
    _date_tool(
        "get_activity_samples",
        "/users/activities/samples",
        "minute-level activity samples (steps, MET values)",
    ),
    _range_tool(
        "get_activity_samples_range",
        "/users/activities/samples",
        "minute-level activity samples",
    ),
    _date_tool(
        "get_continuous_heart_rate",
        "/users/continuous-heart-rate",
        "continuous heart rate samples recorded throughout the day",
    ),
    _range_tool(
        "get_continuous_heart_rate_range",
        "/users/continuous-heart-rate",
        "continuous heart rate samples",
    ),
    _date_tool(
        "get_cardio_load",
        "/users/cardio-load",
        "cardio load (training load, strain, tolerance) values",
    ),
    _range_tool("get_cardio_load_range", "/users/cardio-load/date", "cardio load values"),
    ToolRoute(
        name="get_cardio_load_period",
        description="Get cardio load history for the last N days or months.",
        path="/users/cardio-load/period/{period}/{count}",
        path_params=(
            PathParam("period", "Period unit", enum=("days", "months")),
            PathParam("count", "Number of periods to look back", json_type="integer"),
        ),
    ),
    # ---- biosensing ----
    ToolRoute(
        name="get_body_temperature",
        description="Get body temperature measurements from biosensing.",
        path="/users/biosensing/bodytemperature",
    ),
    ToolRoute(
        name="get_skin_temperature",
        description="Get nightly skin temperature measurements from biosensing.",
        path="/users/biosensing/skintemperature",
    ),
    ToolRoute(
        name="get_spo2",
        description="Get blood oxygen saturation (SpO2) test results from biosensing.",
        path="/users/biosensing/spo2",
    ),
    # ---- body metrics ----
    ToolRoute(
        name=PHYSICAL_INFO_TOOL,
        description=(
            "Get physical information and body metrics including weight, height, "
            "maximum heart rate, resting heart rate, VO2max, and other physical "
            "characteristics. Only returns data that is new since the last call."
        ),
        path="/users/{user_id}/physical-information-transactions",
        needs_user_id=True,
        multi_step=True,
    ),
)

TOOL_ROUTES: dict[str, ToolRoute] = {route.name: route for route in _ROUTES}


def get_route(name: str) -> ToolRoute | None:
    """Look up the route for a tool name."""
    return TOOL_ROUTES.get(name)


def parameter_schema(route: ToolRoute) -> dict[str, Any]:
    """JSON schema of the arguments a route accepts."""
    properties: dict[str, Any] = {}
    for param in route.path_params:
        prop: dict[str, Any] = {"type": param.json_type, "description": param.description}
        if param.enum:
            prop["enum"] = list(param.enum)
        properties[param.name] = prop
    if route.date_segment:
        properties["date"] = {"type": "string", "description": DATE_DESCRIPTION}
    if route.date_range:
        properties["from"] = {"type": "string", "description": FROM_DESCRIPTION}
        properties["to"] = {"type": "string", "description": TO_DESCRIPTION}
    for flag in route.flags:
        properties[flag] = {"type": "boolean", "description": FLAG_DESCRIPTIONS[flag]}
    return {
        "type": "object",
        "properties": properties,
        "required": list(route.required_args),
    }


def list_descriptors() -> list[ToolDescriptor]:
    """All tool descriptors in table order."""
    return [
        ToolDescriptor(route.name, route.description, parameter_schema(route))
        for route in _ROUTES
    ]
