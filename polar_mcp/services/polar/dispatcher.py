"""Tool dispatcher: turns a tool name and argument bag into AccessLink calls.

``ToolDispatcher.execute`` never raises for expected failures. Missing
arguments, missing configuration and upstream errors all come back as a
``ToolResult`` whose ``error`` is set, so the MCP layer only has to map one
envelope onto its own result type.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from polar_mcp.core.exceptions import ConfigurationError, UpstreamError
from polar_mcp.services.polar.catalog import ToolRoute, get_route
from polar_mcp.services.polar.client import PolarClient

logger = logging.getLogger(__name__)

NO_NEW_PHYSICAL_INFO = "No new physical information available"
NO_PHYSICAL_INFO = "No physical information data available"


@dataclass(frozen=True)
class ToolResult:
    """Uniform envelope: exactly one of payload/error is meaningful."""

    payload: Any = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, payload: Any) -> "ToolResult":
        return cls(payload=payload)

    @classmethod
    def failure(cls, message: str) -> "ToolResult":
        return cls(error=message)

    def text(self) -> str:
        """Serialise for the text-based MCP result."""
        if self.is_error:
            return f"Error: {self.error}"
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, indent=2)


class ToolDispatcher:
    """Resolves tool routes and runs them against the Polar API."""

    def __init__(self, client: PolarClient) -> None:
        self.client = client

    async def execute(
        self,
        tool_name: str,
        args: Mapping[str, Any] | None,
        access_token: str,
        user_id: int | None = None,
    ) -> ToolResult:
        """
        Run a tool and wrap its outcome.

        Args:
            tool_name: Name from the tool table
            args: Arguments as received from the MCP client; None values are
                treated as omitted
            access_token: Polar bearer token of the caller
            user_id: Polar user id, required by user-scoped tools

        Returns:
            ToolResult with either the upstream payload or an error message
        """
        route = get_route(tool_name)
        if route is None:
            return ToolResult.failure(f"Unknown tool: {tool_name}")

        arguments = {k: v for k, v in (args or {}).items() if v is not None}

        missing = [name for name in route.required_args if arguments.get(name) in (None, "")]
        if missing:
            return ToolResult.failure(
                f"Missing required argument(s) for {tool_name}: {', '.join(missing)}",
            )
        problem = invalid_argument(route, arguments)
        if problem:
            return ToolResult.failure(f"Invalid argument for {tool_name}: {problem}")

        try:
            if route.needs_user_id and user_id is None:
                raise ConfigurationError(
                    f"{tool_name} needs a Polar user id. Set POLAR_USER_ID for the "
                    "local server or re-authorize to obtain a session that carries one.",
                )
            if route.multi_step:
                return await self._physical_info(access_token, user_id)
            path, params = build_request(route, arguments, user_id)
            payload = await self.client.request(
                path,
                access_token,
                params=params or None,
                response_format=route.response_format,
            )
        except ConfigurationError as e:
            logger.warning("Configuration error in %s: %s", tool_name, e)
            return ToolResult.failure(str(e))
        except UpstreamError as e:
            return ToolResult.failure(str(e))

        return ToolResult.success(payload)

    async def _physical_info(self, access_token: str, user_id: int | None) -> ToolResult:
        """Create, read and commit a physical-information transaction.

        The transaction is committed on every path once it exists; an open
        transaction blocks new ones for this user on Polar's side.
        """
        base = f"/users/{user_id}/physical-information-transactions"
        created = await self.client.request(base, access_token, method="POST")
        transaction_id = (created or {}).get("transaction-id")
        if transaction_id is None:
            return ToolResult.success({"message": NO_NEW_PHYSICAL_INFO})

        transaction_path = f"{base}/{transaction_id}"
        try:
            listing = await self.client.request(transaction_path, access_token)
        except UpstreamError:
            await self._commit(transaction_path, access_token)
            raise

        resource_uris = (listing or {}).get("physical-informations") or []
        if not resource_uris:
            await self._commit(transaction_path, access_token)
            return ToolResult.success({"message": NO_PHYSICAL_INFO})

        items: list[Any] = []
        errors: list[UpstreamError] = []
        for uri in resource_uris:
            try:
                item = await self.client.request(self.client.path_from_uri(uri), access_token)
            except UpstreamError as e:
                logger.warning("Failed to fetch physical information %s: %s", uri, e)
                errors.append(e)
            else:
                items.append(item)

        await self._commit(transaction_path, access_token)

        if not items and errors:
            return ToolResult.failure(str(errors[0]))
        return ToolResult.success(items[0] if len(items) == 1 else items)

    async def _commit(self, transaction_path: str, access_token: str) -> None:
        try:
            await self.client.request(transaction_path, access_token, method="PUT")
        except UpstreamError as e:
            logger.warning("Failed to commit transaction %s: %s", transaction_path, e)


def invalid_argument(route: ToolRoute, arguments: Mapping[str, Any]) -> str | None:
    """Describe the first path argument that does not fit its declared type, if any."""
    for param in route.path_params:
        value = arguments[param.name]
        if param.enum and str(value) not in param.enum:
            return f"{param.name} must be one of {', '.join(param.enum)}"
        if param.json_type == "integer":
            if isinstance(value, bool) or not str(value).isdigit() or int(value) == 0:
                return f"{param.name} must be a positive integer"
    return None


def build_request(
    route: ToolRoute,
    arguments: Mapping[str, Any],
    user_id: int | None = None,
) -> tuple[str, dict[str, str]]:
    """Build the request path and query parameters for a single-call route."""
    values = {p.name: quote(str(arguments[p.name]), safe="") for p in route.path_params}
    if route.needs_user_id:
        values["user_id"] = str(user_id)
    path = route.path.format(**values)

    if route.date_segment and arguments.get("date"):
        path = f"{path}/{quote(str(arguments['date']), safe='')}"

    params: dict[str, str] = {}
    if route.date_range:
        params["from"] = str(arguments["from"])
        params["to"] = str(arguments["to"])
    for flag in route.flags:
        if arguments.get(flag) is True:
            params[flag] = "true"
    return path, params
