"""FastMCP tool backed by an entry of the AccessLink route table."""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult as MCPToolResult
from pydantic import PrivateAttr

from polar_mcp.core import track_request
from polar_mcp.services.polar import ToolDescriptor

if TYPE_CHECKING:
    from polar_mcp.tools.runner import ToolRunner


class PolarTool(Tool):
    """
    One Polar AccessLink tool.

    The advertised input schema is the route's ``parameter_schema``, so the
    argument names clients send (``date``, ``from``, ``to``, ``exercise_id``
    and so on) are exactly the ones the dispatcher reads. Argument checking
    happens in the dispatcher, which reports problems as tool errors.
    """

    _call: Callable[[str, dict[str, Any]], Awaitable[str]] = PrivateAttr()

    def __init__(self, descriptor: ToolDescriptor, runner: "ToolRunner") -> None:
        super().__init__(
            name=descriptor.name,
            description=descriptor.description,
            parameters=descriptor.parameters,
        )
        self._call = track_request(descriptor.name)(runner.run)

    def __repr__(self) -> str:
        return f"PolarTool(name={self.name!r})"

    async def run(self, arguments: dict[str, Any]) -> MCPToolResult:
        """
        Run the tool.

        Raises:
            MCPToolError: If the Polar call or the arguments fail
        """
        text = await self._call(self.name, dict(arguments or {}))
        return MCPToolResult(content=text)
