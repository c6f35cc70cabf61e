"""
MCP Tools Package.

Every entry of the AccessLink route table becomes one MCP tool:
- training: exercises and exercise file exports
- recovery: Nightly Recharge, sleep and SleepWise
- activity: daily activity, samples, continuous heart rate and cardio load
- body: user profile, physical information and biosensing

The table lives in polar_mcp.services.polar.catalog; register_tools() adds a
PolarTool per entry to the FastMCP server.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastmcp import FastMCP

from polar_mcp.services.polar import list_descriptors
from polar_mcp.tools.polar_tool import PolarTool
from polar_mcp.tools.runner import ToolRunner

logger = logging.getLogger(__name__)


def register_tools(mcp: "FastMCP", runner: ToolRunner) -> int:
    """
    Register all MCP tools with the FastMCP instance.

    Args:
        mcp: FastMCP instance to register tools with
        runner: Tool runner shared by every tool

    Returns:
        Number of registered tools
    """
    logger.info("Registering all MCP tools...")

    descriptors = list_descriptors()
    for descriptor in descriptors:
        mcp.add_tool(PolarTool(descriptor, runner))

    logger.info("All MCP tools registered successfully (%d tools)", len(descriptors))
    return len(descriptors)


__all__ = [
    "PolarTool",
    "ToolRunner",
    "register_tools",
]
