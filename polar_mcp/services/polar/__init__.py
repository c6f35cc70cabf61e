"""Polar AccessLink API access: HTTP client, tool table and dispatcher."""

from polar_mcp.services.polar.catalog import (
    TOOL_ROUTES,
    ToolDescriptor,
    ToolRoute,
    list_descriptors,
)
from polar_mcp.services.polar.client import PolarClient
from polar_mcp.services.polar.dispatcher import ToolDispatcher, ToolResult

__all__ = [
    "TOOL_ROUTES",
    "PolarClient",
    "ToolDescriptor",
    "ToolDispatcher",
    "ToolResult",
    "ToolRoute",
    "list_descriptors",
]
