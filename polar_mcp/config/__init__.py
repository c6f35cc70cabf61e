"""Configuration package for the Polar MCP server."""

from polar_mcp.config.settings import Settings, get_settings, reset_settings

__all__ = ["Settings", "get_settings", "reset_settings"]
