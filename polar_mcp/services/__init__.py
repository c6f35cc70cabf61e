"""Service layer for the Polar MCP server."""
