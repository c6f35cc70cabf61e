"""Bridge between the FastMCP tools and the tool dispatcher."""

import logging
from typing import Any

from polar_mcp.auth.credentials import CredentialResolver
from polar_mcp.core import MCPToolError
from polar_mcp.core.exceptions import ConfigurationError, SessionNotFoundError
from polar_mcp.core.logging import bind_user
from polar_mcp.services.polar import ToolDispatcher, ToolResult

logger = logging.getLogger(__name__)


class ToolRunner:
    """Resolves the caller's credentials and runs one tool through the dispatcher."""

    def __init__(self, dispatcher: ToolDispatcher, resolver: CredentialResolver) -> None:
        self.dispatcher = dispatcher
        self.resolver = resolver

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run a tool and return its result envelope. Never raises for expected failures."""
        try:
            credentials = await self.resolver.resolve()
        except (ConfigurationError, SessionNotFoundError) as e:
            return ToolResult.failure(str(e))
        bind_user(credentials.user_id)
        return await self.dispatcher.execute(
            tool_name,
            arguments,
            credentials.access_token,
            credentials.user_id,
        )

    async def run(self, tool_name: str, arguments: dict[str, Any]) -> str:
        """
        Run a tool for FastMCP.

        Returns:
            Tool output as text

        Raises:
            MCPToolError: If the result is an error; the client sees it as
                ``isError`` content
        """
        result = await self.execute(tool_name, arguments)
        if result.is_error:
            logger.warning("%s failed: %s", tool_name, result.error)
            raise MCPToolError(result.text())
        return result.text()
