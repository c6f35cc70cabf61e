"""Decorators for the Polar MCP server."""

import functools
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ParamSpec, TypeVar

from .logging import ToolCall, logger, tool_call_ctx

P = ParamSpec("P")
R = TypeVar("R")


def argument_names(args: tuple[Any, ...], kwargs: Mapping[str, Any]) -> list[str]:
    """Names of the arguments a tool was called with; values are never logged."""
    names = [name for name, value in kwargs.items() if value is not None]
    for arg in args:
        if isinstance(arg, Mapping):
            names.extend(name for name, value in arg.items() if value is not None)
    return sorted(names)


def track_request(
    tool_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to track MCP tool calls with timing and error handling.

    Every record logged while the call runs, including those of the
    dispatcher and the HTTP client, carries a short request id and the tool
    name.

    Args:
        tool_name: Name of the tool being tracked

    Returns:
        Decorated function with request tracking
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            token = tool_call_ctx.set(ToolCall(uuid.uuid4().hex[:8], tool_name))
            start_time = time.monotonic()

            logger.info("Starting %s", tool_name)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Arguments: %s", ", ".join(argument_names(args, kwargs)) or "none")

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "Failed %s after %.2fs: %s",
                    tool_name,
                    time.monotonic() - start_time,
                    e,
                )
                raise
            else:
                logger.info("Completed %s in %.2fs", tool_name, time.monotonic() - start_time)
                return result
            finally:
                tool_call_ctx.reset(token)

        return wrapper

    return decorator
