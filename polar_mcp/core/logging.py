"""Logging configuration for the Polar MCP server.

Records are tagged with the tool call they belong to (request id, tool name
and Polar user id) and scrubbed of credentials before they are written: the
hosted server sees bearer tokens, session ids and authorization codes in
headers and query strings, and none of them may reach the log.
"""

import logging
import os
import re
import sys
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass

APP_LOGGER_NAME = "polar_mcp"
REDACTED = "[REDACTED]"


@dataclass(frozen=True)
class ToolCall:
    """Identifies the tool call a log record was emitted under."""

    request_id: str
    tool_name: str
    user_id: int | None = None

    def tag(self) -> str:
        if self.user_id is None:
            return f"[{self.request_id} {self.tool_name}] "
        return f"[{self.request_id} {self.tool_name} user={self.user_id}] "


# Tool call in progress for the current task
tool_call_ctx: ContextVar[ToolCall | None] = ContextVar("tool_call", default=None)

_SECRET_PATTERNS = (
    (re.compile(r"(Bearer|Basic)\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), r"\1 " + REDACTED),
    (
        re.compile(r"\b(session|code|access_token|client_secret|refresh_token)=[^&\s\"']+"),
        r"\1=" + REDACTED,
    ),
    (
        re.compile(r"([\"'](?:access_token|client_secret|refresh_token)[\"']\s*:\s*)[\"'][^\"']*[\"']"),
        r'\1"' + REDACTED + '"',
    ),
)


def redact(text: str) -> str:
    """Mask credentials in a log message."""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def bind_user(user_id: int | None) -> None:
    """Attach the resolved Polar user id to the tool call in progress."""
    call = tool_call_ctx.get()
    if call is not None and user_id is not None:
        tool_call_ctx.set(ToolCall(call.request_id, call.tool_name, user_id))


class ToolCallFilter(logging.Filter):
    """Adds the ``tool_call`` tag to every record."""

    def filter(self, record):
        call = tool_call_ctx.get()
        record.tool_call = call.tag() if call else ""
        return True


def _redact_arg(value):
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, BaseException):
        return redact(str(value))
    return value


class RedactingFilter(logging.Filter):
    """Masks credentials in the message and its arguments.

    The argument shape is preserved since formatters such as uvicorn's
    AccessFormatter unpack ``record.args`` themselves.
    """

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_redact_arg(arg) for arg in record.args)
        elif isinstance(record.args, Mapping):
            record.args = {key: _redact_arg(value) for key, value in record.args.items()}
        return True


def configure_logging() -> logging.Logger:
    """Configure and return the logger for the application."""
    # stdout belongs to the stdio transport, so everything goes to stderr
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] [%(name)s] %(tool_call)s%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logger = logging.getLogger(APP_LOGGER_NAME)

    for handler in logging.root.handlers:
        handler.addFilter(ToolCallFilter())
        handler.addFilter(RedactingFilter())

    # uvicorn's access log has its own handler and carries ?session= query strings
    logging.getLogger("uvicorn.access").addFilter(RedactingFilter())

    if os.getenv("MCP_DEBUG", "").lower() in ("true", "1", "yes"):
        logger.setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")

    return logger


# Initialize logger
logger = configure_logging()
