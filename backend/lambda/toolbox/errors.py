"""errors.py - Error taxonomy for the toolbox Lambda.

Every error a handler raises is a ``ToolboxError``; the dispatcher turns it
into a single session log line and moves on to the next request.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "CommandParseError",
    "GatewayError",
    "MissingFieldError",
    "RequestDecodeError",
    "ToolboxError",
    "UnsupportedOperationError",
]


class ToolboxError(Exception):
    """Base class for errors reported through the session log."""


class CommandParseError(ToolboxError):
    def __init__(self, command: str) -> None:
        super().__init__(f"command parse error: {command}")
        self.command = command


class UnsupportedOperationError(ToolboxError):
    def __init__(self, command: str) -> None:
        super().__init__(f"unsupported operation: {command}")
        self.command = command


class RequestDecodeError(ToolboxError, ValueError):
    """A request field has the wrong shape (e.g. ``count`` is not an integer)."""


class MissingFieldError(ToolboxError):
    """A required request field is absent; the message is logged verbatim."""


class GatewayError(ToolboxError):
    """A remote (or local process) collaborator call failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None, message: str = "") -> None:
        detail = message or (str(cause) if cause is not None else "failed")
        super().__init__(f"{operation}: {detail}")
        self.operation = operation
        self.cause = cause
