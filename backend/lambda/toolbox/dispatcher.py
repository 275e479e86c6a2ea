"""dispatcher.py - Command parsing, request decoding and family routing.

A request node either carries a dotted ``command`` (``family.verb[.mod...]``)
or is a batch whose ``requests`` are dispatched in order against the same
session. Errors are written to the session log; a failing batch child never
stops its siblings.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

from config import logger
from errors import CommandParseError, RequestDecodeError, ToolboxError, UnsupportedOperationError
from handlers import (
    ComputeHandler,
    CredentialsHandler,
    DeployHandler,
    FamilyHandler,
    LocalExecHandler,
    StorageHandler,
    TasksHandler,
)
from request_model import BatchRequest, Command, Family, OperationRequest, decode_params
from session import Session

__all__ = [
    "DEFAULT_HANDLERS",
    "Dispatcher",
    "decode_request",
    "parse_command",
]

HandlerFactory = Callable[[Session], FamilyHandler]

DEFAULT_HANDLERS: Dict[Family, HandlerFactory] = {
    Family.COMPUTE: ComputeHandler,
    Family.TASKS: TasksHandler,
    Family.STORAGE: StorageHandler,
    Family.DEPLOY: DeployHandler,
    Family.CREDENTIALS: CredentialsHandler,
    Family.LOCAL_EXEC: LocalExecHandler,
}

_FAMILIES = {family.value: family for family in Family}


def parse_command(raw: str) -> Command:
    """Split ``family.verb[.mod...]``; unknown families are unsupported, not malformed."""
    parts = raw.split(".")
    if len(parts) < 2:
        raise CommandParseError(raw)
    family = _FAMILIES.get(parts[0])
    if family is None:
        raise UnsupportedOperationError(raw)
    return Command(family=family, verb=parts[1], args=tuple(parts[2:]), raw=raw)


def decode_request(payload: Any) -> Union[BatchRequest, OperationRequest]:
    if not isinstance(payload, Mapping):
        raise RequestDecodeError(f"request must be an object, got {type(payload).__name__}")
    lowered = {str(k).lower(): v for k, v in payload.items()}

    raw_command = lowered.get("command") or ""
    if not isinstance(raw_command, str):
        raise RequestDecodeError("command: expected string")
    if not raw_command:
        requests = lowered.get("requests") or []
        if not isinstance(requests, list):
            raise RequestDecodeError("requests: expected list")
        return BatchRequest(requests=list(requests))

    command = parse_command(raw_command)
    return OperationRequest(command=command, params=decode_params(command.family, payload))


class Dispatcher:
    def __init__(
        self,
        session: Session,
        handlers: Optional[Mapping[Family, HandlerFactory]] = None,
    ) -> None:
        self.session = session
        self.handlers: Dict[Family, HandlerFactory] = dict(DEFAULT_HANDLERS)
        if handlers:
            self.handlers.update(handlers)

    def dispatch(self, payload: Any) -> None:
        try:
            request = decode_request(payload)
        except ToolboxError as exc:
            self.session.logf("%s", exc)
            return

        if isinstance(request, BatchRequest):
            for child in request.requests:
                try:
                    self.dispatch(child)
                except Exception as exc:  # children are independent
                    logger.exception("[ERROR] batch child failed: %s", exc)
                    self.session.logf("internal error: %s", exc)
            return

        self._run(request)

    def _run(self, request: OperationRequest) -> None:
        command = request.command
        handler = self.handlers[command.family](self.session)
        verb = handler.verbs.get(command.verb)
        if verb is None:
            self.session.logf("%s", UnsupportedOperationError(command.raw))
            return

        started = time.monotonic()
        logger.info("[INFO] %s: start", command.raw)
        try:
            verb(command, request.params)
        except ToolboxError as exc:
            self.session.logf("%s", exc)
        finally:
            logger.info("[INFO] %s: end (%.3fs)", command.raw, time.monotonic() - started)
