"""lambda_function.py - Toolbox Lambda entry point.

Invoked through a Lambda function URL (or an API Gateway HTTP API). GET is a
liveness probe; POST bodies are JSON commands or multipart uploads and are
only accepted from allow-listed source IPs. The response body is always the
plain-text session log.

Environment variables:
  BUCKET_NAME                   bucket for uploads, user data and zip files
  ALLOWED_IPS                   comma-separated caller IPs
  ALLOWED_HOSTS                 comma-separated hostnames resolved per request
  VERBOSE                       mirror the session log to CloudWatch
  TAGS                          JSON object of default instance tags
  SCRATCH_DIR                   local scratch directory (default: /tmp)
  UPLOAD_PREFIX                 bucket prefix for multipart uploads (default: tmp/)
  SPOT_POLL_INTERVAL_SECONDS    spot fulfillment poll interval (default: 1)
  SPOT_POLL_MAX_ATTEMPTS        spot fulfillment describe budget (default: 300)
  ASSUME_ROLE_DURATION_SECONDS  sts.switch credential lifetime (default: 3600)
  ASSUME_ROLE_SESSION_NAME      sts.switch session name (default: session)
  EXEC_TIMEOUT_SECONDS          exec.* subprocess timeout (default: 60)
"""
from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional

from auth import _source_allowed
from config import ToolboxConfig, logger
from dispatcher import Dispatcher
from http_utils import _content_type, _path_method, _raw_body, _source_ip, _text_response
from multipart import handle_multipart
from session import Session

__all__ = ["lambda_handler"]


def _handle_json(session: Session, body: bytes, dispatcher_factory: Callable[[Session], Dispatcher]) -> None:
    try:
        payload = json.loads(body or b"{}")
    except ValueError as exc:
        session.logf("invalid JSON body: %s", exc)
        return
    if not isinstance(payload, dict):
        session.logf("invalid JSON body: expected object, got %s", type(payload).__name__)
        return
    dispatcher_factory(session).dispatch(payload)


def _handle(
    session: Session,
    event: Dict[str, Any],
    dispatcher_factory: Optional[Callable[[Session], Dispatcher]] = None,
) -> None:
    method, path = _path_method(event)
    logger.info("[INFO] route method=%s path=%s", method, path)
    if method == "GET":
        session.logf("Lambda works")
        return
    if method != "POST":
        session.logf("Unknown request")
        return

    source_ip = _source_ip(event)
    if not _source_allowed(source_ip, session.config):
        session.logf("SourceIP: %s is NOT allowed", source_ip)
        return

    ctype = _content_type(event)
    if ctype is None:
        session.logf("No Content-Type")
        return
    try:
        body = _raw_body(event)
    except ValueError as exc:
        session.logf("invalid base64 body: %s", exc)
        return

    media_type = ctype.split(";", 1)[0].strip().lower()
    if media_type == "application/json":
        _handle_json(session, body, dispatcher_factory or Dispatcher)
    elif media_type == "multipart/form-data":
        handle_multipart(session, ctype, body)
    else:
        session.logf("Unknown Content-Type: %s", ctype)


def lambda_handler(event: Dict[str, Any], _context: Any) -> Dict[str, Any]:
    started = time.monotonic()
    session = Session(ToolboxConfig.from_env())
    logger.info("[INFO] start handler")
    _handle(session, event)
    logger.info("[INFO] end handler (%.3fs)", time.monotonic() - started)
    return _text_response(session.text())
