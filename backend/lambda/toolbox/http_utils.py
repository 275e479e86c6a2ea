"""http_utils.py - Event parsing (method, headers, body, source IP) and the text response.

Handles Lambda function URL / API Gateway v2 events and falls back to the
REST (v1) shapes where they differ.
"""
from __future__ import annotations

import base64
from typing import Any, Dict, Optional, Tuple

__all__ = [
    "_content_type",
    "_header",
    "_path_method",
    "_raw_body",
    "_source_ip",
    "_text_response",
]


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "").upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or "/"
    return method, path


def _header(event: Dict[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in (event.get("headers") or {}).items():
        if str(key).lower() == wanted:
            return value
    return None


def _content_type(event: Dict[str, Any]) -> Optional[str]:
    value = _header(event, "content-type")
    if value is None:
        return None
    return str(value).strip()


def _raw_body(event: Dict[str, Any]) -> bytes:
    raw = event.get("body")
    if raw in (None, ""):
        return b""
    if event.get("isBase64Encoded"):
        return base64.b64decode(raw)
    if isinstance(raw, bytes):
        return raw
    return str(raw).encode("utf-8")


def _source_ip(event: Dict[str, Any]) -> str:
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    identity = rc.get("identity") or {}
    return str(http.get("sourceIp") or identity.get("sourceIp") or "")


def _text_response(body: str, status_code: int = 200) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "text/plain"},
        "body": body,
    }
