"""credentials.py - STS temporary credential issuance."""
from __future__ import annotations

from typing import Any, Dict

from aws_clients import _aws_call, _get_sts

__all__ = ["assume_role"]


def assume_role(role_arn: str, session_name: str, duration_seconds: int, client=None) -> Dict[str, Any]:
    client = client or _get_sts()
    with _aws_call("AssumeRole"):
        resp = client.assume_role(
            RoleArn=role_arn,
            RoleSessionName=session_name,
            DurationSeconds=duration_seconds,
        )
    return resp.get("Credentials") or {}
