"""config.py - Central configuration - environment variables, constants, logging.

Values are read from the environment at import time (cold start) and
snapshotted into a ``ToolboxConfig`` once per invocation so handlers never
consult ``os.environ`` themselves.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

__all__ = [
    "ASSUME_ROLE_DURATION_SECONDS",
    "ASSUME_ROLE_SESSION_NAME",
    "AWS_REGION",
    "DEFAULT_DEVICE",
    "DEFAULT_DISTRO",
    "DEFAULT_ARCH",
    "DEFAULT_VOLUME_SIZE_GIB",
    "EXEC_TIMEOUT_SECONDS",
    "LAUNCH_MARKER_TAG",
    "MAX_TASK_COUNT",
    "SCRATCH_DIR",
    "SPOT_MARKER_TAG",
    "SPOT_POLL_INTERVAL_SECONDS",
    "SPOT_POLL_MAX_ATTEMPTS",
    "ToolboxConfig",
    "UPLOAD_PREFIX",
    "logger",
]


def _normalize_csv(*raw_values: str) -> tuple[str, ...]:
    """Return deduplicated, non-empty values from scalar/csv env sources."""
    values: list[str] = []
    seen: set[str] = set()
    for raw in raw_values:
        if not raw:
            continue
        for part in str(raw).split(","):
            value = part.strip()
            if not value or value in seen:
                continue
            seen.add(value)
            values.append(value)
    return tuple(values)


def _parse_bool(raw: Optional[str]) -> bool:
    return str(raw or "").strip().lower() in {"1", "yes", "true", "on"}


def _parse_tags(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("TAGS is not valid JSON; default tags ignored")
        return {}
    if not isinstance(parsed, dict):
        logger.warning("TAGS must be a JSON object; default tags ignored")
        return {}
    return {str(k): str(v) for k, v in parsed.items()}


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

AWS_REGION = os.environ.get("AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-1"))
SCRATCH_DIR = os.environ.get("SCRATCH_DIR", "/tmp")
UPLOAD_PREFIX = os.environ.get("UPLOAD_PREFIX", "tmp/")
SPOT_POLL_INTERVAL_SECONDS = float(os.environ.get("SPOT_POLL_INTERVAL_SECONDS", "1"))
SPOT_POLL_MAX_ATTEMPTS = int(os.environ.get("SPOT_POLL_MAX_ATTEMPTS", "300"))
ASSUME_ROLE_DURATION_SECONDS = int(os.environ.get("ASSUME_ROLE_DURATION_SECONDS", "3600"))
ASSUME_ROLE_SESSION_NAME = os.environ.get("ASSUME_ROLE_SESSION_NAME", "session")
EXEC_TIMEOUT_SECONDS = int(os.environ.get("EXEC_TIMEOUT_SECONDS", "60"))

LAUNCH_MARKER_TAG = ("lambda-toolbox", "yes")
SPOT_MARKER_TAG = ("SpotInstance", "yes")
DEFAULT_VOLUME_SIZE_GIB = 8
DEFAULT_DEVICE = "/dev/sdf"
DEFAULT_DISTRO = "amazon"
DEFAULT_ARCH = "x86_64"
MAX_TASK_COUNT = 10


@dataclass(frozen=True)
class ToolboxConfig:
    """Per-invocation snapshot of everything handlers may need from the environment."""

    bucket_name: str = ""
    allowed_ips: Tuple[str, ...] = ()
    allowed_hosts: Tuple[str, ...] = ()
    verbose: bool = False
    default_tags: Dict[str, str] = field(default_factory=dict)
    scratch_dir: str = SCRATCH_DIR
    upload_prefix: str = UPLOAD_PREFIX
    spot_poll_interval_seconds: float = SPOT_POLL_INTERVAL_SECONDS
    spot_poll_max_attempts: int = SPOT_POLL_MAX_ATTEMPTS
    assume_role_duration_seconds: int = ASSUME_ROLE_DURATION_SECONDS
    assume_role_session_name: str = ASSUME_ROLE_SESSION_NAME
    exec_timeout_seconds: int = EXEC_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ToolboxConfig":
        env = os.environ if environ is None else environ
        return cls(
            bucket_name=env.get("BUCKET_NAME", "").strip(),
            allowed_ips=_normalize_csv(env.get("ALLOWED_IPS", "")),
            allowed_hosts=_normalize_csv(env.get("ALLOWED_HOSTS", "")),
            verbose=_parse_bool(env.get("VERBOSE")),
            default_tags=_parse_tags(env.get("TAGS")),
            scratch_dir=env.get("SCRATCH_DIR", SCRATCH_DIR),
            upload_prefix=env.get("UPLOAD_PREFIX", UPLOAD_PREFIX),
            spot_poll_interval_seconds=float(
                env.get("SPOT_POLL_INTERVAL_SECONDS", SPOT_POLL_INTERVAL_SECONDS)
            ),
            spot_poll_max_attempts=max(1, int(env.get("SPOT_POLL_MAX_ATTEMPTS", SPOT_POLL_MAX_ATTEMPTS))),
            assume_role_duration_seconds=int(
                env.get("ASSUME_ROLE_DURATION_SECONDS", ASSUME_ROLE_DURATION_SECONDS)
            ),
            assume_role_session_name=env.get("ASSUME_ROLE_SESSION_NAME", ASSUME_ROLE_SESSION_NAME),
            exec_timeout_seconds=int(env.get("EXEC_TIMEOUT_SECONDS", EXEC_TIMEOUT_SECONDS)),
        )
