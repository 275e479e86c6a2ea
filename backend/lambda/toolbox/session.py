"""session.py - Per-invocation log buffer and collaborator handles."""
from __future__ import annotations

from typing import Iterable, List, Optional

from config import ToolboxConfig, logger
from errors import GatewayError
from local_exec import _resolve_under
from storage import Bucket

__all__ = ["Session"]


class Session:
    """Accumulates the caller-visible log for one invocation.

    The log is append-only and returned verbatim (newline-joined) as the
    response body. When ``config.verbose`` is set each line is also mirrored
    to the process logger.
    """

    def __init__(self, config: ToolboxConfig, bucket: Optional[Bucket] = None) -> None:
        self.config = config
        self.verbose = config.verbose
        self.outputs: List[str] = []
        self.bucket = bucket
        if self.bucket is None and config.bucket_name:
            self.bucket = Bucket(config.bucket_name)
        elif self.bucket is None:
            # operations that need the bucket report "no bucket" themselves
            logger.info("[INFO] BUCKET_NAME unset; storage operations disabled")

    def logf(self, fmt: str, *args) -> None:
        line = fmt % args if args else fmt
        if self.verbose:
            logger.info("%s", line)
        self.outputs.append(line)

    def log_lines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.logf("%s", line)

    def require_bucket(self) -> Bucket:
        if self.bucket is None:
            raise GatewayError("Bucket", message="no bucket")
        return self.bucket

    def get_file(self, filename: str) -> bytes:
        """Read ``filename`` from the scratch dir, falling back to the bucket."""
        path = _resolve_under(self.config.scratch_dir, filename, "GetFile")
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except OSError as scratch_exc:
            if self.bucket is None:
                raise GatewayError(
                    "GetFile", message=f"{filename} is not found: ({scratch_exc}) (no bucket)"
                ) from scratch_exc
            try:
                return self.bucket.get(filename)
            except GatewayError as bucket_exc:
                raise GatewayError(
                    "GetFile", message=f"{filename} is not found: ({scratch_exc}) ({bucket_exc})"
                ) from bucket_exc

    def text(self) -> str:
        return "\n".join(self.outputs) + "\n"
