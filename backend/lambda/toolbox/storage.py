"""storage.py - S3 bucket gateway and object utilities."""
from __future__ import annotations

import base64
import binascii
import posixpath
from typing import List

from aws_clients import _aws_call, _get_s3
from errors import GatewayError
from local_exec import _resolve_under

__all__ = ["Bucket"]


class Bucket:
    """One named bucket; every method raises ``GatewayError`` on failure."""

    def __init__(self, name: str, client=None) -> None:
        if not name:
            raise GatewayError("NewBucket", message="empty name")
        self.name = name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _get_s3()
        return self._client

    def put(self, key: str, body: bytes) -> None:
        with _aws_call("PutObject"):
            self.client.put_object(Bucket=self.name, Key=key, Body=body)

    def get(self, key: str) -> bytes:
        with _aws_call("GetObject"):
            resp = self.client.get_object(Bucket=self.name, Key=key)
            return resp["Body"].read()

    def concat_objects(self, dst: str, srcs: List[str]) -> None:
        """Write the concatenation of ``srcs`` (in order) to ``dst``."""
        chunks = [self.get(src) for src in srcs]
        self.put(dst, b"".join(chunks))

    def store_object(self, dst: str, srcs: List[str], scratch_dir: str) -> None:
        """Upload scratch files ``srcs`` to ``dst/<src>``."""
        for src in srcs:
            path = _resolve_under(scratch_dir, src, "ReadFile")
            try:
                with open(path, "rb") as fh:
                    body = fh.read()
            except OSError as exc:
                raise GatewayError("ReadFile", exc) from exc
            self.put(posixpath.join(dst, src), body)

    def base64_decode_object(self, dst: str, src: str) -> None:
        body = self.get(src)
        try:
            plain = base64.b64decode(body)
        except (binascii.Error, ValueError) as exc:
            raise GatewayError("Base64Decode", exc) from exc
        self.put(dst, plain)
