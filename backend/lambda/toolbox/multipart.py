"""multipart.py - multipart/form-data uploads.

Each form part is routed by its ``name``: ``file`` and ``s3`` parts go to the
bucket under the upload prefix, ``tmp`` parts go to the scratch directory.
Parts without a filename are skipped.
"""
from __future__ import annotations

import os
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Iterator, Optional, Tuple

from errors import GatewayError
from session import Session

__all__ = ["handle_multipart", "iter_form_parts"]

BUCKET_PART_NAMES = {"file", "s3"}
SCRATCH_PART_NAMES = {"tmp"}


def iter_form_parts(content_type: str, body: bytes) -> Iterator[Tuple[str, Optional[str], bytes]]:
    """Yield ``(name, filename, content)`` for each form-data part of ``body``."""
    head = f"Content-Type: {content_type}\r\nMIME-Version: 1.0\r\n\r\n".encode("utf-8")
    message = BytesParser(policy=policy.HTTP).parsebytes(head + body)
    if not message.is_multipart():
        return
    for part in message.iter_parts():
        if not isinstance(part, EmailMessage):
            continue
        name = part.get_param("name", header="content-disposition") or ""
        filename = part.get_filename()
        content = part.get_payload(decode=True) or b""
        yield str(name), filename, content


def _store_in_scratch(session: Session, filename: str, content: bytes) -> None:
    path = os.path.join(session.config.scratch_dir, os.path.basename(filename))
    try:
        with open(path, "wb") as fh:
            fh.write(content)
    except OSError as exc:
        raise GatewayError("WriteFile", exc) from exc


def handle_multipart(session: Session, content_type: str, body: bytes) -> None:
    parsed = False
    for n, (name, filename, content) in enumerate(iter_form_parts(content_type, body)):
        parsed = True
        session.logf("part %d", n)
        session.logf("name = %s, filename = %s", name, filename or "")
        if not filename:
            session.logf("no filename")
            continue
        try:
            if name in BUCKET_PART_NAMES:
                key = session.config.upload_prefix + filename
                session.require_bucket().put(key, content)
            elif name in SCRATCH_PART_NAMES:
                _store_in_scratch(session, filename, content)
            else:
                session.logf("unknown name = %s", name)
        except GatewayError as exc:
            session.logf("%s", exc)
    if not parsed:
        session.logf("no parts in multipart body")
