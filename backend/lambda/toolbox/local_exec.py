"""local_exec.py - Local file and process operations inside the execution environment."""
from __future__ import annotations

import io
import os
import subprocess
import zipfile
from typing import List

from errors import GatewayError

__all__ = [
    "_resolve_under",
    "concat_files",
    "list_files",
    "run_command",
    "unzip",
]


def _resolve_under(base_dir: str, name: str, operation: str) -> str:
    """Join ``name`` under ``base_dir``; absolute or climbing names are rejected."""
    root = os.path.realpath(base_dir)
    target = os.path.realpath(os.path.join(root, name))
    if not target.startswith(root + os.sep):
        raise GatewayError(operation, message=f"bad name {name}")
    return target


def unzip(archive: bytes, dest_dir: str) -> List[str]:
    """Extract ``archive`` into ``dest_dir``; entries that would land outside it are rejected."""
    written: List[str] = []
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            for info in zf.infolist():
                if ".." in info.filename:
                    raise GatewayError("Unzip", message=f"bad name {info.filename}")
                target = _resolve_under(dest_dir, info.filename, "Unzip")
                if info.is_dir():
                    os.makedirs(target, exist_ok=True)
                    continue
                parent = os.path.dirname(target)
                if parent:
                    os.makedirs(parent, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    dst.write(src.read())
                mode = (info.external_attr >> 16) & 0o777
                if mode:
                    os.chmod(target, mode)
                written.append(target)
    except (zipfile.BadZipFile, OSError) as exc:
        raise GatewayError("Unzip", exc) from exc
    return written


def _run(argv: List[str], operation: str, timeout: int) -> List[str]:
    try:
        proc = subprocess.run(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
            check=True,
        )
    except subprocess.CalledProcessError as exc:
        output = (exc.output or b"").decode("utf-8", errors="replace").strip()
        raise GatewayError(operation, message=f"exit status {exc.returncode}: {output}") from exc
    except (subprocess.TimeoutExpired, OSError) as exc:
        raise GatewayError(operation, exc) from exc
    return proc.stdout.decode("utf-8", errors="replace").splitlines()


def list_files(directory: str, timeout: int = 60) -> List[str]:
    return _run(["ls", "-l", directory], "ListFiles", timeout)


def run_command(argv: List[str], timeout: int = 60) -> List[str]:
    return _run(list(argv), "Run", timeout)


def concat_files(dest: str, sources: List[str], base_dir: str) -> None:
    """Concatenate ``sources`` into ``dest``; every name must stay under ``base_dir``."""
    dest_path = _resolve_under(base_dir, dest, "ExecConcat")
    src_paths = [_resolve_under(base_dir, src, "ExecConcat") for src in sources]
    try:
        with open(dest_path, "wb") as out:
            for src_path in src_paths:
                with open(src_path, "rb") as fh:
                    out.write(fh.read())
    except OSError as exc:
        raise GatewayError("ExecConcat", exc) from exc
