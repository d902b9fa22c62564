"""Local staging helpers: streamed writes, ordered merges and best-effort cleanup."""

from __future__ import annotations

import os
import re
import shutil
import time
from pathlib import Path
from typing import BinaryIO, Iterable, Protocol
from uuid import uuid4

from fastapi.concurrency import run_in_threadpool

from docnote.metrics.observability import get_logger
from docnote.uploads.errors import UploadTooLarge

COPY_BUFFER_SIZE = 1024 * 1024

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")

_logger = get_logger("staging")


class AsyncReadable(Protocol):
    """Anything exposing an awaitable ``read`` (e.g. ``fastapi.UploadFile``)."""

    async def read(self, size: int = -1) -> bytes:
        ...


def safe_filename(name: str, *, default: str = "upload") -> str:
    """Reduce a client-supplied name to a single safe path component."""

    base = Path(name or "").name
    cleaned = _SAFE_NAME.sub("_", base).strip("._")
    return cleaned or default


def output_name(original_filename: str) -> str:
    """Build a fresh output name from the current time and the original extension."""

    suffix = Path(original_filename or "").suffix.lower()
    if suffix and not re.fullmatch(r"\.[a-z0-9]{1,10}", suffix):
        suffix = ""
    return f"{int(time.time() * 1000)}-{uuid4().hex[:8]}{suffix}"


async def write_stream(stream: AsyncReadable, destination: Path, *, max_bytes: int | None = None) -> int:
    """Copy ``stream`` into ``destination`` and return the number of bytes written.

    The file handle is closed on every exit path; a partial file is removed
    when the copy fails or exceeds ``max_bytes``.
    """

    destination.parent.mkdir(parents=True, exist_ok=True)
    bytes_written = 0
    try:
        with destination.open("wb") as out_f:
            while True:
                chunk = await stream.read(COPY_BUFFER_SIZE)
                if not chunk:
                    break
                bytes_written += len(chunk)
                if max_bytes is not None and bytes_written > max_bytes:
                    raise UploadTooLarge(f"File too large (>{max_bytes // (1024 * 1024)}MB)")
                await run_in_threadpool(out_f.write, chunk)
            await run_in_threadpool(_flush_and_sync, out_f)
    except BaseException:
        discard(destination)
        raise
    return bytes_written


def _flush_and_sync(handle: BinaryIO) -> None:
    handle.flush()
    os.fsync(handle.fileno())


def merge_parts(parts: Iterable[Path], destination: Path) -> int:
    """Concatenate ``parts`` in the given order into ``destination``; returns total size."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    total = 0
    try:
        with destination.open("wb") as out_f:
            for part in parts:
                with part.open("rb") as in_f:
                    while True:
                        block = in_f.read(COPY_BUFFER_SIZE)
                        if not block:
                            break
                        out_f.write(block)
                        total += len(block)
            _flush_and_sync(out_f)
    except BaseException:
        discard(destination)
        raise
    return total


def discard(path: Path) -> None:
    """Remove a local file, logging and ignoring failures."""

    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        _logger.warning("staging.cleanup_failed", path=str(path), detail=str(exc))


def discard_tree(path: Path) -> None:
    """Remove a local directory tree, logging and ignoring failures."""

    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as exc:
        _logger.warning("staging.cleanup_failed", path=str(path), detail=str(exc))


__all__ = [
    "AsyncReadable",
    "COPY_BUFFER_SIZE",
    "discard",
    "discard_tree",
    "merge_parts",
    "output_name",
    "safe_filename",
    "write_stream",
]
