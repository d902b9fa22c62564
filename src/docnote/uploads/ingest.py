"""Chunk ingestion for chunked uploads."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from fastapi.concurrency import run_in_threadpool

from docnote.metrics.observability import PipelineMetrics, get_logger
from docnote.models import ChunkPart
from docnote.uploads.errors import InvalidChunk, MissingAudioPart
from docnote.uploads.sessions import SessionRegistry
from docnote.uploads.staging import AsyncReadable, discard, write_stream


@dataclass(frozen=True)
class ChunkReceipt:
    """Acknowledgement returned for every accepted chunk."""

    session_id: str
    chunk_number: int
    total_chunks: int
    remaining: int


def chunk_filename(chunk_number: int) -> str:
    return f"chunk_{chunk_number}.part"


def _move_into_place(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    os.replace(source, destination)


class ChunkIngestor:
    """Stages one chunk per call and records it in the session registry.

    Re-sending a chunk index replaces the staged bytes for that index; the new
    bytes are written to a private temporary file and only swapped into place
    once fully written, so a failed retransmission leaves the previous part and
    the session untouched.
    """

    def __init__(self, registry: SessionRegistry, *, max_chunk_bytes: int | None = None) -> None:
        self._registry = registry
        self._max_chunk_bytes = max_chunk_bytes
        self._logger = get_logger("ingest")

    async def ingest(
        self,
        *,
        session_id: str,
        chunk_number: int,
        total_chunks: int,
        stream: AsyncReadable | None,
        original_filename: str = "",
        mime_type: str = "",
    ) -> ChunkReceipt:
        if stream is None:
            raise MissingAudioPart()
        session_id = (session_id or "").strip()
        if not session_id:
            raise InvalidChunk("sessionId is required")
        if total_chunks < 1:
            raise InvalidChunk("totalChunks must be a positive integer")
        existing = self._registry.get(session_id)
        expected_total = existing.total_chunks if existing is not None else total_chunks
        if not 1 <= chunk_number <= expected_total:
            raise InvalidChunk(f"chunkNumber must be between 1 and {expected_total}")
        if existing is not None and total_chunks != existing.total_chunks:
            self._logger.warning(
                "chunk.total_mismatch",
                session_id=session_id,
                session_total=existing.total_chunks,
                declared_total=total_chunks,
            )

        staging_dir = self._registry.staging_dir_for(session_id)
        final_path = staging_dir / chunk_filename(chunk_number)
        # Kept outside the session directory, which finalize and the reaper delete wholesale.
        temp_path = self._registry.incoming_dir / f"{staging_dir.name}.{chunk_filename(chunk_number)}.{uuid4().hex}.tmp"
        size = await write_stream(stream, temp_path, max_bytes=self._max_chunk_bytes)

        async with self._registry.lock(session_id):
            try:
                await run_in_threadpool(_move_into_place, temp_path, final_path)
            except OSError:
                discard(temp_path)
                raise
            session = self._registry.register_part(
                session_id,
                ChunkPart(chunk_index=chunk_number, staging_path=final_path, size=size),
                total_chunks=total_chunks,
                original_filename=original_filename,
                mime_type=mime_type,
            )
            receipt = ChunkReceipt(
                session_id=session_id,
                chunk_number=chunk_number,
                total_chunks=session.total_chunks,
                remaining=session.remaining,
            )

        PipelineMetrics.observe_chunk(size)
        self._logger.info(
            "chunk.ingested",
            session_id=session_id,
            chunk_number=chunk_number,
            total_chunks=receipt.total_chunks,
            size=size,
            remaining=receipt.remaining,
        )
        return receipt


__all__ = ["ChunkIngestor", "ChunkReceipt", "chunk_filename"]
