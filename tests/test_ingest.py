"""Tests for chunk ingestion."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from docnote.uploads.errors import InvalidChunk, MissingAudioPart, UploadTooLarge
from docnote.uploads.ingest import ChunkIngestor
from docnote.uploads.sessions import SessionRegistry


def test_ingest_acknowledges_with_remaining_count(tmp_path: Path, byte_stream) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry)

    async def scenario():
        first = await ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=3, stream=byte_stream(b"AA"))
        second = await ingestor.ingest(session_id="s1", chunk_number=3, total_chunks=3, stream=byte_stream(b"CC"))
        return first, second

    first, second = asyncio.run(scenario())

    assert (first.session_id, first.chunk_number, first.total_chunks, first.remaining) == ("s1", 1, 3, 2)
    assert second.remaining == 1
    staged = registry.staging_dir_for("s1") / "chunk_3.part"
    assert staged.read_bytes() == b"CC"


def test_resending_a_chunk_replaces_it(tmp_path: Path, byte_stream) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry)

    async def scenario():
        await ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=2, stream=byte_stream(b"old"))
        return await ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=2, stream=byte_stream(b"newer"))

    receipt = asyncio.run(scenario())
    session = registry.get("s1")

    assert receipt.remaining == 1
    assert len(session.chunks) == 1
    assert session.chunks[1].size == 5
    assert session.chunks[1].staging_path.read_bytes() == b"newer"
    assert sorted(p.name for p in session.staging_dir.iterdir()) == ["chunk_1.part"]


def test_missing_audio_part_does_not_touch_state(tmp_path: Path) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry)

    with pytest.raises(MissingAudioPart):
        asyncio.run(ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=2, stream=None))

    assert registry.get("s1") is None
    assert not registry.staging_dir_for("s1").exists()


@pytest.mark.parametrize("chunk_number,total_chunks", [(0, 3), (4, 3), (1, 0)])
def test_invalid_positions_are_rejected(tmp_path: Path, byte_stream, chunk_number: int, total_chunks: int) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry)

    with pytest.raises(InvalidChunk):
        asyncio.run(
            ingestor.ingest(
                session_id="s1",
                chunk_number=chunk_number,
                total_chunks=total_chunks,
                stream=byte_stream(b"AA"),
            )
        )
    assert len(registry) == 0


def test_failed_write_leaves_previous_part_and_session(tmp_path: Path, byte_stream) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry)

    async def scenario():
        await ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=2, stream=byte_stream(b"good"))
        await ingestor.ingest(
            session_id="s1",
            chunk_number=1,
            total_chunks=2,
            stream=byte_stream(b"broken-payload", fail_after=3),
        )

    with pytest.raises(OSError):
        asyncio.run(scenario())

    session = registry.get("s1")
    assert session.chunks[1].size == 4
    assert session.chunks[1].staging_path.read_bytes() == b"good"
    assert [p.name for p in session.staging_dir.iterdir()] == ["chunk_1.part"]


def test_failed_first_write_creates_no_session(tmp_path: Path, byte_stream) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry)

    with pytest.raises(OSError):
        asyncio.run(
            ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=2, stream=byte_stream(b"abcdef", fail_after=2))
        )
    assert registry.get("s1") is None


def test_oversized_chunk_is_rejected(tmp_path: Path, byte_stream) -> None:
    registry = SessionRegistry(tmp_path)
    ingestor = ChunkIngestor(registry, max_chunk_bytes=4)

    with pytest.raises(UploadTooLarge):
        asyncio.run(ingestor.ingest(session_id="s1", chunk_number=1, total_chunks=1, stream=byte_stream(b"12345")))
    assert registry.get("s1") is None
