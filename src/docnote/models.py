"""Shared domain models used across the DocNote upload pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChunkPart:
    """One staged part of a chunked upload."""

    chunk_index: int
    staging_path: Path
    size: int


@dataclass
class ChunkSession:
    """State of one client-driven chunked upload attempt.

    ``chunks`` is keyed by the 1-based chunk index; insertion order carries no
    meaning, finalize always merges in ascending index order.
    """

    session_id: str
    total_chunks: int
    staging_dir: Path
    original_filename: str = ""
    mime_type: str = "application/octet-stream"
    chunks: dict[int, ChunkPart] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def received_indices(self) -> list[int]:
        return sorted(self.chunks)

    @property
    def missing_indices(self) -> list[int]:
        return [index for index in range(1, self.total_chunks + 1) if index not in self.chunks]

    @property
    def remaining(self) -> int:
        return self.total_chunks - len(self.chunks)

    @property
    def is_complete(self) -> bool:
        return not self.missing_indices


@dataclass(frozen=True)
class AudioFile:
    """A fully received audio file sitting in local staging."""

    path: Path
    original_filename: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class RecordingDocument:
    """Durable record of one uploaded recording."""

    filename: str
    storage_path: str
    storage_url: str
    size: int
    uploaded_at: datetime = field(default_factory=_utcnow)
    transcript: str | None = None
    recommendations: str | None = None
    owner_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StoredRecording:
    """Recording document paired with the id assigned by the collection."""

    recording_id: str
    document: RecordingDocument


@dataclass(frozen=True)
class ProcessedRecording:
    """Result of running an upload through storage, AI and the collection."""

    recording_id: str
    document: RecordingDocument


@dataclass
class DeduplicationEntry:
    """Freshness record for a processed request signature."""

    timestamp: float
    recording_id: str | None = None
    result: ProcessedRecording | None = None


@dataclass(frozen=True)
class DuplicateResult:
    """Replay of a request that was already processed inside the window."""

    recording_id: str | None
    result: ProcessedRecording | None = None
    is_duplicate: bool = True
