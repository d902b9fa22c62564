from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import chromadb
import pytest

from docnote.config import Settings
from docnote.services.openai_client import AIOptions
from docnote.services.recommendation import TemplateRecommender
from docnote.services.transcription import PlaceholderTranscriber
from docnote.storage.recordings import ChromaRecordingStore
from docnote.uploads.pipeline import RecordingProcessor


class ByteStream:
    """Minimal async reader standing in for an uploaded file part."""

    def __init__(self, data: bytes, *, fail_after: int | None = None) -> None:
        self._data = data
        self._offset = 0
        self._fail_after = fail_after

    async def read(self, size: int = -1) -> bytes:
        if self._fail_after is not None and self._offset >= self._fail_after:
            raise OSError("connection reset while reading part")
        if size < 0:
            size = len(self._data) - self._offset
        if self._fail_after is not None:
            size = min(size, max(1, self._fail_after - self._offset))
        chunk = self._data[self._offset : self._offset + size]
        self._offset += len(chunk)
        return chunk


class StubStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail = False

    async def put(self, source: Path, destination: str, content_type: str) -> str:
        if self.fail:
            raise RuntimeError("bucket unavailable")
        self.objects[destination] = source.read_bytes()
        self.content_types[destination] = content_type
        return f"memory://bucket/{destination}"


class CountingTranscriber:
    def __init__(self) -> None:
        self.calls: list[Path] = []
        self.api_keys: list[str | None] = []

    async def transcribe(self, path: Path, *, options: AIOptions | None = None) -> str:
        self.calls.append(path)
        self.api_keys.append(options.api_key if options else None)
        return f"transcript of {path.read_bytes().decode('utf-8', errors='replace')}"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        environment="test",
        staging_dir=tmp_path / "chunks",
        incoming_dir=tmp_path / "incoming",
        output_dir=tmp_path / "merged",
        local_storage_dir=tmp_path / "storage",
        chroma_persist_dir=None,
        serve_local_storage=False,
        use_model_ai=False,
    )


@pytest.fixture
def storage() -> StubStorage:
    return StubStorage()


@pytest.fixture
def transcriber() -> CountingTranscriber:
    return CountingTranscriber()


@pytest.fixture
def recordings() -> ChromaRecordingStore:
    return ChromaRecordingStore(collection_name=f"test-{uuid4().hex}", client=chromadb.EphemeralClient())


@pytest.fixture
def processor(storage: StubStorage, recordings: ChromaRecordingStore, transcriber: CountingTranscriber) -> RecordingProcessor:
    return RecordingProcessor(
        storage=storage,
        recordings=recordings,
        transcriber=transcriber,
        recommender=TemplateRecommender(),
    )


@pytest.fixture
def byte_stream() -> type[ByteStream]:
    return ByteStream


@pytest.fixture
def placeholder_transcriber() -> PlaceholderTranscriber:
    return PlaceholderTranscriber()
