"""Recording metadata collection backed by Chroma."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping, MutableMapping, Protocol, Sequence
from uuid import uuid4

import chromadb
from chromadb.api import ClientAPI
from fastapi.concurrency import run_in_threadpool

from docnote.models import RecordingDocument, StoredRecording

_VECTOR_DIM = 16
_DELETE_BATCH = 500


class RecordingStore(Protocol):
    """Protocol for the recording metadata collection."""

    async def save(self, document: RecordingDocument) -> str:
        """Persist ``document`` and return its id."""

    async def get(self, recording_id: str) -> StoredRecording | None:
        """Return one recording or ``None``."""

    async def list(self, *, owner_id: str | None = None, limit: int = 100) -> Sequence[StoredRecording]:
        """Return recordings ordered by ``uploaded_at`` descending."""

    async def delete_by_id(self, recording_id: str) -> bool:
        """Delete one recording; returns whether it existed."""

    async def delete_all(self, *, owner_id: str | None = None) -> int:
        """Delete every recording (optionally for one owner); returns the count."""

    def count(self) -> int:
        """Return total number of stored recordings."""


def _fingerprint_vector(text: str) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [byte / 255.0 for byte in digest[:_VECTOR_DIM]]


class ChromaRecordingStore:
    """Chroma-backed append-only recording collection.

    Each recording is one collection entry: the transcript (or filename) as the
    document, the record fields as flat metadata and a content fingerprint as
    its vector.
    """

    def __init__(
        self,
        collection_name: str = "docnote-recordings",
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def save(self, document: RecordingDocument) -> str:
        return await run_in_threadpool(self._save, document)

    async def get(self, recording_id: str) -> StoredRecording | None:
        return await run_in_threadpool(self._get, recording_id)

    async def list(self, *, owner_id: str | None = None, limit: int = 100) -> Sequence[StoredRecording]:
        return await run_in_threadpool(self._list, owner_id, limit)

    async def delete_by_id(self, recording_id: str) -> bool:
        return await run_in_threadpool(self._delete_by_id, recording_id)

    async def delete_all(self, *, owner_id: str | None = None) -> int:
        return await run_in_threadpool(self._delete_all, owner_id)

    def count(self) -> int:
        try:
            return int(self._collection.count())
        except Exception:
            return 0

    def _save(self, document: RecordingDocument) -> str:
        recording_id = uuid4().hex
        text = document.transcript or document.filename
        self._collection.add(
            ids=[recording_id],
            documents=[text],
            metadatas=[self._serialize(document)],
            embeddings=[_fingerprint_vector(f"{document.filename}\n{text}")],
        )
        return recording_id

    def _get(self, recording_id: str) -> StoredRecording | None:
        result = self._collection.get(ids=[recording_id], include=["metadatas"])
        ids = result.get("ids") or []
        metadatas = result.get("metadatas") or []
        if not ids or not metadatas:
            return None
        return StoredRecording(recording_id=ids[0], document=self._deserialize(metadatas[0]))

    def _list(self, owner_id: str | None, limit: int) -> Sequence[StoredRecording]:
        if limit <= 0:
            return []
        where = {"owner_id": owner_id} if owner_id else None
        result = self._collection.get(where=where, include=["metadatas"])
        ids = result.get("ids") or []
        metadatas = result.get("metadatas") or []
        rows = [
            (float(metadata.get("uploaded_ts", 0.0)), StoredRecording(recording_id=rid, document=self._deserialize(metadata)))
            for rid, metadata in zip(ids, metadatas, strict=False)
        ]
        rows.sort(key=lambda row: row[0], reverse=True)
        return [row[1] for row in rows[:limit]]

    def _delete_by_id(self, recording_id: str) -> bool:
        existing = self._collection.get(ids=[recording_id], include=[])
        if not existing.get("ids"):
            return False
        self._collection.delete(ids=[recording_id])
        return True

    def _delete_all(self, owner_id: str | None) -> int:
        where = {"owner_id": owner_id} if owner_id else None
        ids = list(self._collection.get(where=where, include=[]).get("ids") or [])
        for start in range(0, len(ids), _DELETE_BATCH):
            self._collection.delete(ids=ids[start : start + _DELETE_BATCH])
        return len(ids)

    @staticmethod
    def _serialize(document: RecordingDocument) -> MutableMapping[str, object]:
        uploaded_at = document.uploaded_at
        if uploaded_at.tzinfo is None:
            uploaded_at = uploaded_at.replace(tzinfo=timezone.utc)
        metadata: MutableMapping[str, object] = {
            "filename": document.filename,
            "storage_path": document.storage_path,
            "storage_url": document.storage_url,
            "size": int(document.size),
            "uploaded_at": uploaded_at.isoformat(),
            "uploaded_ts": uploaded_at.timestamp(),
            "extra": ChromaRecordingStore._dumps(document.metadata),
        }
        # Chroma metadata values cannot be None; absent keys mean "not set".
        if document.owner_id is not None:
            metadata["owner_id"] = document.owner_id
        if document.transcript is not None:
            metadata["transcript"] = document.transcript
        if document.recommendations is not None:
            metadata["recommendations"] = document.recommendations
        return metadata

    @staticmethod
    def _deserialize(metadata: Mapping[str, object]) -> RecordingDocument:
        raw_uploaded = metadata.get("uploaded_at")
        try:
            uploaded_at = datetime.fromisoformat(str(raw_uploaded))
        except ValueError:
            uploaded_at = datetime.fromtimestamp(float(metadata.get("uploaded_ts", 0.0)), tz=timezone.utc)
        transcript = metadata.get("transcript")
        recommendations = metadata.get("recommendations")
        owner_id = metadata.get("owner_id")
        return RecordingDocument(
            filename=str(metadata.get("filename", "")),
            storage_path=str(metadata.get("storage_path", "")),
            storage_url=str(metadata.get("storage_url", "")),
            size=int(metadata.get("size", 0)),
            uploaded_at=uploaded_at,
            transcript=str(transcript) if transcript is not None else None,
            recommendations=str(recommendations) if recommendations is not None else None,
            owner_id=str(owner_id) if owner_id is not None else None,
            metadata=ChromaRecordingStore._loads_dict(metadata.get("extra")),
        )

    @staticmethod
    def _dumps(value: object) -> str:
        try:
            return json.dumps(value, default=str)
        except TypeError:
            return json.dumps({}, default=str)

    @staticmethod
    def _loads_dict(value: object) -> Dict[str, object]:
        if isinstance(value, str) and value:
            try:
                loaded = json.loads(value)
                if isinstance(loaded, dict):
                    return loaded
            except json.JSONDecodeError:
                return {}
        if isinstance(value, Mapping):
            return dict(value)
        return {}


__all__ = ["ChromaRecordingStore", "RecordingStore"]
