"""HTTPX client for the DocNote upload API."""

from __future__ import annotations

import mimetypes
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from random import randint
from typing import Any

import httpx

from docnote.api.schemas import ChunkAckResponse, ProcessAudioResponse, RecordingListResponse, UploadResponse
from docnote.metrics.observability import get_logger

DEFAULT_API_URL = os.getenv("DOCNOTE_API_URL", "http://localhost:8000")
MAX_CHUNK_SIZE = 25 * 1024 * 1024
MAX_LIST_LIMIT = 500

_logger = get_logger("client")


class APIError(RuntimeError):
    """Raised when communication with the DocNote API fails."""


def _guess_mime(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def _raise_for(response: httpx.Response, action: str) -> None:
    if response.status_code >= 400:
        cid = response.headers.get("X-Correlation-ID", "-")
        raise APIError(f"{action} failed ({response.status_code}) [cid={cid}]: {response.text}")


@dataclass
class DocNoteClient:
    """Thin client for the DocNote service.

    ``http`` may be any ``httpx.Client`` (including FastAPI's ``TestClient``);
    by default one is built for ``base_url``.
    """

    base_url: str = DEFAULT_API_URL
    timeout: float = 60.0
    http: httpx.Client | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.http is None:
            self.http = httpx.Client(base_url=self.base_url, timeout=self.timeout)

    def upload_chunk(
        self,
        session_id: str,
        chunk_number: int,
        total_chunks: int,
        data: bytes,
        *,
        filename: str,
        mime_type: str,
    ) -> ChunkAckResponse:
        response = self.http.post(
            "/upload-audio-chunk",
            data={
                "sessionId": session_id,
                "chunkNumber": str(chunk_number),
                "totalChunks": str(total_chunks),
                "filename": filename,
                "mimeType": mime_type,
            },
            files={"audio": (f"chunk_{chunk_number}_{filename}", data, mime_type)},
        )
        _raise_for(response, f"Chunk {chunk_number}/{total_chunks} upload")
        return ChunkAckResponse.model_validate(response.json())

    def finalize(
        self,
        session_id: str,
        total_chunks: int | None = None,
        *,
        transcribe: bool = False,
        api_key: str | None = None,
    ) -> UploadResponse:
        payload: dict[str, Any] = {"sessionId": session_id, "transcribe": transcribe}
        if total_chunks is not None:
            payload["totalChunks"] = total_chunks
        if api_key:
            payload["apiKey"] = api_key
        response = self.http.post("/finalize-chunked-upload", json=payload)
        _raise_for(response, "Finalize")
        return UploadResponse.model_validate(response.json())

    def upload_in_chunks(
        self,
        path: Path,
        *,
        chunk_size: int = MAX_CHUNK_SIZE,
        session_id: str | None = None,
        transcribe: bool = False,
        api_key: str | None = None,
    ) -> UploadResponse:
        """Split ``path`` into ``chunk_size`` parts, upload them and finalize."""

        path = Path(path)
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        size = path.stat().st_size
        total = max(1, -(-size // chunk_size))
        session_id = session_id or f"session_{int(time.time() * 1000)}_{randint(0, 9999)}"
        mime_type = _guess_mime(path)
        with path.open("rb") as handle:
            for number in range(1, total + 1):
                self.upload_chunk(
                    session_id,
                    number,
                    total,
                    handle.read(chunk_size),
                    filename=path.name,
                    mime_type=mime_type,
                )
        return self.finalize(session_id, total, transcribe=transcribe, api_key=api_key)

    def upload_audio(self, path: Path, *, skip_ai: bool = False, user_id: str | None = None) -> UploadResponse:
        path = Path(path)
        headers = {"X-User-ID": user_id} if user_id else None
        response = self.http.post(
            "/upload-audio",
            params={"skipAI": "true"} if skip_ai else None,
            files={"audio": (path.name, path.read_bytes(), _guess_mime(path))},
            headers=headers,
        )
        _raise_for(response, "Upload")
        return UploadResponse.model_validate(response.json())

    def process_audio(
        self,
        path: Path,
        *,
        client_id: str | None = None,
        request_id: str | None = None,
        user_id: str | None = None,
        api_key: str | None = None,
    ) -> ProcessAudioResponse:
        path = Path(path)
        headers = {
            name: value
            for name, value in (("X-Client-ID", client_id), ("X-Request-ID", request_id), ("X-User-ID", user_id))
            if value
        }
        response = self.http.post(
            "/process-medical-audio",
            files={"audio": (path.name, path.read_bytes(), _guess_mime(path))},
            data={"apiKey": api_key} if api_key else None,
            headers=headers or None,
        )
        _raise_for(response, "Processing")
        return ProcessAudioResponse.model_validate(response.json())

    def list_recordings(self, *, user_id: str | None = None, limit: int | None = None) -> RecordingListResponse:
        params: dict[str, Any] = {}
        if user_id:
            params["userId"] = user_id
        if limit:
            params["limit"] = limit
        response = self.http.get("/recordings", params=params or None)
        _raise_for(response, "Listing")
        return RecordingListResponse.model_validate(response.json())

    def delete_recording(self, recording_id: str) -> bool:
        """Delete one recording; returns whether the server still had it."""

        response = self.http.delete(f"/recordings/{recording_id}")
        _raise_for(response, "Delete")
        return response.json().get("message") == "Recording deleted"

    def delete_all(self, *, user_id: str | None = None) -> int:
        """Bulk delete, then remove any recordings still listed one by one.

        Falls back to individual deletes when the bulk call itself fails.
        Returns the number of recordings actually removed.
        """

        deleted = 0
        try:
            response = self.http.delete("/recordings/all", params={"userId": user_id} if user_id else None)
            _raise_for(response, "Delete all")
            deleted = int(response.json()["count"])
        except APIError as exc:
            _logger.warning("client.bulk_delete_failed", user_id=user_id, detail=str(exc))

        attempted: set[str] = set()
        while True:
            leftovers = [
                row.id
                for row in self.list_recordings(user_id=user_id, limit=MAX_LIST_LIMIT).recordings
                if row.id and row.id not in attempted
            ]
            if not leftovers:
                break
            _logger.warning("client.delete_leftovers", user_id=user_id, count=len(leftovers))
            for recording_id in leftovers:
                attempted.add(recording_id)
                try:
                    if self.delete_recording(recording_id):
                        deleted += 1
                except APIError as exc:
                    _logger.warning("client.delete_failed", recording_id=recording_id, detail=str(exc))
        return deleted

    def health(self) -> dict:
        response = self.http.get("/healthz")
        _raise_for(response, "Health check")
        return response.json()

    def readiness(self) -> dict:
        response = self.http.get("/healthz/ready")
        _raise_for(response, "Readiness check")
        return response.json()

    def close(self) -> None:
        self.http.close()


__all__ = ["APIError", "DocNoteClient", "MAX_CHUNK_SIZE"]
