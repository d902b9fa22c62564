"""Hands a fully received audio file to the storage, AI and database collaborators."""

from __future__ import annotations

from typing import Awaitable, TypeVar

from docnote.metrics.observability import PipelineMetrics, get_logger
from docnote.models import AudioFile, ProcessedRecording, RecordingDocument
from docnote.services.openai_client import AIOptions
from docnote.services.recommendation import Recommender
from docnote.services.transcription import Transcriber
from docnote.storage.objects import ObjectStorage
from docnote.storage.recordings import RecordingStore
from docnote.uploads.errors import UpstreamFailure

T = TypeVar("T")

_logger = get_logger("pipeline")


class RecordingProcessor:
    """Stores the audio, optionally transcribes it, and saves the recording record.

    Collaborator failures are raised as :class:`UpstreamFailure` with the
    original exception chained; nothing is retried here.
    """

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        recordings: RecordingStore,
        transcriber: Transcriber,
        recommender: Recommender,
        storage_prefix: str = "audio",
    ) -> None:
        self._storage = storage
        self._recordings = recordings
        self._transcriber = transcriber
        self._recommender = recommender
        self._prefix = storage_prefix.strip("/")

    async def process(
        self,
        audio: AudioFile,
        *,
        destination_name: str,
        run_ai: bool,
        ai_options: AIOptions | None = None,
        owner_id: str | None = None,
    ) -> ProcessedRecording:
        storage_path = f"{self._prefix}/{destination_name}" if self._prefix else destination_name
        storage_url = await call_upstream(
            "storage",
            self._storage.put(audio.path, storage_path, audio.mime_type),
        )

        transcript: str | None = None
        recommendations: str | None = None
        if run_ai:
            transcript = await call_upstream(
                "transcription",
                self._transcriber.transcribe(audio.path, options=ai_options),
            )
            recommendations = await call_upstream(
                "recommendation",
                self._recommender.recommend(transcript, options=ai_options),
            )

        document = RecordingDocument(
            filename=destination_name,
            storage_path=storage_path,
            storage_url=storage_url,
            size=audio.size,
            transcript=transcript,
            recommendations=recommendations,
            owner_id=owner_id,
            metadata={"originalFilename": audio.original_filename, "mimeType": audio.mime_type},
        )
        recording_id = await call_upstream("database", self._recordings.save(document))
        _logger.info(
            "recording.saved",
            recording_id=recording_id,
            filename=destination_name,
            size=audio.size,
            transcribed=run_ai,
        )
        return ProcessedRecording(recording_id=recording_id, document=document)


async def call_upstream(collaborator: str, awaitable: Awaitable[T]) -> T:
    """Await a collaborator call, converting its failure into :class:`UpstreamFailure`."""

    try:
        return await awaitable
    except Exception as exc:
        PipelineMetrics.observe_upstream_failure(collaborator)
        _logger.error("upstream.failure", collaborator=collaborator, detail=str(exc))
        raise UpstreamFailure(collaborator, str(exc)) from exc


__all__ = ["RecordingProcessor", "call_upstream"]
