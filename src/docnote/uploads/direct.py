"""Single-part (unchunked) upload path."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from fastapi.concurrency import run_in_threadpool

from docnote.metrics.observability import PipelineMetrics, TimedSection, get_logger
from docnote.models import AudioFile, ProcessedRecording
from docnote.services.openai_client import AIOptions
from docnote.uploads.errors import EmptyUpload, MissingAudioPart
from docnote.uploads.pipeline import RecordingProcessor
from docnote.uploads.staging import AsyncReadable, discard, output_name, safe_filename, write_stream

DEFAULT_MIME_TYPE = "application/octet-stream"


class DirectUploadService:
    """Stages one uploaded file and runs it through the processor in one pass."""

    def __init__(self, processor: RecordingProcessor, staging_dir: Path, *, max_bytes: int | None = None) -> None:
        self._processor = processor
        self._staging_dir = Path(staging_dir)
        self._max_bytes = max_bytes
        self._logger = get_logger("direct")

    async def upload(
        self,
        stream: AsyncReadable | None,
        *,
        filename: str,
        mime_type: str | None,
        run_ai: bool,
        ai_options: AIOptions | None = None,
        owner_id: str | None = None,
    ) -> ProcessedRecording:
        if stream is None:
            raise MissingAudioPart()
        original = filename or "recording"
        staged = self._staging_dir / f"{uuid4().hex}-{safe_filename(original)}"
        with TimedSection(PipelineMetrics.upload_latency.observe):
            size = await write_stream(stream, staged, max_bytes=self._max_bytes)
            try:
                if size == 0:
                    raise EmptyUpload(f"File is empty: {original}")
                audio = AudioFile(
                    path=staged,
                    original_filename=original,
                    mime_type=mime_type or DEFAULT_MIME_TYPE,
                    size=size,
                )
                result = await self._processor.process(
                    audio,
                    destination_name=output_name(original),
                    run_ai=run_ai,
                    ai_options=ai_options,
                    owner_id=owner_id,
                )
            finally:
                await run_in_threadpool(discard, staged)
        self._logger.info(
            "upload.processed",
            recording_id=result.recording_id,
            original_filename=original,
            size=size,
            transcribed=run_ai,
        )
        return result


__all__ = ["DirectUploadService"]
