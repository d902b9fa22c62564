"""Merging of complete chunk sessions into one recording."""

from __future__ import annotations

from pathlib import Path

from fastapi.concurrency import run_in_threadpool

from docnote.metrics.observability import PipelineMetrics, TimedSection, get_logger
from docnote.models import AudioFile, ProcessedRecording
from docnote.services.openai_client import AIOptions
from docnote.uploads.errors import IncompleteSession, InvalidChunk, SessionNotFound
from docnote.uploads.pipeline import RecordingProcessor
from docnote.uploads.sessions import SessionRegistry
from docnote.uploads.staging import discard, discard_tree, merge_parts, output_name


class ChunkFinalizer:
    """Merges a complete session in chunk-index order and persists the result.

    The session lock is held for the whole operation, so a concurrent finalize
    of the same session waits and then sees ``SessionNotFound``. Staging files
    and the session are purged only after the recording record is saved; on
    any failure they are kept so finalize can be retried without re-uploading.
    """

    def __init__(self, registry: SessionRegistry, processor: RecordingProcessor, output_dir: Path) -> None:
        self._registry = registry
        self._processor = processor
        self._output_dir = Path(output_dir)
        self._logger = get_logger("finalize")

    async def finalize(
        self,
        session_id: str,
        expected_total_chunks: int | None = None,
        *,
        run_ai: bool = False,
        ai_options: AIOptions | None = None,
    ) -> ProcessedRecording:
        async with self._registry.lock(session_id):
            session = self._registry.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            if not session.is_complete:
                raise IncompleteSession(session_id, session.received_indices, session.missing_indices)
            if expected_total_chunks is not None and expected_total_chunks != session.total_chunks:
                raise InvalidChunk(
                    f"totalChunks mismatch for session {session_id}: "
                    f"expected {session.total_chunks}, got {expected_total_chunks}"
                )

            with TimedSection(PipelineMetrics.finalize_latency.observe):
                ordered = [session.chunks[index].staging_path for index in range(1, session.total_chunks + 1)]
                merged_path = self._output_dir / output_name(session.original_filename)
                size = await run_in_threadpool(merge_parts, ordered, merged_path)
                audio = AudioFile(
                    path=merged_path,
                    original_filename=session.original_filename,
                    mime_type=session.mime_type,
                    size=size,
                )
                try:
                    result = await self._processor.process(
                        audio,
                        destination_name=merged_path.name,
                        run_ai=run_ai,
                        ai_options=ai_options,
                    )
                finally:
                    await run_in_threadpool(discard, merged_path)

            await run_in_threadpool(discard_tree, session.staging_dir)
            self._registry.remove(session_id)

        self._logger.info(
            "session.finalized",
            session_id=session_id,
            recording_id=result.recording_id,
            total_chunks=session.total_chunks,
            size=size,
        )
        return result


__all__ = ["ChunkFinalizer"]
