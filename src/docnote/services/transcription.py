"""Transcription backends for DocNote."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from docnote.services.openai_client import AIOptions, OpenAIClientFactory

LOGGER = logging.getLogger(__name__)


class Transcriber(Protocol):
    """Protocol describing transcription behaviour."""

    async def transcribe(self, path: Path, *, options: AIOptions | None = None) -> str:
        """Return the transcript for the audio file at ``path``."""


class PlaceholderTranscriber:
    """Deterministic transcriber used for tests and offline environments."""

    async def transcribe(self, path: Path, *, options: AIOptions | None = None) -> str:
        size = path.stat().st_size
        return f"[transcription disabled] {path.name} ({size} bytes)"


class OpenAITranscriber:
    """Transcriber that calls the OpenAI audio transcription endpoint."""

    def __init__(self, factory: OpenAIClientFactory) -> None:
        self._factory = factory

    async def transcribe(self, path: Path, *, options: AIOptions | None = None) -> str:
        client = self._factory.client_for(options)
        with path.open("rb") as audio_file:
            response = await client.audio.transcriptions.create(
                model=self._factory.config.transcription_model,
                file=audio_file,
            )
        text = getattr(response, "text", None) or ""
        LOGGER.info("Transcribed %s (%d characters)", path.name, len(text))
        return text.strip()


def build_transcriber(factory: OpenAIClientFactory) -> Transcriber:
    if not factory.config.use_model:
        LOGGER.info("Transcription running in placeholder mode.")
        return PlaceholderTranscriber()
    return OpenAITranscriber(factory)
