"""Tests for the transcription and recommendation backends."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from docnote.services import (
    AIOptions,
    OpenAIClientFactory,
    OpenAIConfig,
    OpenAIRecommender,
    OpenAITranscriber,
    TemplateRecommender,
    build_recommender,
    build_transcriber,
)
from docnote.services.transcription import PlaceholderTranscriber


def test_placeholder_transcriber_describes_file(tmp_path: Path, placeholder_transcriber) -> None:
    audio = tmp_path / "visit.m4a"
    audio.write_bytes(b"12345")

    transcript = asyncio.run(placeholder_transcriber.transcribe(audio))

    assert transcript == "[transcription disabled] visit.m4a (5 bytes)"


def test_template_recommender_handles_empty_transcript() -> None:
    recommender = TemplateRecommender()

    assert asyncio.run(recommender.recommend("   ")) == "No transcript available to generate recommendations."
    notes = asyncio.run(recommender.recommend("Patient reports mild fever."))
    assert "Patient reports mild fever." in notes


def test_builders_follow_use_model_flag() -> None:
    offline = OpenAIClientFactory(OpenAIConfig(use_model=False))
    online = OpenAIClientFactory(OpenAIConfig(api_key="sk-default", use_model=True))

    assert isinstance(build_transcriber(offline), PlaceholderTranscriber)
    assert isinstance(build_recommender(offline), TemplateRecommender)
    assert isinstance(build_transcriber(online), OpenAITranscriber)
    assert isinstance(build_recommender(online), OpenAIRecommender)


def test_factory_uses_fresh_client_for_request_key() -> None:
    factory = OpenAIClientFactory(OpenAIConfig(api_key="sk-default"))

    default = factory.client_for()
    assert factory.client_for(AIOptions()) is default

    per_request = factory.client_for(AIOptions(api_key="sk-request"))
    assert per_request is not default
    assert per_request.api_key == "sk-request"
    assert factory.client_for() is default
    assert default.api_key == "sk-default"


def test_factory_without_key_raises() -> None:
    factory = OpenAIClientFactory(OpenAIConfig(api_key=None))

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        factory.client_for()
    assert factory.client_for(AIOptions(api_key="sk-request")).api_key == "sk-request"
