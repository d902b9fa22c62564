"""Recommendation backends that derive clinical notes from a transcript."""

from __future__ import annotations

import logging
from typing import Protocol

from docnote.services.openai_client import AIOptions, OpenAIClientFactory

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a medical documentation assistant. Read the transcript of a clinical "
    "conversation and produce concise recommendations for the clinician: key findings, "
    "suggested follow-up questions, and next steps. Do not invent facts that are not in "
    "the transcript. If the transcript is empty or unrelated, say so."
)


class Recommender(Protocol):
    """Protocol describing recommendation behaviour."""

    async def recommend(self, transcript: str, *, options: AIOptions | None = None) -> str:
        """Return recommendations derived from ``transcript``."""


class TemplateRecommender:
    """Simple deterministic recommender used for tests and offline environments."""

    async def recommend(self, transcript: str, *, options: AIOptions | None = None) -> str:
        if not transcript.strip():
            return "No transcript available to generate recommendations."
        excerpt = transcript.strip()[:200]
        return f"Review the recording transcript before the next visit.\nExcerpt: {excerpt}"


class OpenAIRecommender:
    """Recommender that calls an OpenAI chat model."""

    def __init__(self, factory: OpenAIClientFactory) -> None:
        self._factory = factory

    async def recommend(self, transcript: str, *, options: AIOptions | None = None) -> str:
        if not transcript.strip():
            return ""
        client = self._factory.client_for(options)
        config = self._factory.config
        response = await client.chat.completions.create(
            model=config.recommendation_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Transcript:\n{transcript}"},
            ],
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        content = response.choices[0].message.content or ""
        return content.strip()


def build_recommender(factory: OpenAIClientFactory) -> Recommender:
    if not factory.config.use_model:
        LOGGER.info("Recommendations running in template-only mode.")
        return TemplateRecommender()
    return OpenAIRecommender(factory)
