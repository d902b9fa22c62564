"""OpenAI client construction for the AI collaborators."""

from __future__ import annotations

from dataclasses import dataclass

from openai import AsyncOpenAI


@dataclass(frozen=True)
class OpenAIConfig:
    """Configuration shared by the OpenAI-backed collaborators."""

    api_key: str | None = None
    base_url: str | None = None
    transcription_model: str = "whisper-1"
    recommendation_model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 800
    use_model: bool = False


@dataclass(frozen=True)
class AIOptions:
    """Per-request overrides for AI calls (e.g. a caller-supplied API key)."""

    api_key: str | None = None


class OpenAIClientFactory:
    """Hands out the shared default client, or a fresh client for per-request keys."""

    def __init__(self, config: OpenAIConfig) -> None:
        self._config = config
        self._default: AsyncOpenAI | None = None

    @property
    def config(self) -> OpenAIConfig:
        return self._config

    def client_for(self, options: AIOptions | None = None) -> AsyncOpenAI:
        if options is not None and options.api_key:
            return AsyncOpenAI(api_key=options.api_key, base_url=self._config.base_url)
        if self._default is None:
            if not self._config.api_key:
                raise RuntimeError("OPENAI_API_KEY not set")
            self._default = AsyncOpenAI(api_key=self._config.api_key, base_url=self._config.base_url)
        return self._default
