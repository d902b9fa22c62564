"""AI collaborators for DocNote."""

from .openai_client import AIOptions, OpenAIClientFactory, OpenAIConfig
from .recommendation import OpenAIRecommender, Recommender, TemplateRecommender, build_recommender
from .transcription import OpenAITranscriber, PlaceholderTranscriber, Transcriber, build_transcriber

__all__ = [
    "AIOptions",
    "OpenAIClientFactory",
    "OpenAIConfig",
    "OpenAIRecommender",
    "OpenAITranscriber",
    "PlaceholderTranscriber",
    "Recommender",
    "TemplateRecommender",
    "Transcriber",
    "build_recommender",
    "build_transcriber",
]
