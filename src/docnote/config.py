"""Runtime configuration for the DocNote services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="docnote_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Local, ephemeral working areas
    staging_dir: Path = Path("./data/chunks")
    incoming_dir: Path = Path("./data/incoming")
    output_dir: Path = Path("./data/merged")

    # Upload limits
    max_upload_size_mb: int = 50  # per multipart file part

    # Chunk sessions
    session_ttl_seconds: int = 1800
    session_sweep_interval_seconds: int = 60

    # Request deduplication
    dedupe_window_seconds: float = 30.0
    dedupe_bucket_seconds: int = 5

    # Object storage
    storage_backend: Literal["local", "s3"] = "local"
    storage_prefix: str = "audio"
    local_storage_dir: Path = Path("./data/storage")
    public_base_url: str = "http://localhost:8000/files"
    serve_local_storage: bool = True  # mount local_storage_dir at /files
    s3_bucket: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None

    # Recording metadata collection
    chroma_persist_dir: Path | None = Path("./.chroma")
    chroma_collection: str = "docnote-recordings"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False
    recordings_default_limit: int = 100
    recordings_max_limit: int = 500

    # AI provider
    use_model_ai: bool = False
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    transcription_model: str = "whisper-1"
    recommendation_model: str = "gpt-4o-mini"
    recommendation_temperature: float = 0.2
    recommendation_max_tokens: int = 800

    # CORS
    cors_allow_origins: tuple[str, ...] = ("*",)
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "DELETE", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
