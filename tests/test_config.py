from __future__ import annotations

from pathlib import Path

from docnote.config import Settings, get_settings


def test_defaults_dedupe_window_and_bucket():
    settings = get_settings({})
    assert settings.dedupe_window_seconds == 30.0
    assert settings.dedupe_bucket_seconds == 5


def test_upload_limits_defaults():
    settings = get_settings({})
    assert settings.max_upload_size_mb == 50
    assert settings.max_upload_bytes == 50 * 1024 * 1024
    assert settings.session_ttl_seconds >= settings.session_sweep_interval_seconds


def test_override_does_not_touch_cached_settings():
    override = get_settings({"environment": "test", "storage_backend": "s3", "s3_bucket": "recordings"})
    assert override.is_test
    assert override.s3_bucket == "recordings"
    assert get_settings().storage_backend == "local"


def test_environment_variables_use_prefix(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("DOCNOTE_STAGING_DIR", str(tmp_path / "chunks"))
    monkeypatch.setenv("DOCNOTE_USE_MODEL_AI", "true")
    settings = Settings()
    assert settings.staging_dir == tmp_path / "chunks"
    assert settings.use_model_ai is True
