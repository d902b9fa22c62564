"""Observability helpers for DocNote."""

from __future__ import annotations

import logging
import time

import structlog
from prometheus_client import Counter, Gauge, Histogram

_logger_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "docnote") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for upload pipeline stages."""

    chunks_ingested = Counter(
        "docnote_chunks_ingested_total",
        "Chunk parts written to staging.",
    )
    chunk_bytes = Histogram(
        "docnote_chunk_size_bytes",
        "Size of staged chunk parts.",
        buckets=(1024, 64 * 1024, 1024 * 1024, 5 * 1024 * 1024, 25 * 1024 * 1024, 50 * 1024 * 1024),
    )
    active_sessions = Gauge(
        "docnote_active_chunk_sessions",
        "Chunked upload sessions currently registered.",
    )
    sessions_reaped = Counter(
        "docnote_chunk_sessions_reaped_total",
        "Idle chunk sessions evicted by the reaper.",
    )
    finalize_latency = Histogram(
        "docnote_finalize_duration_seconds",
        "Time spent merging and persisting chunked uploads.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    )
    upload_latency = Histogram(
        "docnote_direct_upload_duration_seconds",
        "Time spent processing single-part uploads.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    )
    upstream_failures = Counter(
        "docnote_upstream_failures_total",
        "Collaborator calls that failed.",
        ["collaborator"],
    )
    dedupe_replays = Counter(
        "docnote_dedupe_replays_total",
        "Requests answered from the deduplication cache.",
    )

    @classmethod
    def observe_chunk(cls, size: int) -> None:
        cls.chunks_ingested.inc()
        cls.chunk_bytes.observe(size)

    @classmethod
    def observe_upstream_failure(cls, collaborator: str) -> None:
        cls.upstream_failures.labels(collaborator=collaborator).inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback) -> None:
        self._callback = callback
        self._start = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        duration = time.perf_counter() - self._start
        self._callback(duration)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
