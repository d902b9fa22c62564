"""Chunked and direct upload pipeline."""

from .direct import DirectUploadService
from .errors import (
    EmptyUpload,
    IncompleteSession,
    InvalidChunk,
    MissingAudioPart,
    SessionNotFound,
    UploadError,
    UploadTooLarge,
    UpstreamFailure,
)
from .finalize import ChunkFinalizer
from .ingest import ChunkIngestor, ChunkReceipt
from .pipeline import RecordingProcessor
from .sessions import SessionRegistry

__all__ = [
    "ChunkFinalizer",
    "ChunkIngestor",
    "ChunkReceipt",
    "DirectUploadService",
    "EmptyUpload",
    "IncompleteSession",
    "InvalidChunk",
    "MissingAudioPart",
    "RecordingProcessor",
    "SessionNotFound",
    "SessionRegistry",
    "UploadError",
    "UploadTooLarge",
    "UpstreamFailure",
]
