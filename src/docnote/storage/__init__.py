"""Storage collaborators: durable objects and the recording collection."""

from .objects import LocalObjectStorage, ObjectStorage, S3ObjectStorage
from .recordings import ChromaRecordingStore, RecordingStore

__all__ = [
    "ChromaRecordingStore",
    "LocalObjectStorage",
    "ObjectStorage",
    "RecordingStore",
    "S3ObjectStorage",
]
