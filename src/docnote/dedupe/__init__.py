"""Request deduplication."""

from .service import DedupeOutcome, RequestDeduplicator, SignatureInputs

__all__ = ["DedupeOutcome", "RequestDeduplicator", "SignatureInputs"]
