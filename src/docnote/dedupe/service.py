"""Short-circuiting of repeated processing requests."""

from __future__ import annotations

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from docnote.metrics.observability import PipelineMetrics, get_logger
from docnote.models import DeduplicationEntry, DuplicateResult, ProcessedRecording


@dataclass(frozen=True)
class SignatureInputs:
    """Identity of an inbound processing request."""

    client_id: str | None = None
    request_id: str | None = None
    owner_id: str | None = None
    file_size: int = 0


@dataclass(frozen=True)
class DedupeOutcome:
    """Result of :meth:`RequestDeduplicator.deduplicate_and_process`."""

    recording_id: str | None
    is_duplicate: bool
    result: ProcessedRecording | None = None


class RequestDeduplicator:
    """Remembers processed request signatures for a short freshness window.

    With both a client id and a request id the signature is exact. Otherwise it
    falls back to a coarse fingerprint of owner, file size and a time bucket,
    which may treat two distinct same-sized uploads from one owner within the
    same bucket as duplicates.

    Requests sharing a signature are serialized by a per-signature lock, so a
    concurrent repeat waits for the first one and then replays its result.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 30.0,
        bucket_seconds: int = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._window = window_seconds
        self._bucket = max(1, bucket_seconds)
        self._clock = clock
        self._entries: dict[str, DeduplicationEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._logger = get_logger("dedupe")

    def __len__(self) -> int:
        return len(self._entries)

    def signature(self, inputs: SignatureInputs) -> str:
        client_id = inputs.client_id or ""
        request_id = inputs.request_id or ""
        if client_id and request_id:
            return hashlib.md5(f"{client_id}-{request_id}".encode("utf-8")).hexdigest()
        time_window = int(self._clock() // self._bucket) * self._bucket
        components = [
            inputs.owner_id or "anonymous",
            str(inputs.file_size or 0),
            client_id,
            request_id,
            str(time_window),
        ]
        return hashlib.md5("-".join(components).encode("utf-8")).hexdigest()

    def check_and_record(self, signature: str) -> DuplicateResult | None:
        """Return the prior result for a fresh entry, else record a new entry."""

        now = self._clock()
        entry = self._entries.get(signature)
        if entry is not None and now - entry.timestamp < self._window:
            return DuplicateResult(recording_id=entry.recording_id, result=entry.result)
        self._entries[signature] = DeduplicationEntry(timestamp=now)
        return None

    def record_result(self, signature: str, result: ProcessedRecording) -> None:
        entry = self._entries.get(signature)
        if entry is None:
            entry = DeduplicationEntry(timestamp=self._clock())
            self._entries[signature] = entry
        entry.recording_id = result.recording_id
        entry.result = result

    def forget(self, signature: str) -> None:
        self._entries.pop(signature, None)

    def prune_locks(self) -> int:
        """Drop idle locks whose signature has no entry."""

        idle = [key for key, lock in self._locks.items() if key not in self._entries and not lock.locked()]
        for key in idle:
            del self._locks[key]
        return len(idle)

    def sweep(self, now: float | None = None) -> int:
        """Remove entries older than the freshness window, then their idle locks."""

        now = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if now - entry.timestamp >= self._window]
        for key in expired:
            del self._entries[key]
        self.prune_locks()
        return len(expired)

    async def deduplicate_and_process(
        self,
        inputs: SignatureInputs,
        process_fn: Callable[[], Awaitable[ProcessedRecording]],
    ) -> DedupeOutcome:
        signature = self.signature(inputs)
        lock = self._locks.setdefault(signature, asyncio.Lock())
        async with lock:
            duplicate = self.check_and_record(signature)
            if duplicate is not None:
                PipelineMetrics.dedupe_replays.inc()
                self._logger.info("dedupe.replay", signature=signature, recording_id=duplicate.recording_id)
                return DedupeOutcome(
                    recording_id=duplicate.recording_id,
                    is_duplicate=True,
                    result=duplicate.result,
                )
            try:
                result = await process_fn()
            except BaseException:
                # A failed attempt must not be replayed as a success.
                self.forget(signature)
                raise
            self.record_result(signature, result)
        return DedupeOutcome(recording_id=result.recording_id, is_duplicate=False, result=result)


__all__ = ["DedupeOutcome", "RequestDeduplicator", "SignatureInputs"]
