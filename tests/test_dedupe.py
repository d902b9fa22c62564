"""Tests for request deduplication."""

from __future__ import annotations

import asyncio

import pytest

from docnote.dedupe import RequestDeduplicator, SignatureInputs
from docnote.models import ProcessedRecording, RecordingDocument


class FakeClock:
    def __init__(self, now: float = 10_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _processed(recording_id: str) -> ProcessedRecording:
    document = RecordingDocument(filename="1.m4a", storage_path="audio/1.m4a", storage_url="memory://1", size=3)
    return ProcessedRecording(recording_id=recording_id, document=document)


class CountingProcess:
    def __init__(self, delay: float = 0.0) -> None:
        self.calls = 0
        self.delay = delay

    async def __call__(self) -> ProcessedRecording:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return _processed(f"rec-{self.calls}")


def test_identified_signature_ignores_payload_and_time() -> None:
    clock = FakeClock()
    dedupe = RequestDeduplicator(clock=clock)
    first = dedupe.signature(SignatureInputs(client_id="c1", request_id="r1", owner_id="u1", file_size=10))
    clock.now += 3600
    second = dedupe.signature(SignatureInputs(client_id="c1", request_id="r1", owner_id="u2", file_size=99))
    other = dedupe.signature(SignatureInputs(client_id="c1", request_id="r2"))

    assert first == second
    assert first != other


def test_fallback_signature_uses_five_second_buckets() -> None:
    clock = FakeClock(now=10_000.0)
    dedupe = RequestDeduplicator(clock=clock)
    inputs = SignatureInputs(client_id="c1", owner_id="u1", file_size=1234)

    first = dedupe.signature(inputs)
    clock.now = 10_004.9
    same_bucket = dedupe.signature(inputs)
    clock.now = 10_005.0
    next_bucket = dedupe.signature(inputs)

    assert first == same_bucket
    assert first != next_bucket
    assert first != dedupe.signature(SignatureInputs(client_id="c1", owner_id="u1", file_size=1235))


def test_check_and_record_respects_window() -> None:
    clock = FakeClock()
    dedupe = RequestDeduplicator(window_seconds=30, clock=clock)

    assert dedupe.check_and_record("sig") is None
    dedupe.record_result("sig", _processed("rec-1"))
    clock.now += 29
    replay = dedupe.check_and_record("sig")
    assert replay is not None and replay.is_duplicate and replay.recording_id == "rec-1"

    # Reads do not extend the entry.
    clock.now += 1
    assert dedupe.check_and_record("sig") is None


def test_duplicate_request_within_window_runs_process_once() -> None:
    clock = FakeClock()
    dedupe = RequestDeduplicator(clock=clock)
    process = CountingProcess()
    inputs = SignatureInputs(client_id="c1", request_id="r1")

    async def scenario():
        first = await dedupe.deduplicate_and_process(inputs, process)
        clock.now += 5
        second = await dedupe.deduplicate_and_process(inputs, process)
        return first, second

    first, second = asyncio.run(scenario())

    assert process.calls == 1
    assert first.is_duplicate is False
    assert second.is_duplicate is True
    assert second.recording_id == first.recording_id == "rec-1"
    assert second.result is first.result


def test_request_after_window_is_processed_again() -> None:
    clock = FakeClock()
    dedupe = RequestDeduplicator(clock=clock)
    process = CountingProcess()
    inputs = SignatureInputs(client_id="c1", request_id="r1")

    async def scenario():
        await dedupe.deduplicate_and_process(inputs, process)
        clock.now += 31
        return await dedupe.deduplicate_and_process(inputs, process)

    outcome = asyncio.run(scenario())

    assert process.calls == 2
    assert outcome.is_duplicate is False
    assert outcome.recording_id == "rec-2"


def test_concurrent_duplicates_are_single_flighted() -> None:
    dedupe = RequestDeduplicator()
    process = CountingProcess(delay=0.01)
    inputs = SignatureInputs(client_id="c1", request_id="r1")

    async def scenario():
        return await asyncio.gather(*(dedupe.deduplicate_and_process(inputs, process) for _ in range(3)))

    outcomes = asyncio.run(scenario())

    assert process.calls == 1
    assert {o.recording_id for o in outcomes} == {"rec-1"}
    assert [o.is_duplicate for o in outcomes].count(False) == 1


def test_failed_processing_is_not_replayed() -> None:
    dedupe = RequestDeduplicator()
    inputs = SignatureInputs(client_id="c1", request_id="r1")
    process = CountingProcess()

    async def failing() -> ProcessedRecording:
        raise RuntimeError("transcription down")

    async def scenario():
        with pytest.raises(RuntimeError):
            await dedupe.deduplicate_and_process(inputs, failing)
        return await dedupe.deduplicate_and_process(inputs, process)

    outcome = asyncio.run(scenario())

    assert outcome.is_duplicate is False
    assert process.calls == 1


def test_sweep_removes_expired_entries() -> None:
    clock = FakeClock()
    dedupe = RequestDeduplicator(window_seconds=30, clock=clock)
    dedupe.check_and_record("old")
    clock.now += 20
    dedupe.check_and_record("new")
    clock.now += 15

    assert dedupe.sweep() == 1
    assert len(dedupe) == 1


def test_failed_requests_do_not_leave_locks_behind() -> None:
    dedupe = RequestDeduplicator()

    async def failing() -> ProcessedRecording:
        raise RuntimeError("storage down")

    async def scenario():
        for index in range(100):
            with pytest.raises(RuntimeError):
                await dedupe.deduplicate_and_process(SignatureInputs(client_id="c1", request_id=f"r{index}"), failing)

    asyncio.run(scenario())

    assert len(dedupe) == 0
    assert dedupe.sweep() == 0
    assert len(dedupe._locks) == 0


def test_sweep_keeps_locks_of_fresh_entries() -> None:
    clock = FakeClock()
    dedupe = RequestDeduplicator(clock=clock)
    process = CountingProcess()

    asyncio.run(dedupe.deduplicate_and_process(SignatureInputs(client_id="c1", request_id="r1"), process))
    dedupe.sweep()
    assert len(dedupe._locks) == 1

    clock.now += 31
    dedupe.sweep()
    assert len(dedupe._locks) == 0
