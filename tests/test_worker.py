"""Tests for TranscriptionWorker attempts and the crash handler."""

import asyncio

import httpx
import pytest

from segscribe.database import AsyncSessionLocal
from segscribe.domain.status import TranscriptionStatus
from segscribe.errors import InvalidStateTransitionError, SegmentNotFoundError
from segscribe.services.events import (
    TranscriptionCompleted,
    TranscriptionFailed,
    TranscriptionInProgress,
)
from segscribe.services.provider import ProviderResponse
from segscribe.services.worker import TranscriptionWorker, process_segment

from tests.conftest import RecordingNotifier, StubProvider, create_segment, load_segment

pytestmark = pytest.mark.usefixtures("setup_db")

AUDIO_PATH = "speech_segments/2025/08/01/14/speech_segment_test.mp3"


@pytest.fixture
async def stored_blob(blob_store):
    await blob_store.write_bytes(AUDIO_PATH, b"ID3" + b"\x00" * 97)
    return AUDIO_PATH


@pytest.mark.asyncio
async def test_successful_attempt(worker, provider, notifier, stored_blob):
    segment_id = await create_segment(file_path=stored_blob)

    result = await worker.run_attempt(segment_id)

    assert result is TranscriptionStatus.SUCCESS
    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.SUCCESS
    assert stored.transcription == "hello"
    assert stored.attempts == 1
    assert provider.calls == [(b"ID3" + b"\x00" * 97, "speech_segment_test.mp3")]
    assert notifier.events == [
        TranscriptionInProgress(segment_id=segment_id),
        TranscriptionCompleted(segment_id=segment_id, transcription="hello"),
    ]


@pytest.mark.asyncio
async def test_provider_failure_marks_failed(worker, provider, notifier, stored_blob):
    provider.response = ProviderResponse(False, 500, body={"error": "boom"})
    segment_id = await create_segment(file_path=stored_blob)

    result = await worker.run_attempt(segment_id)

    assert result is TranscriptionStatus.FAILED
    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.FAILED
    assert stored.transcription is None
    assert notifier.names_for(segment_id) == [
        "TranscriptionInProgress",
        "TranscriptionFailed",
    ]


@pytest.mark.asyncio
async def test_provider_transport_error_marks_failed(worker, provider, notifier, stored_blob):
    provider.error = httpx.ReadTimeout("timed out")
    segment_id = await create_segment(file_path=stored_blob)

    result = await worker.run_attempt(segment_id)

    assert result is TranscriptionStatus.FAILED
    assert (await load_segment(segment_id)).status is TranscriptionStatus.FAILED
    assert notifier.events[-1] == TranscriptionFailed(segment_id=segment_id)


@pytest.mark.asyncio
async def test_missing_blob_fails_once_without_provider_call(
    worker, provider, notifier, segscribe_logs
):
    missing = "speech_segments/2025/08/01/14/speech_segment_gone.mp3"
    segment_id = await create_segment(file_path=missing)

    result = await worker.run_attempt(segment_id)

    assert result is TranscriptionStatus.FAILED
    assert provider.calls == []
    assert notifier.names_for(segment_id) == [
        "TranscriptionInProgress",
        "TranscriptionFailed",
    ]
    records = [r for r in segscribe_logs.records if r.getMessage() == "Audio file not found"]
    assert len(records) == 1
    assert records[0].path == missing


@pytest.mark.asyncio
async def test_slow_blob_check_counts_as_missing(worker, provider, blob_store, stored_blob):
    async def slow_exists(path):
        await asyncio.sleep(1)
        return True

    blob_store.exists = slow_exists
    worker.blob_check_timeout = 0.01
    segment_id = await create_segment(file_path=stored_blob)

    assert await worker.run_attempt(segment_id) is TranscriptionStatus.FAILED
    assert provider.calls == []


@pytest.mark.asyncio
async def test_unknown_segment_raises_without_events(worker, notifier):
    with pytest.raises(SegmentNotFoundError):
        await worker.run_attempt(999)
    assert notifier.events == []


@pytest.mark.asyncio
async def test_resubmission_of_non_failed_segment_is_rejected(worker, provider, notifier):
    segment_id = await create_segment(
        status=TranscriptionStatus.SUCCESS, transcription="done", attempts=1
    )

    with pytest.raises(InvalidStateTransitionError):
        await worker.run_attempt(segment_id, resubmission=True)

    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.SUCCESS
    assert stored.transcription == "done"
    assert provider.calls == []
    assert notifier.events == []


@pytest.mark.asyncio
async def test_resubmission_of_failed_segment_succeeds(worker, notifier, stored_blob):
    segment_id = await create_segment(
        file_path=stored_blob, status=TranscriptionStatus.FAILED, attempts=1
    )

    result = await worker.run_attempt(segment_id, resubmission=True)

    assert result is TranscriptionStatus.SUCCESS
    stored = await load_segment(segment_id)
    assert stored.attempts == 2
    assert notifier.names_for(segment_id) == [
        "TranscriptionInProgress",
        "TranscriptionCompleted",
    ]


@pytest.mark.asyncio
async def test_unexpected_error_is_routed_to_crash_handler(
    worker, provider, notifier, stored_blob
):
    provider.error = RuntimeError("provider client bug")
    segment_id = await create_segment(file_path=stored_blob)

    result = await process_segment(worker, segment_id)

    assert result is None
    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.FAILED
    assert notifier.names_for(segment_id) == [
        "TranscriptionInProgress",
        "TranscriptionFailed",
    ]


@pytest.mark.asyncio
async def test_crash_handler_fails_pending_segment_through_in_progress(worker, notifier):
    segment_id = await create_segment()

    await worker.handle_crash(segment_id, RuntimeError("lost"))

    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.FAILED
    assert stored.attempts == 1
    assert notifier.names_for(segment_id) == [
        "TranscriptionInProgress",
        "TranscriptionFailed",
    ]


@pytest.mark.asyncio
async def test_crash_handler_leaves_terminal_segments_alone(worker, notifier):
    segment_id = await create_segment(
        status=TranscriptionStatus.SUCCESS, transcription="kept", attempts=1
    )

    await worker.handle_crash(segment_id, RuntimeError("late"))

    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.SUCCESS
    assert notifier.events == []


@pytest.mark.asyncio
async def test_crash_handler_ignores_unknown_segment(worker, notifier):
    await worker.handle_crash(12345, RuntimeError("gone"))
    assert notifier.events == []


@pytest.mark.asyncio
async def test_notifier_failure_does_not_change_outcome(worker, notifier, stored_blob):
    async def broken_publish(event):
        raise ConnectionError("hub down")

    notifier.publish = broken_publish
    segment_id = await create_segment(file_path=stored_blob)

    assert await worker.run_attempt(segment_id) is TranscriptionStatus.SUCCESS
    assert (await load_segment(segment_id)).transcription == "hello"


class SlowProvider(StubProvider):
    async def transcribe(self, audio: bytes, filename: str) -> ProviderResponse:
        self.calls.append((audio, filename))
        await asyncio.sleep(0.2)
        return self.response


@pytest.mark.asyncio
async def test_concurrent_resubmissions_start_a_single_attempt(blob_store, stored_blob):
    """Two workers (as in the server and the CLI) racing on one failed segment."""
    segment_id = await create_segment(
        file_path=stored_blob, status=TranscriptionStatus.FAILED, attempts=1
    )
    provider = SlowProvider()
    notifiers = [RecordingNotifier(), RecordingNotifier()]
    workers = [
        TranscriptionWorker(AsyncSessionLocal, blob_store, provider, notifier)
        for notifier in notifiers
    ]

    results = await asyncio.gather(
        *(
            worker.run_attempt(segment_id, resubmission=True)
            for worker in workers
            for _ in range(2)
        ),
        return_exceptions=True,
    )

    assert results.count(TranscriptionStatus.SUCCESS) == 1
    assert all(
        isinstance(result, InvalidStateTransitionError)
        for result in results
        if result is not TranscriptionStatus.SUCCESS
    )
    assert len(provider.calls) == 1
    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.SUCCESS
    assert stored.attempts == 2
    names = [event.name for notifier in notifiers for event in notifier.events]
    assert names.count("TranscriptionInProgress") == 1
    assert names.count("TranscriptionCompleted") == 1
    assert "TranscriptionFailed" not in names


@pytest.mark.asyncio
async def test_late_result_does_not_overwrite_crash_outcome(worker, provider, notifier, stored_blob):
    """An attempt whose segment was failed elsewhere emits no second terminal event."""
    segment_id = await create_segment(file_path=stored_blob)

    async def transcribe_after_crash(audio, filename):
        await worker.handle_crash(segment_id, RuntimeError("interrupted"))
        return ProviderResponse(True, 200, text="late", body={"text": "late"})

    provider.transcribe = transcribe_after_crash

    with pytest.raises(InvalidStateTransitionError):
        await worker.run_attempt(segment_id)

    stored = await load_segment(segment_id)
    assert stored.status is TranscriptionStatus.FAILED
    assert stored.transcription is None
    assert notifier.names_for(segment_id) == [
        "TranscriptionInProgress",
        "TranscriptionFailed",
    ]
