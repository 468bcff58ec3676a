"""Tests for the failed-segment resubmission sweeper."""

import asyncio

import pytest

from segscribe.database import AsyncSessionLocal
from segscribe.domain.status import TranscriptionStatus
from segscribe.services.events import TranscriptionCompleted
from segscribe.services.job_queue import TranscriptionJobQueue
from segscribe.services.sweeper import ResubmissionSweeper

from tests.conftest import create_segment, load_segment

pytestmark = pytest.mark.usefixtures("setup_db")


class RecordingQueue:
    """Queue stub with the same per-id uniqueness as the real queue."""

    def __init__(self):
        self.resubmitted: list[int] = []
        self.pending: set[int] = set()

    async def enqueue_resubmission(self, segment_id: int) -> bool:
        if segment_id in self.pending:
            return False
        self.pending.add(segment_id)
        self.resubmitted.append(segment_id)
        return True


@pytest.mark.asyncio
async def test_sweep_queues_only_failed_segments():
    failed = await create_segment(status=TranscriptionStatus.FAILED, attempts=1)
    await create_segment()
    await create_segment(status=TranscriptionStatus.IN_PROGRESS, attempts=1)
    await create_segment(status=TranscriptionStatus.SUCCESS, transcription="ok", attempts=1)

    queue = RecordingQueue()
    queued = await ResubmissionSweeper(AsyncSessionLocal, queue).sweep()

    assert queued == 1
    assert queue.resubmitted == [failed]


@pytest.mark.asyncio
async def test_sweep_walks_every_page():
    failed = [await create_segment(status=TranscriptionStatus.FAILED) for _ in range(7)]

    queue = RecordingQueue()
    queued = await ResubmissionSweeper(AsyncSessionLocal, queue, page_size=3).sweep()

    assert queued == 7
    assert queue.resubmitted == failed


@pytest.mark.asyncio
async def test_repeated_sweeps_do_not_duplicate_pending_resubmissions():
    await create_segment(status=TranscriptionStatus.FAILED)
    queue = RecordingQueue()
    sweeper = ResubmissionSweeper(AsyncSessionLocal, queue)

    assert await sweeper.sweep() == 1
    assert await sweeper.sweep() == 0
    assert len(queue.resubmitted) == 1


@pytest.mark.asyncio
async def test_sweep_respects_attempt_ceiling():
    eligible = await create_segment(status=TranscriptionStatus.FAILED, attempts=2)
    await create_segment(status=TranscriptionStatus.FAILED, attempts=5)

    queue = RecordingQueue()
    await ResubmissionSweeper(AsyncSessionLocal, queue, max_attempts=5).sweep()

    assert queue.resubmitted == [eligible]


def test_page_size_must_be_positive():
    with pytest.raises(ValueError):
        ResubmissionSweeper(AsyncSessionLocal, RecordingQueue(), page_size=0)


@pytest.mark.asyncio
async def test_start_and_stop_periodic_task(monkeypatch):
    sweeps = asyncio.Event()
    sweeper = ResubmissionSweeper(AsyncSessionLocal, RecordingQueue())

    async def fake_sweep():
        sweeps.set()
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(sweeper, "sweep", fake_sweep)

    # Interval is clamped to one second
    sweeper.start(0)
    assert sweeper.running
    await asyncio.wait_for(sweeps.wait(), timeout=3)
    # A failing sweep does not end the loop
    assert sweeper.running
    await sweeper.stop()
    assert not sweeper.running


@pytest.mark.asyncio
async def test_failed_segment_is_resubmitted_and_completed(
    worker, notifier, provider, blob_store
):
    path = "speech_segments/2025/08/01/14/speech_segment_retry.mp3"
    await blob_store.write_bytes(path, b"ID3retry")
    await create_segment(
        segment_id=7, file_path=path, status=TranscriptionStatus.FAILED, attempts=1
    )

    queue = TranscriptionJobQueue(worker, concurrency=1)
    await queue.start()
    queued = await ResubmissionSweeper(AsyncSessionLocal, queue).sweep()
    await asyncio.wait_for(queue.join(), timeout=5)
    await queue.stop()

    assert queued == 1
    assert len(provider.calls) == 1
    stored = await load_segment(7)
    assert stored.status is TranscriptionStatus.SUCCESS
    assert stored.transcription == "hello"
    assert TranscriptionCompleted(segment_id=7, transcription="hello") in notifier.events
