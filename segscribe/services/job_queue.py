"""In-memory async job queue with concurrency limit for transcription attempts.

Initial processing tasks are queued once per ingested segment. Resubmissions
are unique per segment id: while one is queued or running, further
resubmissions for the same id are dropped.
"""

import asyncio
from typing import Callable, NamedTuple, Set

from sqlalchemy.ext.asyncio import AsyncSession

from segscribe.domain.status import TranscriptionStatus
from segscribe.errors import InvalidStateTransitionError, SegmentNotFoundError
from segscribe.logging_config import get_logger
from segscribe.repositories.segments import SegmentRepository
from segscribe.services.worker import TranscriptionWorker, process_segment

_STOP = -1


class QueuedTask(NamedTuple):
    segment_id: int
    resubmission: bool


class TranscriptionJobQueue:
    def __init__(self, worker: TranscriptionWorker, concurrency: int = 3):
        if concurrency <= 0:
            raise ValueError("Concurrency must be >= 1")
        # Defer queue creation until start() to bind to the current event loop
        self._queue: "asyncio.Queue[QueuedTask] | None" = None
        self._workers: list[asyncio.Task] = []
        self._running_ids: Set[int] = set()
        self._unique_ids: Set[int] = set()
        self._concurrency = concurrency
        self._started = False
        self.worker = worker
        self._logger = get_logger(__name__)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._queue = asyncio.Queue()
        for _ in range(self._concurrency):
            self._workers.append(asyncio.create_task(self._worker()))
        self._logger.info("Job queue started with %s workers", self._concurrency)

    async def stop(self) -> None:
        """Graceful stop: queued tasks ahead of the sentinels still run."""
        if self._queue is not None:
            for _ in self._workers:
                await self._queue.put(QueuedTask(_STOP, False))
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._started = False
        self._queue = None
        self._unique_ids.clear()
        self._logger.info("Job queue stopped")

    async def join(self) -> None:
        """Wait until every queued task has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self) -> None:
        while True:
            assert self._queue is not None
            task = await self._queue.get()
            if task.segment_id == _STOP:
                self._queue.task_done()
                break
            self._running_ids.add(task.segment_id)
            try:
                self._logger.debug(
                    "Worker picked segment %s (resubmission=%s)",
                    task.segment_id,
                    task.resubmission,
                )
                await process_segment(
                    self.worker, task.segment_id, resubmission=task.resubmission
                )
            except SegmentNotFoundError as exc:
                self._logger.error("Dropping task: %s", exc)
            except InvalidStateTransitionError as exc:
                self._logger.warning("Rejected attempt: %s", exc)
            except Exception:
                # process_segment already routed the error to the crash handler
                self._logger.exception("Task for segment %s failed", task.segment_id)
            finally:
                self._running_ids.discard(task.segment_id)
                if task.resubmission:
                    self._unique_ids.discard(task.segment_id)
                self._queue.task_done()
                self._logger.debug("Worker finished segment %s", task.segment_id)

    async def _put(self, task: QueuedTask) -> None:
        if not self._started:
            await self.start()
        assert self._queue is not None
        await self._queue.put(task)

    async def enqueue(self, segment_id: int) -> None:
        """Queue the initial processing attempt for a newly ingested segment."""
        await self._put(QueuedTask(segment_id, False))
        self._logger.info("Queued segment %s", segment_id)

    async def enqueue_resubmission(self, segment_id: int) -> bool:
        """Queue a resubmission unless one is already queued or running.

        Returns:
            True when a task was queued, False for a duplicate
        """
        if segment_id in self._unique_ids:
            self._logger.debug("Resubmission for segment %s already pending; skipping", segment_id)
            return False
        self._unique_ids.add(segment_id)
        try:
            await self._put(QueuedTask(segment_id, True))
        except BaseException:
            self._unique_ids.discard(segment_id)
            raise
        self._logger.info("Queued resubmission for segment %s", segment_id)
        return True

    def is_pending(self, segment_id: int) -> bool:
        return segment_id in self._unique_ids or segment_id in self._running_ids


async def recover_interrupted_segments(
    queue_obj: TranscriptionJobQueue,
    session_factory: Callable[[], AsyncSession],
) -> tuple[int, int]:
    """Repair state left behind by a process that stopped mid-flight.

    Segments still ``in_progress`` lost their attempt and are forced to
    ``failed`` through the crash handler; ``pending`` segments lost their
    queued task and are enqueued again.

    Returns:
        Tuple of (failed_count, requeued_count)
    """
    async with session_factory() as db:
        repo = SegmentRepository(db)
        interrupted = await repo.list_ids_with_status(TranscriptionStatus.IN_PROGRESS)
        pending = await repo.list_ids_with_status(TranscriptionStatus.PENDING)

    for segment_id in interrupted:
        await queue_obj.worker.handle_crash(
            segment_id, RuntimeError("Attempt interrupted by shutdown")
        )
    for segment_id in pending:
        await queue_obj.enqueue(segment_id)

    return len(interrupted), len(pending)
