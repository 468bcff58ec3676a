"""Periodic resubmission of failed speech segments."""

import asyncio
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from segscribe.logging_config import get_logger
from segscribe.repositories.segments import SegmentRepository
from segscribe.services.job_queue import TranscriptionJobQueue

logger = get_logger(__name__)


class ResubmissionSweeper:
    """Scan failed segments page by page and queue a resubmission for each.

    The sweeper does not judge whether a failure is worth retrying beyond the
    optional ``max_attempts`` ceiling; per-id deduplication is the queue's job.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        queue: TranscriptionJobQueue,
        *,
        page_size: int = 100,
        max_attempts: Optional[int] = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.session_factory = session_factory
        self.queue = queue
        self.page_size = page_size
        self.max_attempts = max_attempts
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> int:
        """Run one scan.

        Returns:
            Number of resubmissions queued (duplicates are not counted)
        """
        logger.info("Resubmitting failed transcriptions...")
        queued = 0
        async with self.session_factory() as session:
            repo = SegmentRepository(session)
            async for page in repo.iter_failed_pages(
                self.page_size, max_attempts=self.max_attempts
            ):
                for segment_id in page:
                    logger.debug("Dispatching resubmission for segment %s", segment_id)
                    if await self.queue.enqueue_resubmission(segment_id):
                        queued += 1
        logger.info("Queued %s failed transcription(s) for resubmission", queued)
        return queued

    def start(self, interval: float) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(max(1.0, float(interval))))
        logger.info("Resubmission sweeper started (every %.0fs)", interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Resubmission sweeper stopped")

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as exc:
                logger.warning("Resubmission sweep encountered an error: %s", exc)
