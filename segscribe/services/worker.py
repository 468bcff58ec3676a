"""Transcription worker: drives one segment through one provider attempt.

An attempt follows exactly one path:

1. load the segment (``SegmentNotFoundError`` if absent, nothing mutated)
2. ``in_progress`` + TranscriptionInProgress
3. missing blob -> ``failed`` + TranscriptionFailed
4. provider call (single, no retry, bounded by the client timeout)
5. usable transcript -> ``success`` + TranscriptionCompleted
6. provider failure or exception -> ``failed`` + TranscriptionFailed

Anything escaping this sequence is routed by the queue to
:meth:`TranscriptionWorker.handle_crash`, which forces ``failed`` so no
segment stays ``in_progress`` after a crashed attempt.
"""

import asyncio
from pathlib import PurePosixPath
from typing import Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from segscribe.domain.status import (
    TranscriptionStatus,
    ensure_resubmittable,
    ensure_transition,
)
from segscribe.errors import (
    BlobMissingError,
    InvalidStateTransitionError,
    SegmentNotFoundError,
)
from segscribe.logging_config import get_logger
from segscribe.models.segment import SpeechSegment
from segscribe.repositories.segments import SegmentRepository
from segscribe.services.events import (
    EventNotifier,
    SegmentEvent,
    TranscriptionCompleted,
    TranscriptionFailed,
    TranscriptionInProgress,
)
from segscribe.services.provider import TranscriptionProviderClient
from segscribe.storage.blob_store import LocalBlobStore

logger = get_logger(__name__)


class TranscriptionWorker:
    """Runs transcription attempts with explicitly supplied collaborators."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        blob_store: LocalBlobStore,
        provider: TranscriptionProviderClient,
        notifier: EventNotifier,
        *,
        blob_check_timeout: float = 5.0,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.provider = provider
        self.notifier = notifier
        self.blob_check_timeout = blob_check_timeout

    async def run_attempt(
        self, segment_id: int, *, resubmission: bool = False
    ) -> TranscriptionStatus:
        """Process one attempt for ``segment_id``.

        Args:
            segment_id: Segment primary key
            resubmission: True when triggered by the sweeper; the segment must
                then be ``failed``

        Returns:
            Final status of the attempt (success or failed)

        Raises:
            SegmentNotFoundError: no record exists for ``segment_id``
            InvalidStateTransitionError: the segment cannot start an attempt,
                or another attempt changed its status first
        """
        async with self.session_factory() as session:
            repo = SegmentRepository(session)
            segment = await repo.find_by_id(segment_id)
            if segment is None:
                logger.error("Speech segment not found", extra={"segment_id": segment_id})
                raise SegmentNotFoundError(segment_id)

            if resubmission:
                ensure_resubmittable(segment.status, segment_id=segment_id)
            ensure_transition(
                segment.status, TranscriptionStatus.IN_PROGRESS, segment_id=segment_id
            )

            await repo.apply_transition(segment, TranscriptionStatus.IN_PROGRESS)
            await self._emit(TranscriptionInProgress(segment_id=segment_id))
            logger.info(
                "Segment %s attempt %s started%s",
                segment_id,
                segment.attempts,
                " (resubmission)" if resubmission else "",
            )

            file_path = segment.file_path
            try:
                audio = await self._load_audio(file_path)
            except BlobMissingError as exc:
                logger.error(
                    "Audio file not found",
                    extra={"segment_id": segment_id, "path": exc.path},
                )
                return await self._fail(repo, segment)

            try:
                response = await self.provider.transcribe(
                    audio, PurePosixPath(file_path).name
                )
            except (httpx.HTTPError, asyncio.TimeoutError) as exc:
                logger.error(
                    "Exception while transcribing audio",
                    extra={"segment_id": segment_id, "error": str(exc)},
                )
                return await self._fail(repo, segment)

            if not response.successful:
                logger.error(
                    "Failed to transcribe audio",
                    extra={
                        "segment_id": segment_id,
                        "status": response.status_code,
                        "response": response.body,
                    },
                )
                return await self._fail(repo, segment)

            await repo.apply_transition(
                segment, TranscriptionStatus.SUCCESS, transcription=response.text
            )
            await self._emit(
                TranscriptionCompleted(segment_id=segment_id, transcription=response.text)
            )
            logger.info("Audio transcription completed", extra={"segment_id": segment_id})
            return TranscriptionStatus.SUCCESS

    async def handle_crash(self, segment_id: int, exc: BaseException) -> None:
        """Terminal handler for an attempt that ended abnormally.

        Forces the segment to ``failed`` and emits TranscriptionFailed when it
        was left ``pending`` or ``in_progress``. Never raises.
        """
        try:
            async with self.session_factory() as session:
                repo = SegmentRepository(session)
                segment = await repo.find_by_id(segment_id)
                if segment is None:
                    logger.error(
                        "Crashed attempt references unknown segment",
                        extra={"segment_id": segment_id, "error": str(exc)},
                    )
                    return
                if segment.status is TranscriptionStatus.PENDING:
                    # Never reached in_progress; record the attempt first so the
                    # lifecycle stays valid.
                    await repo.apply_transition(segment, TranscriptionStatus.IN_PROGRESS)
                    await self._emit(TranscriptionInProgress(segment_id=segment_id))
                if segment.status is not TranscriptionStatus.IN_PROGRESS:
                    logger.warning(
                        "Crashed attempt for segment %s left status %s; nothing to recover",
                        segment_id,
                        segment.status.value,
                    )
                    return
                await self._fail(repo, segment)
                logger.error(
                    "Job failed while processing audio transcription",
                    extra={"segment_id": segment_id, "error": str(exc)},
                )
        except InvalidStateTransitionError as transition_error:
            # Another attempt settled the segment first
            logger.warning("Crash handler skipped segment %s: %s", segment_id, transition_error)
        except Exception:
            logger.exception("Crash handler failed for segment %s", segment_id)

    async def _emit(self, event: SegmentEvent) -> None:
        try:
            await self.notifier.publish(event)
        except Exception as exc:
            logger.warning(
                "Failed to publish %s for segment %s: %s", event.name, event.segment_id, exc
            )

    async def _load_audio(self, file_path: str) -> bytes:
        """Read the segment's blob.

        Raises:
            BlobMissingError: the blob is absent or the existence check timed out
        """
        try:
            exists = await asyncio.wait_for(
                self.blob_store.exists(file_path), timeout=self.blob_check_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "Timed out checking audio file",
                extra={"path": file_path, "timeout": self.blob_check_timeout},
            )
            exists = False
        if not exists:
            raise BlobMissingError(file_path)
        try:
            return await self.blob_store.read(file_path)
        except FileNotFoundError as exc:
            raise BlobMissingError(file_path) from exc

    async def _fail(
        self, repo: SegmentRepository, segment: SpeechSegment
    ) -> TranscriptionStatus:
        await repo.apply_transition(segment, TranscriptionStatus.FAILED)
        await self._emit(TranscriptionFailed(segment_id=segment.id))
        return TranscriptionStatus.FAILED


async def process_segment(
    worker: TranscriptionWorker, segment_id: int, *, resubmission: bool = False
) -> Optional[TranscriptionStatus]:
    """Run one attempt, routing unexpected errors to the crash handler.

    ``SegmentNotFoundError`` and ``InvalidStateTransitionError`` propagate;
    they end the task without touching state.
    """
    try:
        return await worker.run_attempt(segment_id, resubmission=resubmission)
    except (SegmentNotFoundError, InvalidStateTransitionError):
        raise
    except Exception as exc:
        logger.exception("Unhandled error during attempt for segment %s", segment_id)
        await worker.handle_crash(segment_id, exc)
        return None
