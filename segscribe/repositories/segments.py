"""Persistence operations for speech segments.

Every status change goes through :meth:`SegmentRepository.apply_transition`,
which validates the lifecycle rule and writes status, transcription, attempt
counter and ``updated_at`` in a single conditional ``UPDATE``: the write only
applies while the row still holds the status the caller read, so two attempts
can never both start on the same segment, even across processes.
"""

from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from segscribe.domain.status import TranscriptionStatus, ensure_transition
from segscribe.errors import InvalidStateTransitionError
from segscribe.logging_config import get_logger
from segscribe.models.segment import SpeechSegment

logger = get_logger(__name__)


class SegmentRepository:
    """Record store for speech segments bound to one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, segment_id: int) -> Optional[SpeechSegment]:
        return await self.session.get(SpeechSegment, segment_id, populate_existing=True)

    async def create(self, file_path: str) -> SpeechSegment:
        """Insert a pending segment for a freshly written blob."""
        now = datetime.utcnow()
        segment = SpeechSegment(
            file_path=file_path,
            transcription=None,
            status=TranscriptionStatus.PENDING,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(segment)
        await self.session.commit()
        await self.session.refresh(segment)
        logger.debug("Segment %s created for %s", segment.id, file_path)
        return segment

    async def delete(self, segment: SpeechSegment) -> None:
        await self.session.delete(segment)
        await self.session.commit()

    async def list_recent(self, limit: Optional[int] = None) -> Sequence[SpeechSegment]:
        """Return segments ordered newest first."""
        query = select(SpeechSegment).order_by(
            SpeechSegment.created_at.desc(), SpeechSegment.id.desc()
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return result.scalars().all()

    async def list_completed(self) -> Sequence[SpeechSegment]:
        result = await self.session.execute(
            select(SpeechSegment)
            .where(SpeechSegment.transcription.isnot(None))
            .order_by(SpeechSegment.created_at.desc(), SpeechSegment.id.desc())
        )
        return result.scalars().all()

    async def list_ids_with_status(self, status: TranscriptionStatus) -> list[int]:
        result = await self.session.execute(
            select(SpeechSegment.id)
            .where(SpeechSegment.status == status)
            .order_by(SpeechSegment.id)
        )
        return list(result.scalars().all())

    async def iter_failed_pages(
        self, page_size: int, *, max_attempts: Optional[int] = None
    ) -> AsyncIterator[list[int]]:
        """Yield ids of failed segments in pages of at most ``page_size``.

        Keyset pagination on the primary key keeps each page bounded and
        stable while other workers change statuses between pages.
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        last_id = 0
        while True:
            query = (
                select(SpeechSegment.id)
                .where(
                    SpeechSegment.status == TranscriptionStatus.FAILED,
                    SpeechSegment.id > last_id,
                )
                .order_by(SpeechSegment.id)
                .limit(page_size)
            )
            if max_attempts is not None:
                query = query.where(SpeechSegment.attempts < max_attempts)
            result = await self.session.execute(query)
            page = list(result.scalars().all())
            if not page:
                return
            yield page
            if len(page) < page_size:
                return
            last_id = page[-1]

    async def apply_transition(
        self,
        segment: SpeechSegment,
        new_status: TranscriptionStatus,
        *,
        transcription: Optional[str] = None,
    ) -> SpeechSegment:
        """Move a segment to ``new_status`` in one atomic write.

        Args:
            segment: Loaded segment to mutate
            new_status: Target status
            transcription: Transcript text, required when ``new_status`` is success

        Returns:
            The refreshed segment

        Raises:
            InvalidStateTransitionError: if the lifecycle forbids the change or
                the stored status no longer matches the loaded one
            ValueError: if a success transition has no transcript
        """
        expected = segment.status
        ensure_transition(expected, new_status, segment_id=segment.id)
        if new_status is TranscriptionStatus.SUCCESS and transcription is None:
            raise ValueError("A successful transition requires transcription text")

        values = {
            "status": new_status,
            "transcription": (
                transcription if new_status is TranscriptionStatus.SUCCESS else None
            ),
            "updated_at": datetime.utcnow(),
        }
        if new_status is TranscriptionStatus.IN_PROGRESS:
            values["attempts"] = SpeechSegment.attempts + 1

        # Compare-and-set on the status the caller loaded: a concurrent attempt
        # (another worker or process) that moved the row first wins.
        result = await self.session.execute(
            update(SpeechSegment)
            .where(SpeechSegment.id == segment.id, SpeechSegment.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            logger.warning(
                "Segment %s changed concurrently; %s -> %s not applied",
                segment.id,
                expected.value,
                new_status.value,
            )
            raise InvalidStateTransitionError(expected, new_status, segment_id=segment.id)

        await self.session.commit()
        await self.session.refresh(segment)
        return segment
