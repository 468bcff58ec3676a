"""Ingest handler for uploaded speech segments.

Steps, each rolled back if a later one fails:
validate -> write blob -> create pending record -> enqueue processing task.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from segscribe.errors import IngestError
from segscribe.logging_config import get_logger
from segscribe.models.segment import SpeechSegment
from segscribe.repositories.segments import SegmentRepository
from segscribe.storage.blob_store import CHUNK_SIZE, LocalBlobStore, build_segment_path
from segscribe.utils.file_validation import validate_audio_upload

logger = get_logger(__name__)

Enqueue = Callable[[int], Awaitable[None]]


@dataclass(frozen=True)
class IngestResult:
    id: int
    file_path: str


async def _iter_upload(upload: UploadFile) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


class SpeechSegmentIngestor:
    """Accept one audio upload and hand it to background processing."""

    def __init__(
        self,
        session: AsyncSession,
        blob_store: LocalBlobStore,
        enqueue: Enqueue,
        *,
        max_upload_bytes: int,
        path_factory: Callable[[str], str] = build_segment_path,
    ):
        self.repository = SegmentRepository(session)
        self.blob_store = blob_store
        self.enqueue = enqueue
        self.max_upload_bytes = max_upload_bytes
        self.path_factory = path_factory

    async def handle(self, upload: UploadFile) -> IngestResult:
        """Store ``upload`` and queue it for transcription.

        Raises:
            UploadValidationError: before any state is created
            IngestError: storage, record or enqueue failure; nothing persists
        """
        validated = await validate_audio_upload(upload, self.max_upload_bytes)

        path: Optional[str] = None
        blob_written = False
        segment: Optional[SpeechSegment] = None
        try:
            path = self.path_factory(validated.extension)
            await self.blob_store.write(path, _iter_upload(upload))
            blob_written = True

            segment = await self.repository.create(path)
            await self.enqueue(segment.id)
        except Exception as exc:
            logger.exception("Failed to ingest speech segment")
            await self._rollback(segment, path if blob_written else None)
            raise IngestError("An error occurred while processing speech segment.") from exc

        logger.info(
            "Speech segment %s received (%s, %s bytes) at %s",
            segment.id,
            validated.mime_type,
            validated.size,
            path,
        )
        return IngestResult(id=segment.id, file_path=path)

    async def _rollback(self, segment: Optional[SpeechSegment], path: Optional[str]) -> None:
        if segment is not None:
            try:
                await self.repository.session.rollback()
                await self.repository.delete(segment)
            except Exception:
                logger.exception("Could not remove segment record %s during rollback", segment.id)
        if path is not None:
            try:
                await self.blob_store.delete(path)
            except Exception:
                logger.exception("Could not remove blob %s during rollback", path)
