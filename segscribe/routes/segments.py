"""Speech segment routes."""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from segscribe.config import settings
from segscribe.database import get_db
from segscribe.errors import IngestError, UploadValidationError
from segscribe.logging_config import get_logger
from segscribe.repositories.segments import SegmentRepository
from segscribe.routes.dependencies import get_blob_store, get_queue, get_sweeper
from segscribe.schemas.segment import (
    FailureResponse,
    ResubmissionResponse,
    SegmentCreatedResponse,
    SpeechSegmentListResponse,
    SpeechSegmentResponse,
)
from segscribe.services.ingest import SpeechSegmentIngestor
from segscribe.services.job_queue import TranscriptionJobQueue
from segscribe.services.sweeper import ResubmissionSweeper
from segscribe.storage.blob_store import LocalBlobStore

logger = get_logger(__name__)

router = APIRouter(tags=["speech-segments"])

GENERIC_FAILURE = "An error occurred while processing speech segment."


@router.get("/", response_model=SpeechSegmentListResponse)
async def list_segments(completed: bool = False, db: AsyncSession = Depends(get_db)):
    """Return known segments, newest first, for the initial page render.

    With ``completed=true`` only segments that have a transcription are listed.
    """
    repo = SegmentRepository(db)
    segments = await (repo.list_completed() if completed else repo.list_recent())
    items = [SpeechSegmentResponse.model_validate(segment) for segment in segments]
    return SpeechSegmentListResponse(total=len(items), items=items)


@router.post(
    "/speech-segments",
    response_model=SegmentCreatedResponse,
    responses={
        422: {"model": FailureResponse},
        500: {"model": FailureResponse},
    },
)
async def create_speech_segment(
    audio: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    blob_store: LocalBlobStore = Depends(get_blob_store),
    queue: TranscriptionJobQueue = Depends(get_queue),
):
    """
    Accept one VAD-chunked audio segment and queue it for transcription.

    Args:
        audio: wav, mp3, ogg or webm payload
        db: Database session
        blob_store: Audio blob storage
        queue: Background transcription queue

    Returns:
        SegmentCreatedResponse with the new segment id; transcription results
        arrive later over the WebSocket channel
    """
    ingestor = SpeechSegmentIngestor(
        db,
        blob_store,
        queue.enqueue,
        max_upload_bytes=settings.max_upload_bytes,
    )
    try:
        result = await ingestor.handle(audio)
    except UploadValidationError as exc:
        logger.info("Rejected speech segment upload: %s", exc.message)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=FailureResponse(message=exc.message).model_dump(),
        )
    except IngestError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=FailureResponse(message=GENERIC_FAILURE).model_dump(),
        )
    finally:
        await audio.close()

    return SegmentCreatedResponse(id=result.id)


@router.get("/speech-segments/{segment_id}", response_model=SpeechSegmentResponse)
async def get_speech_segment(segment_id: int, db: AsyncSession = Depends(get_db)):
    segment = await SegmentRepository(db).find_by_id(segment_id)
    if segment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Speech segment not found")
    return SpeechSegmentResponse.model_validate(segment)


@router.post("/speech-segments/resubmit-failed", response_model=ResubmissionResponse)
async def resubmit_failed_segments(sweeper: ResubmissionSweeper = Depends(get_sweeper)):
    """Run one resubmission sweep inside the serving process.

    Attempts run on this process's queue, so connected WebSocket clients
    receive their lifecycle events.
    """
    queued = await sweeper.sweep()
    return ResubmissionResponse(queued=queued)
