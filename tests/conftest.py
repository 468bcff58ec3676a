"""Shared fixtures for the test suite."""

import logging
import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="segscribe-tests-"))
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_ROOT / 'test.db'}")
os.environ.setdefault("BLOB_STORAGE_PATH", str(_TEST_ROOT / "public"))
os.environ.setdefault("ENABLE_SWEEPER", "false")

import pytest  # noqa: E402

from segscribe import models  # noqa: E402,F401
from segscribe.database import AsyncSessionLocal, Base, engine  # noqa: E402
from segscribe.domain.status import TranscriptionStatus  # noqa: E402
from segscribe.models.segment import SpeechSegment  # noqa: E402
from segscribe.services.provider import ProviderResponse  # noqa: E402
from segscribe.services.worker import TranscriptionWorker  # noqa: E402
from segscribe.storage.blob_store import LocalBlobStore  # noqa: E402


class RecordingNotifier:
    """EventNotifier stub keeping published events in order."""

    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def names_for(self, segment_id: int) -> list[str]:
        return [event.name for event in self.events if event.segment_id == segment_id]


class StubProvider:
    """Provider stub returning a fixed response or raising a fixed error."""

    def __init__(self, response: ProviderResponse | None = None, error: Exception | None = None):
        self.response = response or ProviderResponse(True, 200, text="hello", body={"text": "hello"})
        self.error = error
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, filename: str) -> ProviderResponse:
        self.calls.append((audio, filename))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
async def setup_db():
    """Create/drop schema around each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def worker(blob_store, provider, notifier) -> TranscriptionWorker:
    return TranscriptionWorker(
        AsyncSessionLocal, blob_store, provider, notifier, blob_check_timeout=1.0
    )


@pytest.fixture
def segscribe_logs(caplog):
    """Capture records from the non-propagating ``segscribe`` logger."""
    logger = logging.getLogger("segscribe")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="segscribe")
    yield caplog
    logger.removeHandler(caplog.handler)


async def create_segment(
    *,
    segment_id: int | None = None,
    file_path: str = "speech_segments/2025/08/01/14/speech_segment_test.mp3",
    status: TranscriptionStatus = TranscriptionStatus.PENDING,
    transcription: str | None = None,
    attempts: int = 0,
) -> int:
    async with AsyncSessionLocal() as session:
        segment = SpeechSegment(
            id=segment_id,
            file_path=file_path,
            status=status,
            transcription=transcription,
            attempts=attempts,
        )
        session.add(segment)
        await session.commit()
        return segment.id


async def load_segment(segment_id: int) -> SpeechSegment | None:
    async with AsyncSessionLocal() as session:
        return await session.get(SpeechSegment, segment_id)
