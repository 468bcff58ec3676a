"""Speech segment model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String, Text

from segscribe.database import Base
from segscribe.domain.status import TranscriptionStatus


class SpeechSegment(Base):
    """Speech segment table, one row per uploaded audio segment.

    Status values:
    pending      - Created by ingest, waiting for a worker
    in_progress  - A worker attempt is calling the provider
    success      - Transcription stored
    failed       - Last attempt failed; eligible for resubmission
    """

    __tablename__ = "speech_segments"
    __table_args__ = (
        Index("idx_speech_segments_status", "status"),
        Index("idx_speech_segments_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_path = Column(String(512), nullable=False)
    transcription = Column(Text, nullable=True)
    status = Column(
        Enum(
            TranscriptionStatus,
            name="transcription_status",
            native_enum=False,
            length=20,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=TranscriptionStatus.PENDING,
        nullable=False,
    )
    attempts = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<SpeechSegment(id={self.id}, file_path='{self.file_path}', status='{self.status}')>"
