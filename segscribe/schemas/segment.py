"""Pydantic schemas for speech segments."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, computed_field

from segscribe.domain.status import TranscriptionStatus


class SegmentCreatedResponse(BaseModel):
    """Response returned once a segment has been stored and queued."""

    success: bool = True
    message: str = "Speech segment received successfully"
    id: int


class FailureResponse(BaseModel):
    success: bool = False
    message: str


class SpeechSegmentResponse(BaseModel):
    """Response schema for one speech segment."""

    model_config = {"from_attributes": True}

    id: int
    file_path: str
    transcription: Optional[str] = None
    status: TranscriptionStatus
    attempts: int = 0
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def status_label(self) -> str:
        return self.status.label


class SpeechSegmentListResponse(BaseModel):
    total: int
    items: List[SpeechSegmentResponse]


class ResubmissionResponse(BaseModel):
    """Result of a sweep requested over HTTP."""

    success: bool = True
    queued: int
