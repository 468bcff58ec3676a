"""Pydantic schemas package."""

from segscribe.schemas.segment import (
    FailureResponse,
    ResubmissionResponse,
    SegmentCreatedResponse,
    SpeechSegmentListResponse,
    SpeechSegmentResponse,
)

__all__ = [
    "FailureResponse",
    "ResubmissionResponse",
    "SegmentCreatedResponse",
    "SpeechSegmentListResponse",
    "SpeechSegmentResponse",
]
