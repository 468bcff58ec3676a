"""Application exception types."""

from typing import Optional


class SegmentError(Exception):
    """Base class for speech segment pipeline errors."""


class UploadValidationError(SegmentError):
    """Uploaded audio was rejected before any state was created."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class IngestError(SegmentError):
    """Storing the blob, creating the record or enqueueing the task failed."""


class SegmentNotFoundError(SegmentError):
    """A task referenced a segment id with no record."""

    def __init__(self, segment_id: int) -> None:
        self.segment_id = segment_id
        super().__init__(f"Speech segment not found with ID: {segment_id}")


class BlobMissingError(SegmentError):
    """The audio blob referenced by a segment is absent."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Audio file not found at path: {path}")


class InvalidStateTransitionError(SegmentError):
    """A status change not permitted by the lifecycle rules was attempted."""

    def __init__(self, current_status, attempted_status, segment_id: Optional[int] = None) -> None:
        self.current_status = current_status
        self.attempted_status = attempted_status
        self.segment_id = segment_id
        subject = f"Segment {segment_id}" if segment_id is not None else "Segment"
        super().__init__(
            f"{subject} cannot move from '{getattr(current_status, 'value', current_status)}' "
            f"to '{getattr(attempted_status, 'value', attempted_status)}'"
        )


__all__ = [
    "SegmentError",
    "UploadValidationError",
    "IngestError",
    "SegmentNotFoundError",
    "BlobMissingError",
    "InvalidStateTransitionError",
]
