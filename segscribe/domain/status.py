"""Speech segment lifecycle transition rules."""

from enum import Enum

from segscribe.errors import InvalidStateTransitionError


class TranscriptionStatus(str, Enum):
    """Transcription status values stored on a speech segment."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS: dict[TranscriptionStatus, str] = {
    TranscriptionStatus.PENDING: "Pending",
    TranscriptionStatus.IN_PROGRESS: "In Progress",
    TranscriptionStatus.SUCCESS: "Success",
    TranscriptionStatus.FAILED: "Failed",
}

_ALLOWED_TRANSITIONS: dict[TranscriptionStatus, set[TranscriptionStatus]] = {
    TranscriptionStatus.PENDING: {TranscriptionStatus.IN_PROGRESS},
    TranscriptionStatus.IN_PROGRESS: {TranscriptionStatus.SUCCESS, TranscriptionStatus.FAILED},
    # Failed is terminal until a resubmission starts a new attempt.
    TranscriptionStatus.FAILED: {TranscriptionStatus.IN_PROGRESS},
    TranscriptionStatus.SUCCESS: set(),
}


def allowed_next_statuses(status: TranscriptionStatus) -> list[TranscriptionStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def can_start_attempt(status: TranscriptionStatus) -> bool:
    """Only pending or failed segments may enter in_progress."""
    return TranscriptionStatus.IN_PROGRESS in _ALLOWED_TRANSITIONS.get(status, set())


def can_be_resubmitted(status: TranscriptionStatus) -> bool:
    return status is TranscriptionStatus.FAILED


def ensure_transition(
    old_status: TranscriptionStatus,
    new_status: TranscriptionStatus,
    *,
    segment_id: int | None = None,
) -> None:
    """Validate a transition according to lifecycle rules.

    Raises:
        InvalidStateTransitionError: when ``new_status`` is not a permitted successor.
    """
    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        raise InvalidStateTransitionError(old_status, new_status, segment_id=segment_id)


def ensure_resubmittable(status: TranscriptionStatus, *, segment_id: int | None = None) -> None:
    """Reject a resubmission for any segment that is not failed."""
    if not can_be_resubmitted(status):
        raise InvalidStateTransitionError(
            status, TranscriptionStatus.IN_PROGRESS, segment_id=segment_id
        )
