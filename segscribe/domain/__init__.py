"""Domain rules for speech segments."""

from segscribe.domain.status import (
    TranscriptionStatus,
    allowed_next_statuses,
    can_be_resubmitted,
    can_start_attempt,
    ensure_resubmittable,
    ensure_transition,
)

__all__ = [
    "TranscriptionStatus",
    "allowed_next_statuses",
    "can_be_resubmitted",
    "can_start_attempt",
    "ensure_resubmittable",
    "ensure_transition",
]
