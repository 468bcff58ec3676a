"""Tests for speech segment lifecycle rules."""

import pytest

from segscribe.domain.status import (
    TranscriptionStatus,
    allowed_next_statuses,
    can_be_resubmitted,
    can_start_attempt,
    ensure_resubmittable,
    ensure_transition,
)
from segscribe.errors import InvalidStateTransitionError


@pytest.mark.parametrize(
    "old,new",
    [
        (TranscriptionStatus.PENDING, TranscriptionStatus.IN_PROGRESS),
        (TranscriptionStatus.IN_PROGRESS, TranscriptionStatus.SUCCESS),
        (TranscriptionStatus.IN_PROGRESS, TranscriptionStatus.FAILED),
        (TranscriptionStatus.FAILED, TranscriptionStatus.IN_PROGRESS),
    ],
)
def test_permitted_transitions(old, new):
    ensure_transition(old, new)


@pytest.mark.parametrize(
    "old,new",
    [
        (TranscriptionStatus.PENDING, TranscriptionStatus.SUCCESS),
        (TranscriptionStatus.PENDING, TranscriptionStatus.FAILED),
        (TranscriptionStatus.SUCCESS, TranscriptionStatus.IN_PROGRESS),
        (TranscriptionStatus.SUCCESS, TranscriptionStatus.FAILED),
        (TranscriptionStatus.FAILED, TranscriptionStatus.SUCCESS),
        (TranscriptionStatus.IN_PROGRESS, TranscriptionStatus.IN_PROGRESS),
    ],
)
def test_forbidden_transitions_raise(old, new):
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        ensure_transition(old, new, segment_id=3)
    assert exc_info.value.current_status is old
    assert exc_info.value.attempted_status is new
    assert exc_info.value.segment_id == 3


def test_success_is_terminal():
    assert allowed_next_statuses(TranscriptionStatus.SUCCESS) == []
    assert not can_start_attempt(TranscriptionStatus.SUCCESS)


def test_allowed_next_statuses_are_sorted():
    assert allowed_next_statuses(TranscriptionStatus.IN_PROGRESS) == [
        TranscriptionStatus.FAILED,
        TranscriptionStatus.SUCCESS,
    ]


def test_only_failed_can_be_resubmitted():
    assert can_be_resubmitted(TranscriptionStatus.FAILED)
    for status in (
        TranscriptionStatus.PENDING,
        TranscriptionStatus.IN_PROGRESS,
        TranscriptionStatus.SUCCESS,
    ):
        assert not can_be_resubmitted(status)
        with pytest.raises(InvalidStateTransitionError):
            ensure_resubmittable(status, segment_id=1)


def test_labels():
    assert TranscriptionStatus.PENDING.label == "Pending"
    assert TranscriptionStatus.IN_PROGRESS.label == "In Progress"
    assert TranscriptionStatus.SUCCESS.label == "Success"
    assert TranscriptionStatus.FAILED.label == "Failed"
