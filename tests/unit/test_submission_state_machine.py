"""Unit tests for submission state machine transitions."""

import pytest

from ascent.grading.types import SubmissionStatus
from ascent.submissions.state_machine import (
    REVIEW_DECISIONS,
    TERMINAL_STATES,
    SubmissionStateError,
    can_reopen,
    can_resubmit,
    can_transition,
    validate_reopen,
    validate_transition,
)

PENDING = SubmissionStatus.PENDING
APPROVED = SubmissionStatus.APPROVED
REJECTED = SubmissionStatus.REJECTED
NEEDS_REVISION = SubmissionStatus.NEEDS_REVISION


class TestSubmissionCanTransition:
    def test_pending_to_each_decision(self):
        for target in (APPROVED, REJECTED, NEEDS_REVISION):
            assert can_transition(PENDING, target) is True

    def test_needs_revision_back_to_pending(self):
        assert can_transition(NEEDS_REVISION, PENDING) is True

    def test_needs_revision_cannot_be_approved_directly(self):
        assert can_transition(NEEDS_REVISION, APPROVED) is False

    def test_approved_is_terminal(self):
        for target in SubmissionStatus:
            assert can_transition(APPROVED, target) is False

    def test_rejected_is_terminal(self):
        for target in SubmissionStatus:
            assert can_transition(REJECTED, target) is False

    def test_no_self_transitions(self):
        for status in SubmissionStatus:
            assert can_transition(status, status) is False

    def test_constants(self):
        assert REVIEW_DECISIONS == {APPROVED, REJECTED, NEEDS_REVISION}
        assert TERMINAL_STATES == {APPROVED, REJECTED}


class TestSubmissionValidateTransition:
    def test_valid_passes(self):
        validate_transition(PENDING, APPROVED)

    def test_invalid_raises(self):
        with pytest.raises(SubmissionStateError) as exc_info:
            validate_transition(APPROVED, REJECTED)
        assert exc_info.value.current is APPROVED
        assert exc_info.value.target is REJECTED
        assert "approved" in str(exc_info.value)


class TestReopenAndResubmit:
    def test_only_reviewed_submissions_reopen(self):
        assert can_reopen(APPROVED) is True
        assert can_reopen(REJECTED) is True
        assert can_reopen(PENDING) is False
        assert can_reopen(NEEDS_REVISION) is False

    def test_validate_reopen_raises_for_pending(self):
        with pytest.raises(SubmissionStateError):
            validate_reopen(PENDING)

    def test_resubmission_allowed_before_review_outcome(self):
        assert can_resubmit(PENDING) is True
        assert can_resubmit(NEEDS_REVISION) is True
        assert can_resubmit(APPROVED) is False
        assert can_resubmit(REJECTED) is False
