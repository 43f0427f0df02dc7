"""Submission review state machine.

States: pending → approved | rejected | needs_revision
needs_revision → pending (athlete resubmits)
approved and rejected are terminal for the normal flow. Only an
administrative reopen moves them back to pending.
"""

from ascent.grading.types import SubmissionStatus


class SubmissionStateError(Exception):
    """Raised when an invalid submission state transition is attempted."""

    def __init__(self, current: SubmissionStatus, target: SubmissionStatus, message: str | None = None) -> None:
        self.current = current
        self.target = target
        super().__init__(
            message
            or (
                f"Cannot transition submission from '{current.value}' to '{target.value}'. "
                f"Allowed from '{current.value}': {[s.value for s in VALID_TRANSITIONS[current]]}"
            )
        )


VALID_TRANSITIONS: dict[SubmissionStatus, list[SubmissionStatus]] = {
    SubmissionStatus.PENDING: [
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
        SubmissionStatus.NEEDS_REVISION,
    ],
    SubmissionStatus.NEEDS_REVISION: [SubmissionStatus.PENDING],
    SubmissionStatus.APPROVED: [],  # terminal
    SubmissionStatus.REJECTED: [],  # terminal
}

ADMIN_TRANSITIONS: dict[SubmissionStatus, list[SubmissionStatus]] = {
    SubmissionStatus.APPROVED: [SubmissionStatus.PENDING],
    SubmissionStatus.REJECTED: [SubmissionStatus.PENDING],
}

REVIEW_DECISIONS: frozenset[SubmissionStatus] = frozenset(VALID_TRANSITIONS[SubmissionStatus.PENDING])

TERMINAL_STATES: frozenset[SubmissionStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    """Check if a normal-flow transition is valid."""
    return target in VALID_TRANSITIONS.get(current, [])


def validate_transition(current: SubmissionStatus, target: SubmissionStatus) -> None:
    """Validate a normal-flow transition, raising SubmissionStateError if invalid."""
    if not can_transition(current, target):
        raise SubmissionStateError(current, target)


def can_reopen(current: SubmissionStatus) -> bool:
    """Whether an administrator may send a reviewed submission back to pending."""
    return SubmissionStatus.PENDING in ADMIN_TRANSITIONS.get(current, [])


def validate_reopen(current: SubmissionStatus) -> None:
    if not can_reopen(current):
        raise SubmissionStateError(
            current,
            SubmissionStatus.PENDING,
            f"Only approved or rejected submissions can be reopened (current: '{current.value}')",
        )


def can_resubmit(current: SubmissionStatus) -> bool:
    """Whether the athlete may overwrite proof and re-enter pending.

    A pending submission can be refreshed in place; a revision request sends
    it back through pending. Reviewed submissions need an administrator.
    """
    return current is SubmissionStatus.PENDING or can_transition(current, SubmissionStatus.PENDING)


__all__ = [
    "ADMIN_TRANSITIONS",
    "REVIEW_DECISIONS",
    "SubmissionStateError",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "can_reopen",
    "can_resubmit",
    "can_transition",
    "validate_reopen",
    "validate_transition",
]
