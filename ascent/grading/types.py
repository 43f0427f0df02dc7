"""Closed value types for grading: tier ranks, grading direction, proof and status."""

from enum import Enum
from typing import Final


class Rank(str, Enum):
    """Tier letters, easiest first."""

    F = "F"
    E = "E"
    D = "D"
    C = "C"
    B = "B"
    A = "A"
    S = "S"

    @property
    def position(self) -> int:
        return RANK_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Rank):
            return NotImplemented
        return self.position < other.position

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Rank):
            return NotImplemented
        return self.position <= other.position

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Rank):
            return NotImplemented
        return self.position > other.position

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Rank):
            return NotImplemented
        return self.position >= other.position


RANK_ORDER: Final[list[Rank]] = list(Rank)


def parse_rank(value: "str | Rank") -> Rank:
    """Parse a tier letter, raising ValueError on anything outside F..S."""
    if isinstance(value, Rank):
        return value
    try:
        return Rank(value.strip().upper())
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Unknown rank {value!r}; expected one of {[r.value for r in RANK_ORDER]}") from e


class GradingDirection(str, Enum):
    """Whether a smaller or larger achieved value is the better performance."""

    LOWER_IS_BETTER = "lower_is_better"
    HIGHER_IS_BETTER = "higher_is_better"


class GradingType(str, Enum):
    """How a challenge measures performance.

    ``PASS_FAIL`` challenges have no ladder: an approval is a completion and
    earns a flat amount of XP instead of per-tier XP.
    """

    PASS_FAIL = "pass_fail"
    REPS = "reps"
    TIME = "time"
    DISTANCE = "distance"
    TIMED_REPS = "timed_reps"
    WEIGHTED_REPS = "weighted_reps"

    @property
    def is_pass_fail(self) -> bool:
        return self is GradingType.PASS_FAIL

    @property
    def direction(self) -> GradingDirection:
        """Ladder direction; ValueError for pass/fail, which has no ladder."""
        try:
            return GRADING_DIRECTIONS[self]
        except KeyError:
            raise ValueError(f"{self.value} challenges are not graded on a ladder") from None


GRADING_DIRECTIONS: Final[dict[GradingType, GradingDirection]] = {
    GradingType.REPS: GradingDirection.HIGHER_IS_BETTER,
    GradingType.TIME: GradingDirection.LOWER_IS_BETTER,
    GradingType.DISTANCE: GradingDirection.HIGHER_IS_BETTER,
    GradingType.TIMED_REPS: GradingDirection.HIGHER_IS_BETTER,
    GradingType.WEIGHTED_REPS: GradingDirection.HIGHER_IS_BETTER,
}


class ProofType(str, Enum):
    """Kinds of evidence an athlete can attach to a submission."""

    VIDEO = "video"
    IMAGE = "image"
    STRAVA = "strava"
    GARMIN = "garmin"
    RACE_RESULT = "race_result"
    MANUAL = "manual"


class SubmissionStatus(str, Enum):
    """Review states of a challenge submission."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVISION = "needs_revision"


__all__ = [
    "GRADING_DIRECTIONS",
    "GradingDirection",
    "GradingType",
    "ProofType",
    "RANK_ORDER",
    "Rank",
    "SubmissionStatus",
    "parse_rank",
]
