"""Grade ladder resolution.

A challenge's grades for one division form a ladder of increasingly strict
thresholds. The ladder is ordered easiest first:

- lower-is-better (time): largest target first, difficulty grows as the
  target shrinks
- higher-is-better (reps, distance, ...): smallest target first, difficulty
  grows as the target grows

Tiers are nested, so the claimed tiers are always the satisfied prefix of the
ladder, never a scattered subset. Equal targets on two ranks are an authoring
error; they are ordered by rank letter so the result stays deterministic.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from ascent.grading.divisions import DivisionMatch
from ascent.grading.types import GradingDirection, GradingType, Rank
from ascent.repositories.exceptions import ValidationError
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GradeRecord:
    """One rung of a tier ladder."""

    challenge_id: UUID
    division_id: UUID
    rank: Rank
    target_value: float


@dataclass(frozen=True)
class LadderResult:
    """Tiers satisfied by an achieved value.

    ``graded`` is False when no ladder applies to the athlete (no matching
    division, or no grades authored for it). An ungraded submission can
    still be approved as a completion, with no tier and no XP.
    """

    graded: bool
    claimed_tiers: tuple[Rank, ...] = field(default_factory=tuple)

    @property
    def highest_tier(self) -> Rank | None:
        return self.claimed_tiers[-1] if self.claimed_tiers else None


UNGRADED = LadderResult(graded=False)


def satisfies(achieved_value: float, target_value: float, direction: GradingDirection) -> bool:
    """Whether an achieved value meets a single tier threshold."""
    if direction is GradingDirection.LOWER_IS_BETTER:
        return achieved_value <= target_value
    if direction is GradingDirection.HIGHER_IS_BETTER:
        return achieved_value >= target_value
    raise ValueError(f"Unhandled grading direction: {direction!r}")


def order_ladder(grades: Iterable[GradeRecord], direction: GradingDirection) -> list[GradeRecord]:
    """Sort grades easiest first, breaking target ties by rank letter.

    A rank authored twice keeps only its easiest occurrence.
    """
    if direction is GradingDirection.LOWER_IS_BETTER:
        ordered = sorted(grades, key=lambda g: (-g.target_value, g.rank.position))
    elif direction is GradingDirection.HIGHER_IS_BETTER:
        ordered = sorted(grades, key=lambda g: (g.target_value, g.rank.position))
    else:
        raise ValueError(f"Unhandled grading direction: {direction!r}")

    seen: set[Rank] = set()
    ladder: list[GradeRecord] = []
    for grade in ordered:
        if grade.rank in seen:
            logger.warning(
                "duplicate_grade_rank",
                challenge_id=str(grade.challenge_id),
                division_id=str(grade.division_id),
                rank=grade.rank.value,
            )
            continue
        seen.add(grade.rank)
        ladder.append(grade)
    return ladder


def validate_achieved_value(achieved_value: float) -> float:
    """Reject values that cannot be graded."""
    if isinstance(achieved_value, bool):
        raise ValidationError("Achieved value must be a number", field="achieved_value")
    try:
        value = float(achieved_value)
    except (TypeError, ValueError) as e:
        raise ValidationError("Achieved value must be a number", field="achieved_value") from e
    if not math.isfinite(value):
        raise ValidationError("Achieved value must be finite", field="achieved_value")
    if value <= 0:
        raise ValidationError("Achieved value must be positive", field="achieved_value")
    return value


def resolve(
    achieved_value: float,
    grades: Iterable[GradeRecord],
    grading_type: GradingType,
) -> LadderResult:
    """Resolve an achieved value against one division's ladder.

    Args:
        achieved_value: The measured performance
        grades: Grades of a single (challenge, division) pair
        grading_type: The challenge's grading type

    Returns:
        LadderResult; ungraded when ``grades`` is empty
    """
    value = validate_achieved_value(achieved_value)
    direction = grading_type.direction
    ladder = order_ladder(grades, direction)
    if not ladder:
        return UNGRADED

    claimed: list[Rank] = []
    for grade in ladder:
        if not satisfies(value, grade.target_value, direction):
            break
        claimed.append(grade.rank)

    return LadderResult(graded=True, claimed_tiers=tuple(claimed))


def grades_for_division(grades: Iterable[GradeRecord], division_id: UUID | None) -> list[GradeRecord]:
    """Restrict a challenge's grades to one division."""
    if division_id is None:
        return []
    return [g for g in grades if g.division_id == division_id]


def resolve_for_match(
    achieved_value: float | None,
    grades: Iterable[GradeRecord],
    grading_type: GradingType,
    match: DivisionMatch,
) -> LadderResult:
    """Resolve against the ladder of the athlete's matched division.

    Pass/fail challenges, a missing value, an unmatched division and a
    division with no grades all give the ungraded result.
    """
    if achieved_value is None:
        return UNGRADED
    if grading_type.is_pass_fail or not match.matched:
        validate_achieved_value(achieved_value)
        return UNGRADED
    return resolve(achieved_value, grades_for_division(grades, match.division_id), grading_type)


__all__ = [
    "GradeRecord",
    "LadderResult",
    "UNGRADED",
    "grades_for_division",
    "order_ladder",
    "resolve",
    "resolve_for_match",
    "satisfies",
    "validate_achieved_value",
]
