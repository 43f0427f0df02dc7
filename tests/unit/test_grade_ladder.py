"""Unit tests for the grade ladder resolver."""

import math
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from ascent.grading.divisions import DivisionMatch, DivisionRecord
from ascent.grading.ladder import (
    UNGRADED,
    GradeRecord,
    grades_for_division,
    order_ladder,
    resolve,
    resolve_for_match,
    satisfies,
)
from ascent.grading.types import GradingDirection, GradingType, Rank
from ascent.repositories.exceptions import ValidationError

CHALLENGE = uuid4()
DIVISION = uuid4()


def _ladder(targets: dict[Rank, float], division_id=DIVISION) -> list[GradeRecord]:
    return [GradeRecord(CHALLENGE, division_id, rank, target) for rank, target in targets.items()]


RUN_5K = _ladder({Rank.F: 1800, Rank.E: 1500, Rank.D: 1200})
PUSH_UPS = _ladder({Rank.F: 10, Rank.E: 20, Rank.D: 30})


class TestSatisfies:
    def test_lower_is_better_includes_equal(self):
        assert satisfies(1500, 1500, GradingDirection.LOWER_IS_BETTER) is True
        assert satisfies(1501, 1500, GradingDirection.LOWER_IS_BETTER) is False

    def test_higher_is_better_includes_equal(self):
        assert satisfies(20, 20, GradingDirection.HIGHER_IS_BETTER) is True
        assert satisfies(19.9, 20, GradingDirection.HIGHER_IS_BETTER) is False

    def test_grading_type_directions(self):
        assert GradingType.TIME.direction is GradingDirection.LOWER_IS_BETTER
        for grading in (GradingType.REPS, GradingType.DISTANCE, GradingType.TIMED_REPS, GradingType.WEIGHTED_REPS):
            assert grading.direction is GradingDirection.HIGHER_IS_BETTER

    def test_pass_fail_has_no_ladder(self):
        assert GradingType.PASS_FAIL.is_pass_fail is True
        with pytest.raises(ValueError):
            GradingType.PASS_FAIL.direction
        with pytest.raises(ValueError):
            resolve(1, PUSH_UPS, GradingType.PASS_FAIL)


class TestResolve:
    def test_lower_is_better_claims_satisfied_prefix(self):
        result = resolve(1350, RUN_5K, GradingType.TIME)
        assert result.graded is True
        assert result.claimed_tiers == (Rank.F, Rank.E)
        assert result.highest_tier is Rank.E

    def test_higher_is_better_claims_satisfied_prefix(self):
        result = resolve(25, PUSH_UPS, GradingType.REPS)
        assert result.claimed_tiers == (Rank.F, Rank.E)
        assert result.highest_tier is Rank.E

    def test_below_easiest_tier_claims_nothing(self):
        result = resolve(5, PUSH_UPS, GradingType.REPS)
        assert result.graded is True
        assert result.claimed_tiers == ()
        assert result.highest_tier is None

    def test_beating_every_tier_claims_all(self):
        result = resolve(900, RUN_5K, GradingType.TIME)
        assert result.claimed_tiers == (Rank.F, Rank.E, Rank.D)

    def test_input_order_does_not_matter(self):
        shuffled = list(reversed(PUSH_UPS))
        assert resolve(25, shuffled, GradingType.REPS) == resolve(25, PUSH_UPS, GradingType.REPS)

    def test_empty_ladder_is_ungraded(self):
        assert resolve(25, [], GradingType.REPS) == UNGRADED

    def test_monotonic_in_achieved_value(self):
        previous = 0
        for value in range(0, 40):
            claimed = len(resolve(value, PUSH_UPS, GradingType.REPS).claimed_tiers)
            assert claimed >= previous
            previous = claimed

    def test_claimed_tiers_are_a_prefix(self):
        ordered = [g.rank for g in order_ladder(RUN_5K, GradingDirection.LOWER_IS_BETTER)]
        for value in (2000, 1800, 1600, 1500, 1300, 1200, 100):
            claimed = list(resolve(value, RUN_5K, GradingType.TIME).claimed_tiers)
            assert claimed == ordered[: len(claimed)]


class TestOrderLadder:
    def test_equal_targets_are_ordered_by_rank_letter(self):
        grades = _ladder({Rank.E: 20, Rank.F: 20, Rank.D: 30})
        ordered = order_ladder(grades, GradingDirection.HIGHER_IS_BETTER)
        assert [g.rank for g in ordered] == [Rank.F, Rank.E, Rank.D]

    def test_equal_targets_are_claimed_together(self):
        grades = _ladder({Rank.F: 20, Rank.E: 20, Rank.D: 30})
        assert resolve(20, grades, GradingType.REPS).claimed_tiers == (Rank.F, Rank.E)

    def test_duplicate_rank_keeps_easiest(self):
        grades = [
            GradeRecord(CHALLENGE, DIVISION, Rank.F, 10),
            GradeRecord(CHALLENGE, DIVISION, Rank.F, 15),
            GradeRecord(CHALLENGE, DIVISION, Rank.E, 20),
        ]
        ordered = order_ladder(grades, GradingDirection.HIGHER_IS_BETTER)
        assert [(g.rank, g.target_value) for g in ordered] == [(Rank.F, 10), (Rank.E, 20)]


class TestAchievedValueValidation:
    @pytest.mark.parametrize("value", [-1, 0, math.nan, math.inf, -math.inf])
    def test_rejects_invalid_values(self, value):
        with pytest.raises(ValidationError) as exc_info:
            resolve(value, PUSH_UPS, GradingType.REPS)
        assert exc_info.value.field == "achieved_value"

    def test_rejects_booleans(self):
        with pytest.raises(ValidationError):
            resolve(True, PUSH_UPS, GradingType.REPS)

    def test_small_positive_value_claims_nothing(self):
        assert resolve(1, PUSH_UPS, GradingType.REPS).claimed_tiers == ()


class TestResolveForMatch:
    def _match(self, division_id):
        record = DivisionRecord(id=division_id, name="Open", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        return DivisionMatch(age=30, division=record)

    def test_uses_only_the_matched_division(self):
        other = uuid4()
        grades = PUSH_UPS + _ladder({Rank.F: 1, Rank.E: 2, Rank.D: 3}, division_id=other)
        result = resolve_for_match(25, grades, GradingType.REPS, self._match(DIVISION))
        assert result.claimed_tiers == (Rank.F, Rank.E)

    def test_unmatched_division_is_ungraded(self):
        result = resolve_for_match(25, PUSH_UPS, GradingType.REPS, DivisionMatch(age=8, division=None))
        assert result == UNGRADED

    def test_unmatched_division_still_validates_value(self):
        with pytest.raises(ValidationError):
            resolve_for_match(-3, PUSH_UPS, GradingType.REPS, DivisionMatch(age=8, division=None))

    def test_missing_value_is_ungraded(self):
        assert resolve_for_match(None, PUSH_UPS, GradingType.REPS, self._match(DIVISION)) == UNGRADED

    def test_grades_for_unknown_division_is_empty(self):
        assert grades_for_division(PUSH_UPS, None) == []

    def test_pass_fail_is_ungraded_even_with_grades(self):
        assert resolve_for_match(25, PUSH_UPS, GradingType.PASS_FAIL, self._match(DIVISION)) == UNGRADED

    def test_timed_and_weighted_reps_grade_upwards(self):
        for grading in (GradingType.TIMED_REPS, GradingType.WEIGHTED_REPS):
            result = resolve_for_match(25, PUSH_UPS, grading, self._match(DIVISION))
            assert result.claimed_tiers == (Rank.F, Rank.E)
