"""Tests for the XP calculator and level table."""

from uuid import uuid4

import pytest

from ascent.config import EngineSettings
from ascent.experience.calculator import (
    MAX_LEVEL,
    NO_XP,
    DomainShare,
    LevelTable,
    calculate_allocation,
    completion_allocation,
    format_level,
    from_numeric_level,
    pass_fail_xp,
    round_half_up,
    split_xp,
    tier_xp,
    to_numeric_level,
)
from ascent.grading.types import Rank

XP_PER_TIER = EngineSettings().xp_per_tier
DEFAULT_TABLE = LevelTable.from_sublevel_costs(EngineSettings().xp_per_sublevel)


# ===========================================
# LEVEL TABLE
# ===========================================


class TestLevelTable:
    def test_default_table_has_seventy_levels(self):
        assert DEFAULT_TABLE.max_level == MAX_LEVEL == 69

    def test_default_cutoffs(self):
        assert DEFAULT_TABLE.cutoff(0) == 0
        assert DEFAULT_TABLE.cutoff(1) == 100
        assert DEFAULT_TABLE.cutoff(10) == 1000
        assert DEFAULT_TABLE.cutoff(11) == 1200
        assert DEFAULT_TABLE.cutoff(20) == 3000

    def test_level_for_boundaries(self):
        assert DEFAULT_TABLE.level_for(0) == 0
        assert DEFAULT_TABLE.level_for(99) == 0
        assert DEFAULT_TABLE.level_for(100) == 1
        assert DEFAULT_TABLE.level_for(999) == 9
        assert DEFAULT_TABLE.level_for(1000) == 10

    def test_level_is_monotonic(self):
        previous = 0
        for xp in range(0, 20000, 37):
            level = DEFAULT_TABLE.level_for(xp)
            assert level >= previous
            previous = level

    def test_level_caps_at_top(self):
        assert DEFAULT_TABLE.level_for(10**9) == MAX_LEVEL
        assert DEFAULT_TABLE.xp_to_next_level(10**9) == 0

    def test_negative_xp_rejected(self):
        with pytest.raises(ValueError):
            DEFAULT_TABLE.level_for(-1)

    def test_xp_to_next_level(self):
        assert DEFAULT_TABLE.xp_to_next_level(0) == 100
        assert DEFAULT_TABLE.xp_to_next_level(75) == 25
        assert DEFAULT_TABLE.xp_to_next_level(1000) == 200

    def test_custom_table(self):
        table = LevelTable((0, 10, 50))
        assert table.level_for(49) == 1
        assert table.level_for(50) == 2

    @pytest.mark.parametrize("cutoffs", [(), (5, 10), (0, 10, 10), (0, 20, 10)])
    def test_invalid_tables_rejected(self, cutoffs):
        with pytest.raises(ValueError):
            LevelTable(cutoffs)


class TestLevelDisplay:
    def test_round_trip_examples(self):
        assert to_numeric_level(Rank.C, 7) == 37
        assert from_numeric_level(37) == (Rank.C, 7)
        assert format_level(13) == "E3"
        assert format_level(69) == "S9"

    def test_clamps_out_of_range(self):
        assert format_level(-5) == "F0"
        assert format_level(500) == "S9"

    def test_sublevel_validated(self):
        with pytest.raises(ValueError):
            to_numeric_level(Rank.F, 10)


# ===========================================
# XP ALLOCATION
# ===========================================


class TestTierXP:
    def test_sum_of_claimed_tiers(self):
        assert tier_xp([Rank.F, Rank.E], XP_PER_TIER) == 75

    def test_min_rank_filters_lower_tiers(self):
        assert tier_xp([Rank.F, Rank.E, Rank.D], XP_PER_TIER, min_rank=Rank.E) == 125

    def test_no_tiers_no_xp(self):
        assert tier_xp([], XP_PER_TIER) == 0


class TestSplitXP:
    def test_single_domain(self):
        domain = uuid4()
        assert split_xp(75, [DomainShare(domain, 100)]) == {domain: 75}

    def test_rounds_half_up_per_domain(self):
        primary, secondary = uuid4(), uuid4()
        split = split_xp(75, [DomainShare(primary, 50), DomainShare(secondary, 50)])
        assert split == {primary: 38, secondary: 38}

    def test_zero_percent_domain_skipped(self):
        primary, secondary = uuid4(), uuid4()
        assert split_xp(100, [DomainShare(primary, 100), DomainShare(secondary, 0)]) == {primary: 100}

    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestCalculateAllocation:
    def test_allocation_per_domain(self):
        primary, secondary = uuid4(), uuid4()
        allocation = calculate_allocation(
            [Rank.F, Rank.E],
            [DomainShare(primary, 60), DomainShare(secondary, 40)],
            XP_PER_TIER,
        )
        assert allocation.total == 75
        assert allocation.amount_for(primary) == 45
        assert allocation.amount_for(secondary) == 30

    def test_nothing_claimed_is_no_xp(self):
        assert calculate_allocation([], [DomainShare(uuid4(), 100)], XP_PER_TIER) == NO_XP


class TestPassFailXP:
    @pytest.mark.parametrize(
        "min_rank,max_rank,expected",
        [
            (Rank.F, Rank.S, 163),
            (Rank.E, Rank.A, 125),
            (Rank.D, Rank.D, 75),
        ],
    )
    def test_midpoint_of_rank_range(self, min_rank, max_rank, expected):
        assert pass_fail_xp(min_rank, max_rank, XP_PER_TIER) == expected

    def test_completion_split_like_tier_xp(self):
        primary, secondary = uuid4(), uuid4()
        allocation = completion_allocation(
            [DomainShare(primary, 60), DomainShare(secondary, 40)],
            XP_PER_TIER,
            Rank.F,
            Rank.S,
        )
        assert allocation.total == 163
        assert allocation.per_domain == {primary: 98, secondary: 65}
