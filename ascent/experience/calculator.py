"""XP calculation engine: stateless, deterministic.

XP comes only from approved challenge tiers, or a flat amount for pass/fail
completions. Levels are a pure function of cumulative XP through a strictly
increasing threshold table, so level is never stored independently of XP.

Level numbers run 0..69 and are displayed as letter + sublevel:

| Letter | Levels | Example  |
|--------|--------|----------|
| F      | 0-9    | F7 = 7   |
| E      | 10-19  | E3 = 13  |
| D      | 20-29  | D5 = 25  |
| C      | 30-39  | C7 = 37  |
| B      | 40-49  | B2 = 42  |
| A      | 50-59  | A0 = 50  |
| S      | 60-69  | S9 = 69  |
"""

import math
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Final, Iterable, Mapping, Sequence
from uuid import UUID

from ascent.grading.types import RANK_ORDER, Rank

SUBLEVELS_PER_RANK: Final[int] = 10
MAX_LEVEL: Final[int] = len(RANK_ORDER) * SUBLEVELS_PER_RANK - 1


@dataclass(frozen=True)
class LevelTable:
    """Cumulative XP cutoffs; ``cutoffs[i]`` is the XP needed to reach level i."""

    cutoffs: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.cutoffs:
            raise ValueError("Threshold table must not be empty")
        if self.cutoffs[0] != 0:
            raise ValueError("Threshold table must start at 0 XP")
        for previous, current in zip(self.cutoffs, self.cutoffs[1:]):
            if current <= previous:
                raise ValueError(
                    f"Threshold table must be strictly increasing ({previous} then {current})"
                )

    @classmethod
    def from_sublevel_costs(cls, xp_per_sublevel: Mapping[Rank, int]) -> "LevelTable":
        """Build the default table: each sublevel inside a letter costs that letter's rate."""
        cutoffs: list[int] = []
        total = 0
        for rank in RANK_ORDER:
            for _ in range(SUBLEVELS_PER_RANK):
                cutoffs.append(total)
                total += xp_per_sublevel[rank]
        return cls(tuple(cutoffs))

    @property
    def max_level(self) -> int:
        return len(self.cutoffs) - 1

    def level_for(self, xp: int) -> int:
        """Greatest level whose cutoff does not exceed ``xp``."""
        if xp < 0:
            raise ValueError(f"XP cannot be negative: {xp}")
        return bisect_right(self.cutoffs, xp) - 1

    def cutoff(self, level: int) -> int:
        return self.cutoffs[max(0, min(level, self.max_level))]

    def xp_to_next_level(self, xp: int) -> int:
        """XP still missing for the next level; 0 at the top of the table."""
        level = self.level_for(xp)
        if level >= self.max_level:
            return 0
        return self.cutoffs[level + 1] - xp


def to_numeric_level(letter: Rank, sublevel: int) -> int:
    """C7 → 37."""
    if not 0 <= sublevel < SUBLEVELS_PER_RANK:
        raise ValueError(f"Sublevel must be 0-9, got {sublevel}")
    return letter.position * SUBLEVELS_PER_RANK + sublevel


def from_numeric_level(numeric: int) -> tuple[Rank, int]:
    """37 → (C, 7). Values outside 0..69 are clamped."""
    clamped = max(0, min(MAX_LEVEL, int(numeric)))
    return RANK_ORDER[clamped // SUBLEVELS_PER_RANK], clamped % SUBLEVELS_PER_RANK


def format_level(numeric: int) -> str:
    letter, sublevel = from_numeric_level(numeric)
    return f"{letter.value}{sublevel}"


def tiers_worth_xp(claimed_tiers: Iterable[Rank], min_rank: Rank = Rank.F) -> list[Rank]:
    """Claimed tiers that earn XP: those at or above the challenge's minimum rank."""
    return [tier for tier in claimed_tiers if tier >= min_rank]


def tier_xp(
    claimed_tiers: Iterable[Rank],
    xp_per_tier: Mapping[Rank, int],
    min_rank: Rank = Rank.F,
) -> int:
    """Total XP for a set of claimed tiers.

    The ladder is nested, so this equals the XP of every tier up to and
    including the highest one claimed.
    """
    return sum(xp_per_tier[tier] for tier in tiers_worth_xp(claimed_tiers, min_rank))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def pass_fail_xp(min_rank: Rank, max_rank: Rank, xp_per_tier: Mapping[Rank, int]) -> int:
    """Flat XP for completing a pass/fail challenge: the midpoint of its rank range.

    Example:
        >>> pass_fail_xp(Rank.F, Rank.S, {Rank.F: 25, Rank.S: 300})
        163
    """
    return round_half_up((xp_per_tier[min_rank] + xp_per_tier[max_rank]) / 2)


@dataclass(frozen=True)
class DomainShare:
    """Percentage of a challenge's XP credited to one domain."""

    domain_id: UUID
    percent: int


@dataclass(frozen=True)
class XPAllocation:
    """XP owed by one submission, split per domain."""

    total: int
    per_domain: dict[UUID, int] = field(default_factory=dict)

    def amount_for(self, domain_id: UUID) -> int:
        return self.per_domain.get(domain_id, 0)


NO_XP: Final[XPAllocation] = XPAllocation(total=0)


def split_xp(total: int, shares: Sequence[DomainShare]) -> dict[UUID, int]:
    """Distribute ``total`` over domains, rounding each share half-up.

    A domain listed twice receives the sum of its shares.
    """
    per_domain: dict[UUID, int] = {}
    for share in shares:
        if share.percent <= 0:
            continue
        amount = round_half_up(total * share.percent / 100)
        per_domain[share.domain_id] = per_domain.get(share.domain_id, 0) + amount
    return per_domain


def calculate_allocation(
    claimed_tiers: Iterable[Rank],
    shares: Sequence[DomainShare],
    xp_per_tier: Mapping[Rank, int],
    min_rank: Rank = Rank.F,
) -> XPAllocation:
    """XP a submission is worth given its claimed tiers.

    Pure function, no side effects, no DB access.
    """
    total = tier_xp(claimed_tiers, xp_per_tier, min_rank)
    if total == 0:
        return NO_XP
    return XPAllocation(total=total, per_domain=split_xp(total, shares))


def completion_allocation(
    shares: Sequence[DomainShare],
    xp_per_tier: Mapping[Rank, int],
    min_rank: Rank,
    max_rank: Rank,
) -> XPAllocation:
    """XP an approved pass/fail completion is worth, split like tier XP."""
    total = pass_fail_xp(min_rank, max_rank, xp_per_tier)
    if total == 0:
        return NO_XP
    return XPAllocation(total=total, per_domain=split_xp(total, shares))


__all__ = [
    "DomainShare",
    "LevelTable",
    "MAX_LEVEL",
    "NO_XP",
    "SUBLEVELS_PER_RANK",
    "XPAllocation",
    "calculate_allocation",
    "completion_allocation",
    "format_level",
    "from_numeric_level",
    "pass_fail_xp",
    "round_half_up",
    "split_xp",
    "tier_xp",
    "tiers_worth_xp",
    "to_numeric_level",
]
