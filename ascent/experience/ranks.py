"""Rank requirement evaluation.

A rank requirement is an admin-authored set of ``(challenge, minimum tier)``
pairs within a domain. An athlete holds the rank exactly when every pair is
met by a currently approved submission. Evaluation here is pure; the ledger
decides when unlocks and revocations are written.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping
from uuid import UUID

from ascent.grading.types import Rank


@dataclass(frozen=True)
class RequirementItem:
    challenge_id: UUID
    minimum_tier: Rank


@dataclass(frozen=True)
class RankRequirementRecord:
    """Flat view of a rank requirement and its items."""

    id: UUID
    domain_id: UUID
    name: str
    rank: Rank | None = None
    division_id: UUID | None = None
    items: tuple[RequirementItem, ...] = field(default_factory=tuple)

    def applies_to(self, division_id: UUID | None) -> bool:
        """Division-specific requirements only apply to athletes in that division."""
        return self.division_id is None or self.division_id == division_id


@dataclass(frozen=True)
class RankEvaluation:
    """Requirements to unlock and to revoke after an evaluation pass."""

    satisfied: frozenset[UUID]
    to_unlock: tuple[RankRequirementRecord, ...]
    to_revoke: tuple[RankRequirementRecord, ...]


def best_tiers(approved: Iterable[tuple[UUID, Rank | None]]) -> dict[UUID, Rank]:
    """Hardest approved tier per challenge, ignoring ungraded completions."""
    best: dict[UUID, Rank] = {}
    for challenge_id, tier in approved:
        if tier is None:
            continue
        current = best.get(challenge_id)
        if current is None or tier > current:
            best[challenge_id] = tier
    return best


def is_satisfied(requirement: RankRequirementRecord, tiers: Mapping[UUID, Rank]) -> bool:
    """Every item met; a requirement with no items never unlocks."""
    if not requirement.items:
        return False
    for item in requirement.items:
        achieved = tiers.get(item.challenge_id)
        if achieved is None or achieved < item.minimum_tier:
            return False
    return True


def evaluate(
    requirements: Iterable[RankRequirementRecord],
    tiers: Mapping[UUID, Rank],
    held: Mapping[UUID, UUID | None],
    division_id: UUID | None = None,
    allow_revoke: bool = False,
) -> RankEvaluation:
    """Compare requirement satisfaction against what the athlete already holds.

    Args:
        requirements: Active requirements of one domain
        tiers: Hardest approved tier per challenge
        held: Requirement id to the division it was unlocked under
        division_id: The athlete's division now, used only for new unlocks
        allow_revoke: Report held ranks whose items are no longer met; the
            ledger sets this on the reversal path

    A held rank is judged against the division it was unlocked under, so a
    change of division on its own never revokes it.
    """
    satisfied: set[UUID] = set()
    to_unlock: list[RankRequirementRecord] = []
    to_revoke: list[RankRequirementRecord] = []

    for requirement in requirements:
        met = is_satisfied(requirement, tiers)
        if requirement.id in held:
            if met and requirement.applies_to(held[requirement.id]):
                satisfied.add(requirement.id)
            elif allow_revoke:
                to_revoke.append(requirement)
        elif met and requirement.applies_to(division_id):
            satisfied.add(requirement.id)
            to_unlock.append(requirement)

    return RankEvaluation(
        satisfied=frozenset(satisfied),
        to_unlock=tuple(to_unlock),
        to_revoke=tuple(to_revoke),
    )


__all__ = [
    "RankEvaluation",
    "RankRequirementRecord",
    "RequirementItem",
    "best_tiers",
    "evaluate",
    "is_satisfied",
]
