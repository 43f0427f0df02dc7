"""Pydantic v2 schemas for the progression ledger."""

from enum import Enum
from uuid import UUID

from pydantic import Field

from ascent.shared.schemas.base import BaseSchema


class RankChangeType(str, Enum):
    UNLOCKED = "unlocked"
    REVOKED = "revoked"


class XPSource(str, Enum):
    """Origins of ledger transactions."""

    CHALLENGE = "challenge"
    REVERSAL = "reversal"
    ADMIN = "admin"


class RankChange(BaseSchema):
    """A rank unlocked or revoked by an XP change."""

    requirement_id: UUID
    name: str
    rank: str | None = None
    change: RankChangeType


class ProgressionResult(BaseSchema):
    """Outcome of applying or reversing an XP delta in one domain."""

    athlete_id: UUID
    domain_id: UUID
    xp_delta: int
    old_xp: int
    new_xp: int
    old_level: int
    new_level: int
    level_label: str
    xp_to_next_level: int
    rank_changes: list[RankChange] = Field(default_factory=list)

    @property
    def level_up(self) -> bool:
        return self.new_level > self.old_level

    @property
    def unlocked(self) -> list[RankChange]:
        return [c for c in self.rank_changes if c.change == RankChangeType.UNLOCKED]

    @property
    def revoked(self) -> list[RankChange]:
        return [c for c in self.rank_changes if c.change == RankChangeType.REVOKED]


class ReconcileChange(BaseSchema):
    """A domain whose stored XP disagreed with its ledger."""

    domain_id: UUID
    old_xp: int
    new_xp: int
    old_level: int
    new_level: int


class ReconcileResult(BaseSchema):
    athlete_id: UUID
    changes: list[ReconcileChange] = Field(default_factory=list)


class DomainProgressResponse(BaseSchema):
    """XP and level in one domain, for display."""

    domain_id: UUID
    xp: int
    level: int
    level_label: str
    xp_to_next_level: int
