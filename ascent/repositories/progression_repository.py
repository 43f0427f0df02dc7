"""Progression repositories: per-domain XP, the XP ledger and ranks."""

from collections import defaultdict
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from ascent.experience.ranks import RankRequirementRecord
from ascent.infrastructure.database.models import (
    AthleteRank,
    DomainProgress,
    RankRequirement,
    RankRequirementItem,
    XPTransaction,
)
from ascent.repositories.base import BaseRepository
from ascent.repositories.exceptions import EntityNotFoundError
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)

# Sources that belong to a submission's running balance
SUBMISSION_SOURCES = ("challenge", "reversal")


class DomainProgressRepository(BaseRepository[DomainProgress]):
    """Repository for cumulative XP per (athlete, domain)."""

    @property
    def model_class(self) -> type[DomainProgress]:
        return DomainProgress

    async def get_for_athlete_domain(
        self,
        athlete_id: UUID,
        domain_id: UUID,
        for_update: bool = False,
    ) -> DomainProgress | None:
        query = select(DomainProgress).where(
            DomainProgress.athlete_id == athlete_id,
            DomainProgress.domain_id == domain_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def lock_or_create(self, athlete_id: UUID, domain_id: UUID, at: datetime) -> DomainProgress:
        """Locked progress row for ``(athlete, domain)``, creating a zero row if absent.

        ``FOR UPDATE`` on a missing row locks nothing, so a missing row is
        inserted with ``ON CONFLICT DO NOTHING`` and selected again; concurrent
        first postings end up queued on the one row.
        """
        progress = await self.get_for_athlete_domain(athlete_id, domain_id, for_update=True)
        if progress is not None:
            return progress

        await self.session.execute(
            pg_insert(DomainProgress.__table__)
            .values(id=uuid4(), athlete_id=athlete_id, domain_id=domain_id, xp=0, level=0, updated_at=at)
            .on_conflict_do_nothing(constraint="uq_progress_athlete_domain")
        )
        progress = await self.get_for_athlete_domain(athlete_id, domain_id, for_update=True)
        if progress is None:
            raise EntityNotFoundError("DomainProgress", f"{athlete_id}/{domain_id}")
        return progress

    async def list_for_athlete(self, athlete_id: UUID, for_update: bool = False) -> list[DomainProgress]:
        query = (
            select(DomainProgress)
            .where(DomainProgress.athlete_id == athlete_id)
            .order_by(DomainProgress.domain_id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return list(result.scalars().all())


class XPTransactionRepository(BaseRepository[XPTransaction]):
    """Repository for the append-only XP ledger."""

    @property
    def model_class(self) -> type[XPTransaction]:
        return XPTransaction

    async def credited_for_submission(self, submission_id: UUID) -> dict[UUID, int]:
        """Net XP a submission currently holds in each domain."""
        query = (
            select(XPTransaction.domain_id, func.sum(XPTransaction.amount))
            .where(
                XPTransaction.source_id == submission_id,
                XPTransaction.source.in_(SUBMISSION_SOURCES),
            )
            .group_by(XPTransaction.domain_id)
        )
        result = await self.session.execute(query)
        return {domain_id: int(total or 0) for domain_id, total in result.all()}

    async def sum_by_domain(self, athlete_id: UUID) -> dict[UUID, int]:
        """Ledger balance per domain for one athlete."""
        query = (
            select(XPTransaction.domain_id, func.sum(XPTransaction.amount))
            .where(XPTransaction.athlete_id == athlete_id)
            .group_by(XPTransaction.domain_id)
        )
        result = await self.session.execute(query)
        return {domain_id: int(total or 0) for domain_id, total in result.all()}


class RankRequirementRepository(BaseRepository[RankRequirement]):
    """Repository for rank requirements and their items."""

    @property
    def model_class(self) -> type[RankRequirement]:
        return RankRequirement

    async def list_for_domain(self, domain_id: UUID) -> list[RankRequirementRecord]:
        """Active requirements of a domain, with their items."""
        result = await self.session.execute(
            select(RankRequirement)
            .where(RankRequirement.domain_id == domain_id, RankRequirement.is_active.is_(True))
            .order_by(RankRequirement.created_at, RankRequirement.id)
        )
        requirements = list(result.scalars().all())
        if not requirements:
            return []

        items_result = await self.session.execute(
            select(RankRequirementItem).where(
                RankRequirementItem.requirement_id.in_([r.id for r in requirements])
            )
        )
        items_by_requirement: dict[UUID, list[RankRequirementItem]] = defaultdict(list)
        for item in items_result.scalars().all():
            items_by_requirement[item.requirement_id].append(item)

        return [r.to_record(items_by_requirement[r.id]) for r in requirements]


class AthleteRankRepository(BaseRepository[AthleteRank]):
    """Repository for ranks an athlete currently holds."""

    @property
    def model_class(self) -> type[AthleteRank]:
        return AthleteRank

    async def list_held(self, athlete_id: UUID, domain_id: UUID) -> dict[UUID, UUID | None]:
        """Requirement id to the division each held rank was unlocked under."""
        result = await self.session.execute(
            select(AthleteRank.requirement_id, AthleteRank.division_id).where(
                AthleteRank.athlete_id == athlete_id,
                AthleteRank.domain_id == domain_id,
            )
        )
        return {requirement_id: division_id for requirement_id, division_id in result.all()}

    async def unlock(
        self,
        athlete_id: UUID,
        requirement: RankRequirementRecord,
        division_id: UUID | None,
        at: datetime,
    ) -> AthleteRank:
        rank = AthleteRank(
            id=uuid4(),
            athlete_id=athlete_id,
            requirement_id=requirement.id,
            domain_id=requirement.domain_id,
            division_id=division_id,
            unlocked_at=at,
        )
        return await self.create(rank)

    async def revoke(self, athlete_id: UUID, requirement_id: UUID) -> bool:
        result = await self.session.execute(
            delete(AthleteRank).where(
                AthleteRank.athlete_id == athlete_id,
                AthleteRank.requirement_id == requirement_id,
            )
        )
        return result.rowcount > 0


__all__ = [
    "AthleteRankRepository",
    "DomainProgressRepository",
    "RankRequirementRepository",
    "XPTransactionRepository",
]
