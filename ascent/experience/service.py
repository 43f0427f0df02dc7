"""Progression ledger: XP, levels and rank requirements per domain.

``ProgressionLedger`` works inside a caller's unit of work and never
commits; the submission workflow uses it so review state, ledger rows and
ranks land in one transaction. ``ExperienceService`` wraps it for the
administrative entry points that own their own transaction.
"""

from typing import Callable, Iterable
from uuid import UUID, uuid4

from ascent.config import EngineSettings, get_settings
from ascent.context import EngineContext, require_role
from ascent.experience.calculator import LevelTable, XPAllocation, format_level
from ascent.experience.ranks import best_tiers, evaluate
from ascent.experience.schemas import (
    DomainProgressResponse,
    ProgressionResult,
    RankChange,
    RankChangeType,
    ReconcileChange,
    ReconcileResult,
    XPSource,
)
from ascent.infrastructure.database.models import XPTransaction
from ascent.repositories.exceptions import EntityNotFoundError, LedgerError, ValidationError
from ascent.repositories.unit_of_work import UnitOfWork
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)


def _ordered(domain_ids: Iterable[UUID]) -> list[UUID]:
    # Fixed lock order across domains so concurrent writers cannot deadlock
    return sorted(set(domain_ids), key=str)


class ProgressionLedger:
    """Applies and reverses XP deltas against one unit of work."""

    def __init__(
        self,
        uow: UnitOfWork,
        settings: EngineSettings | None = None,
        level_table: LevelTable | None = None,
    ) -> None:
        self.uow = uow
        self.settings = settings or get_settings()
        self.levels = level_table or LevelTable.from_sublevel_costs(self.settings.xp_per_sublevel)

    async def apply(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        domain_id: UUID,
        xp_delta: int,
        source: XPSource = XPSource.CHALLENGE,
        source_id: UUID | None = None,
        note: str | None = None,
        division_id: UUID | None = None,
    ) -> ProgressionResult:
        """Credit XP, recompute the level and unlock newly satisfied ranks.

        Never revokes a rank.
        """
        return await self._post(
            ctx,
            athlete_id,
            domain_id,
            xp_delta,
            source=source,
            source_id=source_id,
            note=note,
            division_id=division_id,
            allow_revoke=False,
        )

    async def reverse(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        domain_id: UUID,
        xp_amount: int,
        source_id: UUID | None = None,
        note: str | None = None,
        division_id: UUID | None = None,
        exclude_submission_id: UUID | None = None,
    ) -> ProgressionResult:
        """Exact inverse of ``apply``: debit XP and revoke ranks no longer met.

        Raises:
            LedgerError: If the debit would take the domain below zero XP
        """
        if xp_amount < 0:
            raise ValidationError("Reversal amount must not be negative", field="xp_amount")
        return await self._post(
            ctx,
            athlete_id,
            domain_id,
            -xp_amount,
            source=XPSource.REVERSAL,
            source_id=source_id,
            note=note,
            division_id=division_id,
            allow_revoke=True,
            exclude_submission_id=exclude_submission_id,
        )

    async def settle_submission(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        submission_id: UUID,
        allocation: XPAllocation,
        domains: Iterable[UUID],
        division_id: UUID | None = None,
    ) -> list[ProgressionResult]:
        """Bring a submission's ledger balance in line with ``allocation``.

        Only the difference against what was already credited is posted, so
        replaying an approval never double-counts.
        """
        credited = await self.uow.transactions.credited_for_submission(submission_id)
        results: list[ProgressionResult] = []

        for domain_id in _ordered([*domains, *allocation.per_domain, *credited]):
            difference = allocation.amount_for(domain_id) - credited.get(domain_id, 0)
            if difference >= 0:
                result = await self.apply(
                    ctx,
                    athlete_id,
                    domain_id,
                    difference,
                    source_id=submission_id,
                    division_id=division_id,
                )
            else:
                result = await self.reverse(
                    ctx,
                    athlete_id,
                    domain_id,
                    -difference,
                    source_id=submission_id,
                    division_id=division_id,
                )
            results.append(result)

        return results

    async def reverse_submission(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        submission_id: UUID,
        domains: Iterable[UUID],
        division_id: UUID | None = None,
    ) -> list[ProgressionResult]:
        """Remove everything a submission earned, treating it as no longer approved."""
        credited = await self.uow.transactions.credited_for_submission(submission_id)
        results: list[ProgressionResult] = []

        for domain_id in _ordered([*domains, *credited]):
            results.append(
                await self.reverse(
                    ctx,
                    athlete_id,
                    domain_id,
                    credited.get(domain_id, 0),
                    source_id=submission_id,
                    division_id=division_id,
                    exclude_submission_id=submission_id,
                )
            )

        return results

    async def correct(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        domain_id: UUID,
        xp_delta: int,
        note: str,
    ) -> ProgressionResult:
        """Post a signed manual adjustment as an ``admin`` ledger row."""
        require_role(ctx, self.settings.admin_roles, "correct XP")
        if not note or not note.strip():
            raise ValidationError("A note is required for manual XP corrections", field="note")
        return await self.apply(
            ctx,
            athlete_id,
            domain_id,
            xp_delta,
            source=XPSource.ADMIN,
            note=note.strip(),
        )

    async def reconcile(self, ctx: EngineContext, athlete_id: UUID) -> ReconcileResult:
        """Reset stored XP and levels to the ledger balance of each domain."""
        require_role(ctx, self.settings.admin_roles, "reconcile XP")
        balances = await self.uow.transactions.sum_by_domain(athlete_id)
        rows = {row.domain_id: row for row in await self.uow.progress.list_for_athlete(athlete_id, for_update=True)}
        changes: list[ReconcileChange] = []

        for domain_id in _ordered([*balances, *rows]):
            expected = balances.get(domain_id, 0)
            if expected < 0:
                raise LedgerError(
                    "Ledger balance is negative",
                    athlete_id=str(athlete_id),
                    domain_id=str(domain_id),
                    balance=expected,
                )

            row = rows.get(domain_id) or await self.uow.progress.lock_or_create(athlete_id, domain_id, ctx.now)
            expected_level = self.levels.level_for(expected)
            if row.xp == expected and row.level == expected_level:
                continue

            changes.append(
                ReconcileChange(
                    domain_id=domain_id,
                    old_xp=row.xp,
                    new_xp=expected,
                    old_level=row.level,
                    new_level=expected_level,
                )
            )
            row.xp = expected
            row.level = expected_level
            row.updated_at = ctx.now

        logger.info(
            "xp_reconciled",
            athlete_id=str(athlete_id),
            domains_changed=len(changes),
            **ctx.log_context(),
        )
        return ReconcileResult(athlete_id=athlete_id, changes=changes)

    async def progress_for(self, athlete_id: UUID) -> list[DomainProgressResponse]:
        rows = await self.uow.progress.list_for_athlete(athlete_id)
        return [
            DomainProgressResponse(
                domain_id=row.domain_id,
                xp=row.xp,
                level=row.level,
                level_label=format_level(row.level),
                xp_to_next_level=self.levels.xp_to_next_level(row.xp),
            )
            for row in rows
        ]

    # ===========================================
    # INTERNALS
    # ===========================================

    async def _post(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        domain_id: UUID,
        xp_delta: int,
        source: XPSource,
        source_id: UUID | None,
        note: str | None,
        division_id: UUID | None,
        allow_revoke: bool,
        exclude_submission_id: UUID | None = None,
    ) -> ProgressionResult:
        # 1. Lock (or create) the progress row
        progress = await self.uow.progress.lock_or_create(athlete_id, domain_id, ctx.now)

        # 2. Compute the new balance
        old_xp = progress.xp
        old_level = progress.level
        new_xp = old_xp + xp_delta
        if new_xp < 0:
            logger.error(
                "xp_ledger_underflow",
                athlete_id=str(athlete_id),
                domain_id=str(domain_id),
                current_xp=old_xp,
                delta=xp_delta,
            )
            raise LedgerError(
                f"XP change of {xp_delta} would leave {new_xp} XP",
                athlete_id=str(athlete_id),
                domain_id=str(domain_id),
                current_xp=old_xp,
                delta=xp_delta,
            )

        # 3. Update stored XP and level together
        new_level = self.levels.level_for(new_xp)
        progress.xp = new_xp
        progress.level = new_level
        progress.updated_at = ctx.now

        # 4. Record the ledger row
        if xp_delta != 0:
            await self.uow.transactions.create(
                XPTransaction(
                    id=uuid4(),
                    athlete_id=athlete_id,
                    domain_id=domain_id,
                    amount=xp_delta,
                    source=source.value,
                    source_id=source_id,
                    note=note,
                    created_by=ctx.actor.user_id,
                    created_at=ctx.now,
                )
            )

        # 5. Re-evaluate rank requirements for the domain
        rank_changes = await self._evaluate_ranks(
            ctx,
            athlete_id,
            domain_id,
            division_id=division_id,
            allow_revoke=allow_revoke,
            exclude_submission_id=exclude_submission_id,
        )

        if xp_delta or rank_changes:
            logger.info(
                "xp_posted",
                athlete_id=str(athlete_id),
                domain_id=str(domain_id),
                source=source.value,
                delta=xp_delta,
                new_xp=new_xp,
                old_level=old_level,
                new_level=new_level,
                rank_changes=len(rank_changes),
                **ctx.log_context(),
            )

        return ProgressionResult(
            athlete_id=athlete_id,
            domain_id=domain_id,
            xp_delta=xp_delta,
            old_xp=old_xp,
            new_xp=new_xp,
            old_level=old_level,
            new_level=new_level,
            level_label=format_level(new_level),
            xp_to_next_level=self.levels.xp_to_next_level(new_xp),
            rank_changes=rank_changes,
        )

    async def _evaluate_ranks(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        domain_id: UUID,
        division_id: UUID | None,
        allow_revoke: bool,
        exclude_submission_id: UUID | None,
    ) -> list[RankChange]:
        requirements = await self.uow.rank_requirements.list_for_domain(domain_id)
        if not requirements:
            return []

        challenge_ids = {item.challenge_id for r in requirements for item in r.items}
        approved = await self.uow.submissions.list_approved_tiers(
            athlete_id,
            challenge_ids,
            exclude_submission_id=exclude_submission_id,
        )
        held = await self.uow.athlete_ranks.list_held(athlete_id, domain_id)
        evaluation = evaluate(
            requirements,
            best_tiers(approved),
            held,
            division_id=division_id,
            allow_revoke=allow_revoke,
        )

        changes: list[RankChange] = []
        for requirement in evaluation.to_unlock:
            await self.uow.athlete_ranks.unlock(athlete_id, requirement, division_id, ctx.now)
            changes.append(
                RankChange(
                    requirement_id=requirement.id,
                    name=requirement.name,
                    rank=requirement.rank.value if requirement.rank else None,
                    change=RankChangeType.UNLOCKED,
                )
            )
        for requirement in evaluation.to_revoke:
            await self.uow.athlete_ranks.revoke(athlete_id, requirement.id)
            changes.append(
                RankChange(
                    requirement_id=requirement.id,
                    name=requirement.name,
                    rank=requirement.rank.value if requirement.rank else None,
                    change=RankChangeType.REVOKED,
                )
            )
        return changes


class ExperienceService:
    """Administrative XP operations, each in its own transaction."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        settings: EngineSettings | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.settings = settings or get_settings()

    async def correct(
        self,
        ctx: EngineContext,
        athlete_id: UUID,
        domain_id: UUID,
        xp_delta: int,
        note: str,
    ) -> ProgressionResult:
        """Post a manual adjustment to the ledger."""
        async with self.uow_factory() as uow:
            if await uow.athletes.get_by_id(athlete_id) is None:
                raise EntityNotFoundError("Athlete", str(athlete_id))

            result = await ProgressionLedger(uow, self.settings).correct(
                ctx, athlete_id, domain_id, xp_delta, note
            )
            await uow.commit()

        logger.info(
            "xp_corrected",
            athlete_id=str(athlete_id),
            domain_id=str(domain_id),
            delta=xp_delta,
            **ctx.log_context(),
        )
        return result

    async def reconcile(self, ctx: EngineContext, athlete_id: UUID) -> ReconcileResult:
        async with self.uow_factory() as uow:
            if await uow.athletes.get_by_id(athlete_id) is None:
                raise EntityNotFoundError("Athlete", str(athlete_id))

            result = await ProgressionLedger(uow, self.settings).reconcile(ctx, athlete_id)
            await uow.commit()
        return result

    async def get_progress(self, athlete_id: UUID) -> list[DomainProgressResponse]:
        async with self.uow_factory() as uow:
            return await ProgressionLedger(uow, self.settings).progress_for(athlete_id)


__all__ = [
    "ExperienceService",
    "ProgressionLedger",
]
