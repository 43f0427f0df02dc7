"""Submission workflow: create/resubmit, review, delete and reopen.

Each public method runs in one unit of work. The submission row is locked
for the whole operation, so concurrent reviews of the same submission are
serialised and the progression ledger sees exactly one approval.
Notifications are published only after the transaction commits.
"""

import math
from dataclasses import dataclass, field
from typing import Callable
from uuid import UUID, uuid4

from ascent.config import EngineSettings, get_settings
from ascent.context import EngineContext, require_role
from ascent.experience.calculator import LevelTable, calculate_allocation, completion_allocation
from ascent.experience.schemas import ProgressionResult, RankChangeType
from ascent.experience.service import ProgressionLedger
from ascent.grading.divisions import match_division
from ascent.grading.ladder import LadderResult, resolve_for_match
from ascent.grading.types import SubmissionStatus
from ascent.infrastructure.database.models import Athlete, Challenge, ChallengeSubmission
from ascent.notifications.producers import NotificationEvent, NotificationProducer
from ascent.repositories.exceptions import ConcurrencyError, EntityNotFoundError, RateLimitError, ValidationError
from ascent.repositories.unit_of_work import UnitOfWork
from ascent.shared.utils.logging import get_logger
from ascent.submissions.schemas import (
    CreateSubmissionRequest,
    ReviewSubmissionRequest,
    SubmissionResponse,
)
from ascent.submissions.state_machine import (
    SubmissionStateError,
    can_resubmit,
    validate_reopen,
    validate_transition,
)

logger = get_logger(__name__)


@dataclass
class SubmissionOutcome:
    """Result of a submission operation."""

    submission: SubmissionResponse
    ladder: LadderResult | None = None
    progression: list[ProgressionResult] = field(default_factory=list)
    is_resubmission: bool = False
    changed: bool = True


@dataclass
class DeleteOutcome:
    submission_id: UUID
    reversed: list[ProgressionResult] = field(default_factory=list)


class SubmissionService:
    """Drives submissions through review and into the progression ledger."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        settings: EngineSettings | None = None,
        notifier: NotificationProducer | None = None,
        level_table: LevelTable | None = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.settings = settings or get_settings()
        self.notifier = notifier or NotificationProducer()
        self.level_table = level_table

    # ===========================================
    # CREATE / RESUBMIT
    # ===========================================

    async def submit(self, ctx: EngineContext, request: CreateSubmissionRequest) -> SubmissionOutcome:
        """Create the athlete's submission for a challenge, or resubmit over it.

        Raises:
            EntityNotFoundError: Unknown athlete or challenge
            ValidationError: Inactive challenge or proof type not accepted
            SubmissionStateError: The existing submission was already reviewed
            RateLimitError: Resubmitted inside the cooldown window
        """
        events: list[NotificationEvent] = []

        async with self.uow_factory() as uow:
            athlete = await self._get_athlete(uow, request.athlete_id)
            challenge = await self._get_challenge(uow, request.challenge_id)

            if not challenge.is_active:
                raise ValidationError("Challenge is not accepting submissions", field="challenge_id")
            if not challenge.allows_proof(request.proof):
                raise ValidationError(
                    f"Proof type '{request.proof.value}' is not accepted for this challenge",
                    field="proof_type",
                )

            submission = await uow.submissions.get_by_athlete_and_challenge(
                athlete.id, challenge.id, for_update=True
            )
            is_resubmission = submission is not None

            if submission is not None:
                self._check_resubmission(ctx, submission)
                await uow.submission_history.archive(submission, ctx.now)
                self._write_proof(submission, request)
                self._reset_for_review(submission)
                submission.submitted_by = ctx.actor.user_id
                submission.submitted_at = ctx.now
                submission.version += 1
            else:
                submission = ChallengeSubmission(
                    id=uuid4(),
                    athlete_id=athlete.id,
                    challenge_id=challenge.id,
                    submitted_by=ctx.actor.user_id,
                    status=SubmissionStatus.PENDING.value,
                    claimed_tiers=[],
                    xp_awarded=0,
                    auto_approved=False,
                    version=1,
                    submitted_at=ctx.now,
                )
                self._write_proof(submission, request)
                await uow.submissions.create(submission)

            ladder: LadderResult | None = None
            progression: list[ProgressionResult] = []
            if ctx.actor.has_role(self.settings.auto_approve_roles):
                ladder, progression = await self._approve(uow, ctx, submission, athlete, challenge, None)
                submission.auto_approved = True
                events = self._approval_events(ctx, athlete, challenge, submission, progression)

            await uow.commit()
            view = SubmissionResponse.model_validate(submission)

        logger.info(
            "submission_received",
            submission_id=str(view.id),
            athlete_id=str(view.athlete_id),
            challenge_id=str(view.challenge_id),
            resubmission=is_resubmission,
            auto_approved=view.auto_approved,
            **ctx.log_context(),
        )
        await self.notifier.publish(events)
        return SubmissionOutcome(
            submission=view,
            ladder=ladder,
            progression=progression,
            is_resubmission=is_resubmission,
        )

    # ===========================================
    # REVIEW
    # ===========================================

    async def review(
        self,
        ctx: EngineContext,
        submission_id: UUID,
        request: ReviewSubmissionRequest,
    ) -> SubmissionOutcome:
        """Approve, reject or request changes on a pending submission.

        Approving an already approved submission with no value or the same
        value changes nothing; a different value must go through ``reopen``.
        """
        require_role(ctx, self.settings.privileged_roles, "review submissions")
        decision = request.decision
        events: list[NotificationEvent] = []

        async with self.uow_factory() as uow:
            submission = await uow.submissions.get_for_update(submission_id)
            if submission is None:
                raise EntityNotFoundError("ChallengeSubmission", str(submission_id))

            if request.expected_version is not None and request.expected_version != submission.version:
                raise ConcurrencyError(
                    "ChallengeSubmission",
                    str(submission_id),
                    expected_version=request.expected_version,
                    actual_version=submission.version,
                )

            current = submission.state
            if current is SubmissionStatus.APPROVED and decision is SubmissionStatus.APPROVED:
                if request.achieved_value is None or request.achieved_value == submission.achieved_value:
                    logger.info(
                        "submission_already_approved",
                        submission_id=str(submission_id),
                        **ctx.log_context(),
                    )
                    return SubmissionOutcome(
                        submission=SubmissionResponse.model_validate(submission),
                        changed=False,
                    )
                raise SubmissionStateError(
                    current,
                    decision,
                    "Submission is already approved with a different value; reopen it first",
                )

            validate_transition(current, decision)
            submission.review_notes = request.review_notes
            athlete = await self._get_athlete(uow, submission.athlete_id)
            challenge = await self._get_challenge(uow, submission.challenge_id)

            ladder: LadderResult | None = None
            progression: list[ProgressionResult] = []
            if decision is SubmissionStatus.APPROVED:
                ladder, progression = await self._approve(
                    uow, ctx, submission, athlete, challenge, request.achieved_value
                )
                events = self._approval_events(ctx, athlete, challenge, submission, progression)
            else:
                # Tier data stays in place for the audit trail
                submission.status = decision.value
                submission.reviewed_by = ctx.actor.user_id
                submission.reviewed_at = ctx.now
                events = [self._event(f"submission.{decision.value}", ctx, athlete, challenge, submission)]

            submission.version += 1
            await uow.commit()
            view = SubmissionResponse.model_validate(submission)

        logger.info(
            "submission_reviewed",
            submission_id=str(submission_id),
            decision=decision.value,
            claimed_tiers=view.claimed_tiers,
            xp_awarded=view.xp_awarded,
            **ctx.log_context(),
        )
        await self.notifier.publish(events)
        return SubmissionOutcome(submission=view, ladder=ladder, progression=progression)

    # ===========================================
    # DELETE / REOPEN
    # ===========================================

    async def delete(self, ctx: EngineContext, submission_id: UUID) -> DeleteOutcome:
        """Remove a submission, reversing its progression first if it was approved.

        A failed reversal aborts the delete and the row stays in place. Ranks
        revoked by the reversal are notified after commit.
        """
        async with self.uow_factory() as uow:
            submission = await uow.submissions.get_for_update(submission_id)
            if submission is None:
                raise EntityNotFoundError("ChallengeSubmission", str(submission_id))

            reversed_results: list[ProgressionResult] = []
            events: list[NotificationEvent] = []
            if submission.state is SubmissionStatus.APPROVED:
                reversed_results = await self._reverse(uow, ctx, submission)
                athlete = await self._get_athlete(uow, submission.athlete_id)
                events = self._rank_events(ctx, athlete, reversed_results)

            await uow.submissions.delete(submission.id)
            await uow.commit()

        logger.info(
            "submission_deleted",
            submission_id=str(submission_id),
            reversed_domains=len(reversed_results),
            **ctx.log_context(),
        )
        await self.notifier.publish(events)
        return DeleteOutcome(submission_id=submission_id, reversed=reversed_results)

    async def reopen(
        self,
        ctx: EngineContext,
        submission_id: UUID,
        notes: str | None = None,
    ) -> SubmissionOutcome:
        """Send an approved or rejected submission back to pending (admin only)."""
        require_role(ctx, self.settings.admin_roles, "reopen submissions")

        async with self.uow_factory() as uow:
            submission = await uow.submissions.get_for_update(submission_id)
            if submission is None:
                raise EntityNotFoundError("ChallengeSubmission", str(submission_id))

            validate_reopen(submission.state)
            progression: list[ProgressionResult] = []
            if submission.state is SubmissionStatus.APPROVED:
                progression = await self._reverse(uow, ctx, submission)
                submission.xp_awarded = 0

            athlete = await self._get_athlete(uow, submission.athlete_id)
            challenge = await self._get_challenge(uow, submission.challenge_id)

            submission.status = SubmissionStatus.PENDING.value
            submission.review_notes = notes
            submission.reviewed_by = None
            submission.reviewed_at = None
            submission.version += 1
            events = [self._event("submission.reopened", ctx, athlete, challenge, submission)]
            events.extend(self._rank_events(ctx, athlete, progression))

            await uow.commit()
            view = SubmissionResponse.model_validate(submission)

        logger.info("submission_reopened", submission_id=str(submission_id), **ctx.log_context())
        await self.notifier.publish(events)
        return SubmissionOutcome(submission=view, progression=progression)

    # ===========================================
    # INTERNALS
    # ===========================================

    async def _approve(
        self,
        uow: UnitOfWork,
        ctx: EngineContext,
        submission: ChallengeSubmission,
        athlete: Athlete,
        challenge: Challenge,
        achieved_value: float | None,
    ) -> tuple[LadderResult, list[ProgressionResult]]:
        # 1. Reviewer value wins over the cached one
        value = achieved_value if achieved_value is not None else submission.achieved_value

        # 2. Match the division at approval time and resolve the ladder
        divisions = await uow.divisions.list_records()
        match = match_division(divisions, athlete.date_of_birth, athlete.gender, ctx.today)
        grades = await uow.grades.list_for_challenge(challenge.id, match.division_id) if match.matched else []
        ladder = resolve_for_match(value, grades, challenge.grading, match)

        # 3. Work out the XP: flat for a pass/fail completion, per tier otherwise
        shares = challenge.domain_shares()
        if challenge.grading.is_pass_fail:
            allocation = completion_allocation(
                shares,
                self.settings.xp_per_tier,
                challenge.minimum_rank,
                challenge.maximum_rank,
            )
        else:
            allocation = calculate_allocation(
                ladder.claimed_tiers,
                shares,
                self.settings.xp_per_tier,
                challenge.minimum_rank,
            )

        # 4. Commit tier and value onto the row
        submission.achieved_value = value
        submission.division_id = match.division_id
        submission.claimed_tiers = [tier.value for tier in ladder.claimed_tiers]
        submission.achieved_rank = ladder.highest_tier.value if ladder.highest_tier else None
        submission.xp_awarded = allocation.total
        submission.status = SubmissionStatus.APPROVED.value
        submission.reviewed_by = ctx.actor.user_id
        submission.reviewed_at = ctx.now
        # Rank evaluation reads approved tiers back from the database
        await uow.flush()

        # 5. Post the difference to the ledger
        ledger = ProgressionLedger(uow, self.settings, self.level_table)
        progression = await ledger.settle_submission(
            ctx,
            athlete.id,
            submission.id,
            allocation,
            [share.domain_id for share in shares],
            division_id=match.division_id,
        )
        return ladder, progression

    async def _reverse(
        self,
        uow: UnitOfWork,
        ctx: EngineContext,
        submission: ChallengeSubmission,
    ) -> list[ProgressionResult]:
        challenge = await self._get_challenge(uow, submission.challenge_id)
        ledger = ProgressionLedger(uow, self.settings, self.level_table)
        return await ledger.reverse_submission(
            ctx,
            submission.athlete_id,
            submission.id,
            [share.domain_id for share in challenge.domain_shares()],
            division_id=submission.division_id,
        )

    def _check_resubmission(self, ctx: EngineContext, submission: ChallengeSubmission) -> None:
        if not can_resubmit(submission.state):
            raise SubmissionStateError(
                submission.state,
                SubmissionStatus.PENDING,
                f"A {submission.state.value} submission cannot be resubmitted",
            )
        if ctx.actor.has_role(self.settings.privileged_roles):
            return

        cooldown_seconds = self.settings.resubmission_cooldown_hours * 3600
        elapsed = (ctx.now - submission.submitted_at).total_seconds()
        if elapsed < cooldown_seconds:
            raise RateLimitError(retry_after_hours=max(1, math.ceil((cooldown_seconds - elapsed) / 3600)))

    @staticmethod
    def _write_proof(submission: ChallengeSubmission, request: CreateSubmissionRequest) -> None:
        submission.proof_type = request.proof.value
        for name, value in request.proof_fields().items():
            setattr(submission, name, value)
        submission.achieved_value = request.achieved_value
        submission.is_public = request.is_public
        submission.hide_exact_value = request.hide_exact_value

    @staticmethod
    def _reset_for_review(submission: ChallengeSubmission) -> None:
        submission.status = SubmissionStatus.PENDING.value
        submission.claimed_tiers = []
        submission.achieved_rank = None
        submission.division_id = None
        submission.xp_awarded = 0
        submission.auto_approved = False
        submission.review_notes = None
        submission.reviewed_by = None
        submission.reviewed_at = None

    @staticmethod
    async def _get_athlete(uow: UnitOfWork, athlete_id: UUID) -> Athlete:
        athlete = await uow.athletes.get_by_id(athlete_id)
        if athlete is None:
            raise EntityNotFoundError("Athlete", str(athlete_id))
        return athlete

    @staticmethod
    async def _get_challenge(uow: UnitOfWork, challenge_id: UUID) -> Challenge:
        challenge = await uow.challenges.get_by_id(challenge_id)
        if challenge is None:
            raise EntityNotFoundError("Challenge", str(challenge_id))
        return challenge

    # ===========================================
    # NOTIFICATION EVENTS
    # ===========================================

    @staticmethod
    def _recipients(athlete: Athlete) -> tuple[UUID, ...]:
        return tuple(r for r in (athlete.user_id, athlete.parent_id) if r is not None)

    def _event(
        self,
        event_type: str,
        ctx: EngineContext,
        athlete: Athlete,
        challenge: Challenge,
        submission: ChallengeSubmission,
    ) -> NotificationEvent:
        tier = submission.achieved_rank
        return NotificationEvent(
            event_type=event_type,
            recipients=self._recipients(athlete),
            data={
                "originator_id": str(ctx.actor.user_id),
                "submission_id": str(submission.id),
                "athlete_id": str(athlete.id),
                "challenge_id": str(challenge.id),
                "challenge_name": challenge.name,
                "tier": tier,
                "tier_suffix": f" at tier {tier}" if tier else "",
                "xp_awarded": submission.xp_awarded,
                "body": submission.review_notes,
            },
        )

    def _rank_events(
        self,
        ctx: EngineContext,
        athlete: Athlete,
        progression: list[ProgressionResult],
    ) -> list[NotificationEvent]:
        events: list[NotificationEvent] = []
        for result in progression:
            if result.level_up:
                events.append(
                    NotificationEvent(
                        event_type="progress.level_up",
                        recipients=self._recipients(athlete),
                        data={
                            "athlete_id": str(athlete.id),
                            "domain_id": str(result.domain_id),
                            "level": result.new_level,
                            "level_label": result.level_label,
                        },
                    )
                )
            for change in result.rank_changes:
                kind = "unlocked" if change.change == RankChangeType.UNLOCKED else "revoked"
                events.append(
                    NotificationEvent(
                        event_type=f"rank.{kind}",
                        recipients=self._recipients(athlete),
                        data={
                            "athlete_id": str(athlete.id),
                            "domain_id": str(result.domain_id),
                            "requirement_id": str(change.requirement_id),
                            "rank_name": change.name,
                            "rank": change.rank,
                        },
                    )
                )
        return events

    def _approval_events(
        self,
        ctx: EngineContext,
        athlete: Athlete,
        challenge: Challenge,
        submission: ChallengeSubmission,
        progression: list[ProgressionResult],
    ) -> list[NotificationEvent]:
        return [
            self._event("submission.approved", ctx, athlete, challenge, submission),
            *self._rank_events(ctx, athlete, progression),
        ]


__all__ = [
    "DeleteOutcome",
    "SubmissionOutcome",
    "SubmissionService",
]
