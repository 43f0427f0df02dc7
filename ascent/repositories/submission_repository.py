"""Submission repositories.

One ``ChallengeSubmission`` row per (athlete, challenge), enforced by a
unique constraint; prior versions of a resubmitted row are archived in
``submission_history``.
"""

from datetime import datetime
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ascent.grading.types import Rank, SubmissionStatus, parse_rank
from ascent.infrastructure.database.models import ChallengeSubmission, SubmissionHistory
from ascent.repositories.base import BaseRepository
from ascent.repositories.exceptions import DuplicateEntityError
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)


class SubmissionRepository(BaseRepository[ChallengeSubmission]):
    """Repository for challenge submissions."""

    @property
    def model_class(self) -> type[ChallengeSubmission]:
        return ChallengeSubmission

    async def create(self, entity: ChallengeSubmission) -> ChallengeSubmission:
        """Insert a submission, mapping the uniqueness race to a duplicate error."""
        self.session.add(entity)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "duplicate_submission",
                athlete_id=str(entity.athlete_id),
                challenge_id=str(entity.challenge_id),
            )
            raise DuplicateEntityError(
                "ChallengeSubmission",
                "athlete_id,challenge_id",
                f"{entity.athlete_id},{entity.challenge_id}",
            ) from e
        return entity

    async def get_by_athlete_and_challenge(
        self,
        athlete_id: UUID,
        challenge_id: UUID,
        for_update: bool = False,
    ) -> ChallengeSubmission | None:
        query = select(ChallengeSubmission).where(
            ChallengeSubmission.athlete_id == athlete_id,
            ChallengeSubmission.challenge_id == challenge_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_approved_tiers(
        self,
        athlete_id: UUID,
        challenge_ids: Iterable[UUID],
        exclude_submission_id: UUID | None = None,
    ) -> list[tuple[UUID, Rank | None]]:
        """Highest tier of each approved submission on the given challenges."""
        ids = list(challenge_ids)
        if not ids:
            return []

        query = select(ChallengeSubmission.challenge_id, ChallengeSubmission.achieved_rank).where(
            ChallengeSubmission.athlete_id == athlete_id,
            ChallengeSubmission.challenge_id.in_(ids),
            ChallengeSubmission.status == SubmissionStatus.APPROVED.value,
        )
        if exclude_submission_id is not None:
            query = query.where(ChallengeSubmission.id != exclude_submission_id)

        result = await self.session.execute(query)
        return [
            (challenge_id, parse_rank(rank) if rank else None)
            for challenge_id, rank in result.all()
        ]


class SubmissionHistoryRepository(BaseRepository[SubmissionHistory]):
    """Repository for archived submission versions."""

    @property
    def model_class(self) -> type[SubmissionHistory]:
        return SubmissionHistory

    async def next_version(self, submission_id: UUID) -> int:
        query = select(func.coalesce(func.max(SubmissionHistory.version), 0)).where(
            SubmissionHistory.submission_id == submission_id
        )
        result = await self.session.execute(query)
        return int(result.scalar_one()) + 1

    async def archive(self, submission: ChallengeSubmission, archived_at: datetime) -> SubmissionHistory:
        """Snapshot the submission's current proof and review fields."""
        entry = SubmissionHistory(
            id=uuid4(),
            submission_id=submission.id,
            version=await self.next_version(submission.id),
            proof_type=submission.proof_type,
            video_url=submission.video_url,
            image_url=submission.image_url,
            notes=submission.notes,
            achieved_value=submission.achieved_value,
            status=submission.status,
            review_notes=submission.review_notes,
            reviewed_by=submission.reviewed_by,
            submitted_at=submission.submitted_at,
            reviewed_at=submission.reviewed_at,
            archived_at=archived_at,
        )
        return await self.create(entry)


__all__ = [
    "SubmissionHistoryRepository",
    "SubmissionRepository",
]
