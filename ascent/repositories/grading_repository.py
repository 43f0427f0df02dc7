"""Grading catalogue repositories.

Athletes, divisions, challenges and their per-division grade ladders.
Reads return flat records so the matcher and resolver stay storage-free.
"""

from uuid import UUID

from sqlalchemy import select

from ascent.grading.divisions import DivisionRecord
from ascent.grading.ladder import GradeRecord
from ascent.infrastructure.database.models import Athlete, Challenge, ChallengeGrade, Division
from ascent.repositories.base import BaseRepository
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)


class AthleteRepository(BaseRepository[Athlete]):
    """Repository for athlete profiles."""

    @property
    def model_class(self) -> type[Athlete]:
        return Athlete


class DivisionRepository(BaseRepository[Division]):
    """Repository for age/gender divisions."""

    @property
    def model_class(self) -> type[Division]:
        return Division

    async def list_records(self) -> list[DivisionRecord]:
        """All divisions, active or not, in insertion order.

        The matcher filters inactive rows and applies its own tie-break, so
        ordering here only has to be stable.
        """
        query = select(Division).order_by(Division.created_at, Division.id)
        result = await self.session.execute(query)
        return [division.to_record() for division in result.scalars().all()]


class ChallengeRepository(BaseRepository[Challenge]):
    """Repository for challenges."""

    @property
    def model_class(self) -> type[Challenge]:
        return Challenge


class GradeRepository(BaseRepository[ChallengeGrade]):
    """Repository for challenge grade ladders."""

    @property
    def model_class(self) -> type[ChallengeGrade]:
        return ChallengeGrade

    async def list_for_challenge(
        self,
        challenge_id: UUID,
        division_id: UUID | None = None,
    ) -> list[GradeRecord]:
        """Grades of a challenge, optionally for a single division."""
        query = select(ChallengeGrade).where(ChallengeGrade.challenge_id == challenge_id)
        if division_id is not None:
            query = query.where(ChallengeGrade.division_id == division_id)
        result = await self.session.execute(query)
        records = [grade.to_record() for grade in result.scalars().all()]
        logger.debug(
            "grades_loaded",
            challenge_id=str(challenge_id),
            division_id=str(division_id) if division_id else None,
            count=len(records),
        )
        return records


__all__ = [
    "AthleteRepository",
    "ChallengeRepository",
    "DivisionRepository",
    "GradeRepository",
]
