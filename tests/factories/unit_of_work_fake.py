"""In-memory unit of work for service-level tests.

Mirrors the repository methods the services call. Each unit of work works
on a private copy of the committed rows; ``commit()`` publishes the copy,
anything else discards it, so rollback behaviour can be asserted.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID, uuid4

from ascent.experience.ranks import RankRequirementRecord
from ascent.grading.divisions import DivisionRecord
from ascent.grading.ladder import GradeRecord
from ascent.grading.types import Rank, SubmissionStatus, parse_rank
from ascent.infrastructure.database.models import (
    Athlete,
    AthleteRank,
    Challenge,
    ChallengeGrade,
    ChallengeSubmission,
    Division,
    DomainProgress,
    RankRequirement,
    RankRequirementItem,
    SubmissionHistory,
    XPTransaction,
)
from ascent.repositories.exceptions import DuplicateEntityError

MODELS: dict[type, str] = {
    Athlete: "athletes",
    Division: "divisions",
    Challenge: "challenges",
    ChallengeGrade: "grades",
    ChallengeSubmission: "submissions",
    SubmissionHistory: "submission_history",
    DomainProgress: "progress",
    XPTransaction: "transactions",
    RankRequirement: "rank_requirements",
    RankRequirementItem: "rank_requirement_items",
    AthleteRank: "athlete_ranks",
}

Tables = dict[str, dict[UUID, Any]]


def clone(row: Any) -> Any:
    values = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        values[column.key] = list(value) if isinstance(value, list) else value
    return type(row)(**values)


def clone_tables(tables: Tables) -> Tables:
    return {name: {key: clone(row) for key, row in rows.items()} for name, rows in tables.items()}


class InMemoryStore:
    """Committed state shared by every unit of work of a test."""

    def __init__(self) -> None:
        self.tables: Tables = {name: {} for name in MODELS.values()}
        self.commits = 0

    def add(self, *rows: Any) -> None:
        for row in rows:
            self.tables[MODELS[type(row)]][row.id] = row

    def rows(self, name: str) -> list[Any]:
        return list(self.tables[name].values())

    def get(self, name: str, key: UUID) -> Any:
        return self.tables[name].get(key)

    def uow(self) -> "FakeUnitOfWork":
        return FakeUnitOfWork(self)


class _Repository:
    table: str = ""

    def __init__(self, tables: Tables) -> None:
        self.rows: dict[UUID, Any] = tables[self.table]
        self.tables = tables

    async def get_by_id(self, entity_id: UUID) -> Any:
        return self.rows.get(entity_id)

    async def get_for_update(self, entity_id: UUID) -> Any:
        return self.rows.get(entity_id)

    async def create(self, entity: Any) -> Any:
        if entity.id is None:
            entity.id = uuid4()
        self.rows[entity.id] = entity
        return entity

    async def delete(self, entity_id: UUID) -> bool:
        return self.rows.pop(entity_id, None) is not None


class FakeAthletes(_Repository):
    table = "athletes"


class FakeChallenges(_Repository):
    table = "challenges"


class FakeDivisions(_Repository):
    table = "divisions"

    async def list_records(self) -> list[DivisionRecord]:
        ordered = sorted(self.rows.values(), key=lambda d: (d.created_at, str(d.id)))
        return [d.to_record() for d in ordered]


class FakeGrades(_Repository):
    table = "grades"

    async def list_for_challenge(self, challenge_id: UUID, division_id: UUID | None = None) -> list[GradeRecord]:
        return [
            g.to_record()
            for g in self.rows.values()
            if g.challenge_id == challenge_id and (division_id is None or g.division_id == division_id)
        ]


class FakeSubmissions(_Repository):
    table = "submissions"

    async def create(self, entity: ChallengeSubmission) -> ChallengeSubmission:
        for row in self.rows.values():
            if row.athlete_id == entity.athlete_id and row.challenge_id == entity.challenge_id:
                raise DuplicateEntityError(
                    "ChallengeSubmission",
                    "athlete_id,challenge_id",
                    f"{entity.athlete_id},{entity.challenge_id}",
                )
        return await super().create(entity)

    async def get_by_athlete_and_challenge(
        self,
        athlete_id: UUID,
        challenge_id: UUID,
        for_update: bool = False,
    ) -> ChallengeSubmission | None:
        for row in self.rows.values():
            if row.athlete_id == athlete_id and row.challenge_id == challenge_id:
                return row
        return None

    async def list_approved_tiers(
        self,
        athlete_id: UUID,
        challenge_ids: Iterable[UUID],
        exclude_submission_id: UUID | None = None,
    ) -> list[tuple[UUID, Rank | None]]:
        ids = set(challenge_ids)
        return [
            (row.challenge_id, parse_rank(row.achieved_rank) if row.achieved_rank else None)
            for row in self.rows.values()
            if row.athlete_id == athlete_id
            and row.challenge_id in ids
            and row.status == SubmissionStatus.APPROVED.value
            and row.id != exclude_submission_id
        ]


class FakeSubmissionHistory(_Repository):
    table = "submission_history"

    async def archive(self, submission: ChallengeSubmission, archived_at: datetime) -> SubmissionHistory:
        version = 1 + sum(1 for h in self.rows.values() if h.submission_id == submission.id)
        entry = SubmissionHistory(
            id=uuid4(),
            submission_id=submission.id,
            version=version,
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


class FakeProgress(_Repository):
    table = "progress"

    async def get_for_athlete_domain(
        self,
        athlete_id: UUID,
        domain_id: UUID,
        for_update: bool = False,
    ) -> DomainProgress | None:
        for row in self.rows.values():
            if row.athlete_id == athlete_id and row.domain_id == domain_id:
                return row
        return None

    async def lock_or_create(self, athlete_id: UUID, domain_id: UUID, at: datetime) -> DomainProgress:
        progress = await self.get_for_athlete_domain(athlete_id, domain_id)
        if progress is None:
            progress = DomainProgress(
                id=uuid4(),
                athlete_id=athlete_id,
                domain_id=domain_id,
                xp=0,
                level=0,
                updated_at=at,
            )
            self.rows[progress.id] = progress
        return progress

    async def list_for_athlete(self, athlete_id: UUID, for_update: bool = False) -> list[DomainProgress]:
        return sorted(
            (row for row in self.rows.values() if row.athlete_id == athlete_id),
            key=lambda row: str(row.domain_id),
        )


class FakeTransactions(_Repository):
    table = "transactions"

    async def credited_for_submission(self, submission_id: UUID) -> dict[UUID, int]:
        totals: dict[UUID, int] = defaultdict(int)
        for row in self.rows.values():
            if row.source_id == submission_id and row.source in ("challenge", "reversal"):
                totals[row.domain_id] += row.amount
        return dict(totals)

    async def sum_by_domain(self, athlete_id: UUID) -> dict[UUID, int]:
        totals: dict[UUID, int] = defaultdict(int)
        for row in self.rows.values():
            if row.athlete_id == athlete_id:
                totals[row.domain_id] += row.amount
        return dict(totals)


class FakeRankRequirements(_Repository):
    table = "rank_requirements"

    async def list_for_domain(self, domain_id: UUID) -> list[RankRequirementRecord]:
        items = self.tables["rank_requirement_items"].values()
        return [
            r.to_record([i for i in items if i.requirement_id == r.id])
            for r in sorted(self.rows.values(), key=lambda r: (r.created_at, str(r.id)))
            if r.domain_id == domain_id and r.is_active
        ]


class FakeAthleteRanks(_Repository):
    table = "athlete_ranks"

    async def list_held(self, athlete_id: UUID, domain_id: UUID) -> dict[UUID, UUID | None]:
        return {
            row.requirement_id: row.division_id
            for row in self.rows.values()
            if row.athlete_id == athlete_id and row.domain_id == domain_id
        }

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
        for key, row in list(self.rows.items()):
            if row.athlete_id == athlete_id and row.requirement_id == requirement_id:
                del self.rows[key]
                return True
        return False


class FakeUnitOfWork:
    """Drop-in for ``UnitOfWork`` backed by an ``InMemoryStore``."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self._tables: Tables | None = None
        self.committed = False

    async def __aenter__(self) -> "FakeUnitOfWork":
        self._open()
        return self

    def _open(self) -> None:
        self._tables = clone_tables(self.store.tables)
        self.athletes = FakeAthletes(self._tables)
        self.divisions = FakeDivisions(self._tables)
        self.challenges = FakeChallenges(self._tables)
        self.grades = FakeGrades(self._tables)
        self.submissions = FakeSubmissions(self._tables)
        self.submission_history = FakeSubmissionHistory(self._tables)
        self.progress = FakeProgress(self._tables)
        self.transactions = FakeTransactions(self._tables)
        self.rank_requirements = FakeRankRequirements(self._tables)
        self.athlete_ranks = FakeAthleteRanks(self._tables)

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._tables = None

    async def commit(self) -> None:
        assert self._tables is not None, "unit of work not started"
        self.store.tables = clone_tables(self._tables)
        self.store.commits += 1
        self.committed = True

    async def rollback(self) -> None:
        self._open()

    async def flush(self) -> None:
        return None
