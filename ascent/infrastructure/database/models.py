"""SQLAlchemy ORM models for the grading and progression engine.

Models are deliberately relationship-free: the service layer composes joins
through explicit repository queries and works on flat records.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ascent.experience.calculator import DomainShare
from ascent.experience.ranks import RankRequirementRecord, RequirementItem
from ascent.grading.divisions import DivisionRecord
from ascent.grading.ladder import GradeRecord
from ascent.grading.types import GradingType, ProofType, Rank, SubmissionStatus, parse_rank
from ascent.shared.utils.datetime_utils import utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSONB,
        list[str]: ARRAY(String),
    }


def _status_check(column: str, values: list[str], name: str) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({quoted})", name=name)


# ===========================================
# ATHLETES AND CATALOGUE
# ===========================================


class Athlete(Base):
    """Athlete profile. Age is derived from ``date_of_birth`` and never stored."""

    __tablename__ = "athletes"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    parent_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[str | None] = mapped_column(String(50))
    disciplines: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_athletes_user", "user_id"),
        Index("idx_athletes_parent", "parent_id"),
    )


class Domain(Base):
    """Top-level progression area (strength, endurance, ...)."""

    __tablename__ = "domains"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Division(Base):
    """Age/gender bracket. Null bounds and null gender mean unbounded / any."""

    __tablename__ = "divisions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    age_min: Mapped[int | None] = mapped_column(Integer)
    age_max: Mapped[int | None] = mapped_column(Integer)
    gender: Mapped[str | None] = mapped_column(String(50))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "age_min IS NULL OR age_max IS NULL OR age_min <= age_max",
            name="ck_division_age_bounds",
        ),
        Index("idx_divisions_sort", "sort_order"),
    )

    def to_record(self) -> DivisionRecord:
        return DivisionRecord(
            id=self.id,
            name=self.name,
            age_min=self.age_min,
            age_max=self.age_max,
            gender=self.gender,
            sort_order=self.sort_order or 0,
            is_active=bool(self.is_active),
            created_at=self.created_at,
        )


class Challenge(Base):
    """A gradable activity and how its XP is split across domains."""

    __tablename__ = "challenges"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    grading_type: Mapped[str] = mapped_column(String(20), nullable=False, default=GradingType.PASS_FAIL.value)
    grading_unit: Mapped[str | None] = mapped_column(String(50))
    min_rank: Mapped[str] = mapped_column(String(1), nullable=False, default=Rank.F.value)
    max_rank: Mapped[str] = mapped_column(String(1), nullable=False, default=Rank.S.value)
    proof_types: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=lambda: [p.value for p in ProofType]
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    primary_domain_id: Mapped[UUID] = mapped_column(ForeignKey("domains.id"), nullable=False)
    primary_xp_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    secondary_domain_id: Mapped[UUID | None] = mapped_column(ForeignKey("domains.id"))
    secondary_xp_percent: Mapped[int | None] = mapped_column(Integer)
    tertiary_domain_id: Mapped[UUID | None] = mapped_column(ForeignKey("domains.id"))
    tertiary_xp_percent: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        _status_check("grading_type", [g.value for g in GradingType], "ck_challenge_grading_type"),
        Index("idx_challenges_primary_domain", "primary_domain_id"),
    )

    @property
    def grading(self) -> GradingType:
        return GradingType(self.grading_type)

    @property
    def minimum_rank(self) -> Rank:
        return parse_rank(self.min_rank or Rank.F.value)

    @property
    def maximum_rank(self) -> Rank:
        return parse_rank(self.max_rank or Rank.S.value)

    def allows_proof(self, proof_type: ProofType) -> bool:
        return proof_type.value in (self.proof_types or [])

    def domain_shares(self) -> list[DomainShare]:
        shares = [DomainShare(self.primary_domain_id, self.primary_xp_percent or 0)]
        if self.secondary_domain_id and self.secondary_xp_percent:
            shares.append(DomainShare(self.secondary_domain_id, self.secondary_xp_percent))
        if self.tertiary_domain_id and self.tertiary_xp_percent:
            shares.append(DomainShare(self.tertiary_domain_id, self.tertiary_xp_percent))
        return shares


class ChallengeGrade(Base):
    """One rung of a challenge's ladder for one division."""

    __tablename__ = "challenge_grades"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    challenge_id: Mapped[UUID] = mapped_column(ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    division_id: Mapped[UUID] = mapped_column(ForeignKey("divisions.id", ondelete="CASCADE"), nullable=False)
    rank: Mapped[str] = mapped_column(String(1), nullable=False)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("challenge_id", "division_id", "rank", name="uq_grade_challenge_division_rank"),
        Index("idx_grades_challenge_division", "challenge_id", "division_id"),
    )

    def to_record(self) -> GradeRecord:
        return GradeRecord(
            challenge_id=self.challenge_id,
            division_id=self.division_id,
            rank=parse_rank(self.rank),
            target_value=float(self.target_value),
        )


# ===========================================
# SUBMISSIONS
# ===========================================


class ChallengeSubmission(Base):
    """One athlete's attempt at one challenge; re-submission mutates this row."""

    __tablename__ = "challenge_submissions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    athlete_id: Mapped[UUID] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[UUID] = mapped_column(ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    submitted_by: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    # Proof
    proof_type: Mapped[str] = mapped_column(String(20), nullable=False)
    video_url: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    strava_activity_id: Mapped[str | None] = mapped_column(String(100))
    strava_activity_url: Mapped[str | None] = mapped_column(Text)
    garmin_activity_id: Mapped[str | None] = mapped_column(String(100))
    garmin_activity_url: Mapped[str | None] = mapped_column(Text)
    supervisor_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    supervisor_name: Mapped[str | None] = mapped_column(String(255))

    # Grading
    achieved_value: Mapped[float | None] = mapped_column(Float)
    achieved_rank: Mapped[str | None] = mapped_column(String(1))
    claimed_tiers: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    division_id: Mapped[UUID | None] = mapped_column(ForeignKey("divisions.id", ondelete="SET NULL"))
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Review
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SubmissionStatus.PENDING.value)
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    review_notes: Mapped[str | None] = mapped_column(Text)
    reviewed_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Privacy
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hide_exact_value: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("athlete_id", "challenge_id", name="uq_submission_athlete_challenge"),
        _status_check("status", [s.value for s in SubmissionStatus], "ck_submission_status"),
        _status_check("proof_type", [p.value for p in ProofType], "ck_submission_proof_type"),
        Index("idx_submissions_status", "status"),
        Index("idx_submissions_athlete_status", "athlete_id", "status"),
    )

    @property
    def state(self) -> SubmissionStatus:
        return SubmissionStatus(self.status)

    @property
    def tiers(self) -> list[Rank]:
        return [parse_rank(t) for t in (self.claimed_tiers or [])]

    @property
    def highest_tier(self) -> Rank | None:
        return parse_rank(self.achieved_rank) if self.achieved_rank else None


class SubmissionHistory(Base):
    """Archived proof and review fields from before a resubmission."""

    __tablename__ = "submission_history"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    submission_id: Mapped[UUID] = mapped_column(
        ForeignKey("challenge_submissions.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    proof_type: Mapped[str] = mapped_column(String(20), nullable=False)
    video_url: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    achieved_value: Mapped[float | None] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    review_notes: Mapped[str | None] = mapped_column(Text)
    reviewed_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    archived_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("submission_id", "version", name="uq_history_submission_version"),
    )


# ===========================================
# PROGRESSION
# ===========================================


class DomainProgress(Base):
    """Cumulative XP and derived level per (athlete, domain)."""

    __tablename__ = "domain_progress"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    athlete_id: Mapped[UUID] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False)
    domain_id: Mapped[UUID] = mapped_column(ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("athlete_id", "domain_id", name="uq_progress_athlete_domain"),
        CheckConstraint("xp >= 0", name="ck_progress_xp_non_negative"),
    )


class XPTransaction(Base):
    """Ledger row. Stored XP always equals the sum of these per (athlete, domain)."""

    __tablename__ = "xp_transactions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    athlete_id: Mapped[UUID] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False)
    domain_id: Mapped[UUID] = mapped_column(ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    note: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        _status_check("source", ["challenge", "reversal", "admin"], "ck_xp_transaction_source"),
        Index("idx_xp_transactions_athlete_domain", "athlete_id", "domain_id"),
        Index("idx_xp_transactions_source", "source_id"),
    )


class RankRequirement(Base):
    """Named rank within a domain, unlocked by a set of challenge tiers."""

    __tablename__ = "rank_requirements"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    domain_id: Mapped[UUID] = mapped_column(ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    rank: Mapped[str | None] = mapped_column(String(1))
    division_id: Mapped[UUID | None] = mapped_column(ForeignKey("divisions.id", ondelete="CASCADE"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_rank_requirements_domain", "domain_id"),)

    def to_record(self, items: list["RankRequirementItem"]) -> RankRequirementRecord:
        return RankRequirementRecord(
            id=self.id,
            domain_id=self.domain_id,
            name=self.name,
            rank=parse_rank(self.rank) if self.rank else None,
            division_id=self.division_id,
            items=tuple(
                RequirementItem(challenge_id=i.challenge_id, minimum_tier=parse_rank(i.minimum_tier))
                for i in items
            ),
        )


class RankRequirementItem(Base):
    __tablename__ = "rank_requirement_items"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    requirement_id: Mapped[UUID] = mapped_column(
        ForeignKey("rank_requirements.id", ondelete="CASCADE"), nullable=False
    )
    challenge_id: Mapped[UUID] = mapped_column(ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    minimum_tier: Mapped[str] = mapped_column(String(1), nullable=False)

    __table_args__ = (
        UniqueConstraint("requirement_id", "challenge_id", name="uq_requirement_challenge"),
    )


class AthleteRank(Base):
    """A rank an athlete currently holds."""

    __tablename__ = "athlete_ranks"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    athlete_id: Mapped[UUID] = mapped_column(ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False)
    requirement_id: Mapped[UUID] = mapped_column(
        ForeignKey("rank_requirements.id", ondelete="CASCADE"), nullable=False
    )
    domain_id: Mapped[UUID] = mapped_column(ForeignKey("domains.id", ondelete="CASCADE"), nullable=False)
    # Division the athlete was in when the rank unlocked
    division_id: Mapped[UUID | None] = mapped_column(ForeignKey("divisions.id", ondelete="SET NULL"))
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("athlete_id", "requirement_id", name="uq_athlete_rank"),
        Index("idx_athlete_ranks_domain", "athlete_id", "domain_id"),
    )
