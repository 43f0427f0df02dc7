"""Initial schema: catalogue, submissions and progression ledger.

Revision ID: 001
Revises:
Create Date: 2026-10-15
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, ARRAY

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _now(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    # --- Athletes ---
    op.create_table(
        "athletes",
        _id(),
        sa.Column("user_id", UUID(as_uuid=True)),
        sa.Column("parent_id", UUID(as_uuid=True)),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("gender", sa.String(50)),
        sa.Column("disciplines", ARRAY(sa.String()), nullable=False, server_default=sa.text("'{}'")),
        _now("created_at"),
        _now("updated_at"),
    )
    op.create_index("idx_athletes_user", "athletes", ["user_id"])
    op.create_index("idx_athletes_parent", "athletes", ["parent_id"])

    # --- Domains ---
    op.create_table(
        "domains",
        _id(),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )

    # --- Divisions ---
    op.create_table(
        "divisions",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("age_min", sa.Integer()),
        sa.Column("age_max", sa.Integer()),
        sa.Column("gender", sa.String(50)),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _now("created_at"),
        sa.CheckConstraint(
            "age_min IS NULL OR age_max IS NULL OR age_min <= age_max",
            name="ck_division_age_bounds",
        ),
    )
    op.create_index("idx_divisions_sort", "divisions", ["sort_order"])

    # --- Challenges ---
    op.create_table(
        "challenges",
        _id(),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("grading_type", sa.String(20), nullable=False, server_default=sa.text("'pass_fail'")),
        sa.Column("grading_unit", sa.String(50)),
        sa.Column("min_rank", sa.String(1), nullable=False, server_default=sa.text("'F'")),
        sa.Column("max_rank", sa.String(1), nullable=False, server_default=sa.text("'S'")),
        sa.Column(
            "proof_types",
            ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{video,image,strava,garmin,race_result,manual}'"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("primary_domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id"), nullable=False),
        sa.Column("primary_xp_percent", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("secondary_domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id")),
        sa.Column("secondary_xp_percent", sa.Integer()),
        sa.Column("tertiary_domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id")),
        sa.Column("tertiary_xp_percent", sa.Integer()),
        _now("created_at"),
        sa.CheckConstraint(
            "grading_type IN ('pass_fail', 'reps', 'time', 'distance', 'timed_reps', 'weighted_reps')",
            name="ck_challenge_grading_type",
        ),
    )
    op.create_index("idx_challenges_primary_domain", "challenges", ["primary_domain_id"])

    # --- Challenge grades ---
    op.create_table(
        "challenge_grades",
        _id(),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("division_id", UUID(as_uuid=True), sa.ForeignKey("divisions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rank", sa.String(1), nullable=False),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.UniqueConstraint("challenge_id", "division_id", "rank", name="uq_grade_challenge_division_rank"),
    )
    op.create_index("idx_grades_challenge_division", "challenge_grades", ["challenge_id", "division_id"])

    # --- Submissions ---
    op.create_table(
        "challenge_submissions",
        _id(),
        sa.Column("athlete_id", UUID(as_uuid=True), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("submitted_by", UUID(as_uuid=True), nullable=False),
        sa.Column("proof_type", sa.String(20), nullable=False),
        sa.Column("video_url", sa.Text()),
        sa.Column("image_url", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("strava_activity_id", sa.String(100)),
        sa.Column("strava_activity_url", sa.Text()),
        sa.Column("garmin_activity_id", sa.String(100)),
        sa.Column("garmin_activity_url", sa.Text()),
        sa.Column("supervisor_id", UUID(as_uuid=True)),
        sa.Column("supervisor_name", sa.String(255)),
        sa.Column("achieved_value", sa.Float()),
        sa.Column("achieved_rank", sa.String(1)),
        sa.Column("claimed_tiers", ARRAY(sa.String()), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("division_id", UUID(as_uuid=True), sa.ForeignKey("divisions.id", ondelete="SET NULL")),
        sa.Column("xp_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("auto_approved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("review_notes", sa.Text()),
        sa.Column("reviewed_by", UUID(as_uuid=True)),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("hide_exact_value", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _now("submitted_at"),
        _now("updated_at"),
        sa.UniqueConstraint("athlete_id", "challenge_id", name="uq_submission_athlete_challenge"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'needs_revision')",
            name="ck_submission_status",
        ),
        sa.CheckConstraint(
            "proof_type IN ('video', 'image', 'strava', 'garmin', 'race_result', 'manual')",
            name="ck_submission_proof_type",
        ),
    )
    op.create_index("idx_submissions_status", "challenge_submissions", ["status"])
    op.create_index("idx_submissions_athlete_status", "challenge_submissions", ["athlete_id", "status"])

    op.create_table(
        "submission_history",
        _id(),
        sa.Column(
            "submission_id",
            UUID(as_uuid=True),
            sa.ForeignKey("challenge_submissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("proof_type", sa.String(20), nullable=False),
        sa.Column("video_url", sa.Text()),
        sa.Column("image_url", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("achieved_value", sa.Float()),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("review_notes", sa.Text()),
        sa.Column("reviewed_by", UUID(as_uuid=True)),
        sa.Column("submitted_at", sa.DateTime(timezone=True)),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        _now("archived_at"),
        sa.UniqueConstraint("submission_id", "version", name="uq_history_submission_version"),
    )

    # --- Progression ---
    op.create_table(
        "domain_progress",
        _id(),
        sa.Column("athlete_id", UUID(as_uuid=True), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id", ondelete="CASCADE"), nullable=False),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="0"),
        _now("updated_at"),
        sa.UniqueConstraint("athlete_id", "domain_id", name="uq_progress_athlete_domain"),
        sa.CheckConstraint("xp >= 0", name="ck_progress_xp_non_negative"),
    )

    op.create_table(
        "xp_transactions",
        _id(),
        sa.Column("athlete_id", UUID(as_uuid=True), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("source_id", UUID(as_uuid=True)),
        sa.Column("note", sa.Text()),
        sa.Column("created_by", UUID(as_uuid=True)),
        _now("created_at"),
        sa.CheckConstraint("source IN ('challenge', 'reversal', 'admin')", name="ck_xp_transaction_source"),
    )
    op.create_index("idx_xp_transactions_athlete_domain", "xp_transactions", ["athlete_id", "domain_id"])
    op.create_index("idx_xp_transactions_source", "xp_transactions", ["source_id"])

    op.create_table(
        "rank_requirements",
        _id(),
        sa.Column("domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("rank", sa.String(1)),
        sa.Column("division_id", UUID(as_uuid=True), sa.ForeignKey("divisions.id", ondelete="CASCADE")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _now("created_at"),
    )
    op.create_index("idx_rank_requirements_domain", "rank_requirements", ["domain_id"])

    op.create_table(
        "rank_requirement_items",
        _id(),
        sa.Column(
            "requirement_id",
            UUID(as_uuid=True),
            sa.ForeignKey("rank_requirements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("challenge_id", UUID(as_uuid=True), sa.ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("minimum_tier", sa.String(1), nullable=False),
        sa.UniqueConstraint("requirement_id", "challenge_id", name="uq_requirement_challenge"),
    )

    op.create_table(
        "athlete_ranks",
        _id(),
        sa.Column("athlete_id", UUID(as_uuid=True), sa.ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "requirement_id",
            UUID(as_uuid=True),
            sa.ForeignKey("rank_requirements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("domain_id", UUID(as_uuid=True), sa.ForeignKey("domains.id", ondelete="CASCADE"), nullable=False),
        sa.Column("division_id", UUID(as_uuid=True), sa.ForeignKey("divisions.id", ondelete="SET NULL")),
        _now("unlocked_at"),
        sa.UniqueConstraint("athlete_id", "requirement_id", name="uq_athlete_rank"),
    )
    op.create_index("idx_athlete_ranks_domain", "athlete_ranks", ["athlete_id", "domain_id"])


def downgrade() -> None:
    op.drop_table("athlete_ranks")
    op.drop_table("rank_requirement_items")
    op.drop_table("rank_requirements")
    op.drop_table("xp_transactions")
    op.drop_table("domain_progress")
    op.drop_table("submission_history")
    op.drop_table("challenge_submissions")
    op.drop_table("challenge_grades")
    op.drop_table("challenges")
    op.drop_table("divisions")
    op.drop_table("domains")
    op.drop_table("athletes")
