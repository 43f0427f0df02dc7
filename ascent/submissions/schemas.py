"""Pydantic v2 schemas for submission creation and review."""

import math
from datetime import datetime
from typing import Any, Final
from uuid import UUID

import pydantic
from pydantic import Field, field_validator, model_validator

from ascent.grading.types import ProofType, SubmissionStatus
from ascent.repositories.exceptions import ValidationError
from ascent.shared.schemas.base import BaseSchema

# Each proof type needs at least one of these fields filled in.
PROOF_REQUIREMENTS: Final[dict[ProofType, tuple[str, ...]]] = {
    ProofType.VIDEO: ("video_url",),
    ProofType.IMAGE: ("image_url",),
    ProofType.STRAVA: ("strava_activity_id",),
    ProofType.GARMIN: ("garmin_activity_id",),
    ProofType.RACE_RESULT: ("image_url", "video_url"),
    ProofType.MANUAL: ("supervisor_id",),
}

PROOF_FIELDS: Final[tuple[str, ...]] = (
    "video_url",
    "image_url",
    "notes",
    "strava_activity_id",
    "strava_activity_url",
    "garmin_activity_id",
    "garmin_activity_url",
    "supervisor_id",
    "supervisor_name",
)

REVIEW_OUTCOMES: Final[frozenset[SubmissionStatus]] = frozenset(
    {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED, SubmissionStatus.NEEDS_REVISION}
)


def missing_proof(proof_type: ProofType, values: dict[str, Any]) -> tuple[str, ...] | None:
    """Fields of which at least one is required but none was given."""
    required = PROOF_REQUIREMENTS[proof_type]
    if any(values.get(name) for name in required):
        return None
    return required


def _check_value(value: float | None) -> float | None:
    if value is None:
        return None
    if not math.isfinite(value):
        raise ValueError("achieved value must be finite")
    if value <= 0:
        raise ValueError("achieved value must be positive")
    return value


class CreateSubmissionRequest(BaseSchema):
    """Create a submission, or resubmit over the athlete's existing one."""

    athlete_id: UUID
    challenge_id: UUID
    proof_type: ProofType = ProofType.VIDEO

    video_url: str | None = Field(default=None, max_length=2048)
    image_url: str | None = Field(default=None, max_length=2048)
    notes: str | None = Field(default=None, max_length=2000)

    strava_activity_id: str | None = Field(default=None, max_length=100)
    strava_activity_url: str | None = Field(default=None, max_length=2048)
    garmin_activity_id: str | None = Field(default=None, max_length=100)
    garmin_activity_url: str | None = Field(default=None, max_length=2048)

    supervisor_id: UUID | None = None
    supervisor_name: str | None = Field(default=None, max_length=255)

    # Numeric result; activity imports supply it before the call
    achieved_value: float | None = None

    is_public: bool = True
    hide_exact_value: bool = False

    @field_validator(
        "video_url",
        "image_url",
        "notes",
        "strava_activity_id",
        "strava_activity_url",
        "garmin_activity_id",
        "garmin_activity_url",
        "supervisor_name",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("achieved_value")
    @classmethod
    def _valid_value(cls, value: float | None) -> float | None:
        return _check_value(value)

    @model_validator(mode="after")
    def _proof_matches_type(self) -> "CreateSubmissionRequest":
        missing = missing_proof(ProofType(self.proof_type), self.model_dump())
        if missing:
            raise ValueError(
                f"Proof is required for proof type '{ProofType(self.proof_type).value}': "
                f"provide {' or '.join(missing)}"
            )
        return self

    @property
    def proof(self) -> ProofType:
        return ProofType(self.proof_type)

    def proof_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in PROOF_FIELDS}


class ReviewSubmissionRequest(BaseSchema):
    """A reviewer's decision on a pending submission."""

    status: SubmissionStatus
    review_notes: str | None = Field(default=None, max_length=2000)
    # Overrides the value cached on the submission
    achieved_value: float | None = None
    # Optimistic concurrency check against ChallengeSubmission.version
    expected_version: int | None = Field(default=None, ge=1)

    @field_validator("status")
    @classmethod
    def _is_decision(cls, value: SubmissionStatus) -> SubmissionStatus:
        if SubmissionStatus(value) not in REVIEW_OUTCOMES:
            raise ValueError("status must be approved, rejected or needs_revision")
        return value

    @field_validator("achieved_value")
    @classmethod
    def _valid_value(cls, value: float | None) -> float | None:
        return _check_value(value)

    @property
    def decision(self) -> SubmissionStatus:
        return SubmissionStatus(self.status)


class SubmissionResponse(BaseSchema):
    """Submission as returned to callers."""

    id: UUID
    athlete_id: UUID
    challenge_id: UUID
    proof_type: ProofType
    status: SubmissionStatus
    achieved_value: float | None = None
    achieved_rank: str | None = None
    claimed_tiers: list[str] = Field(default_factory=list)
    division_id: UUID | None = None
    xp_awarded: int = 0
    auto_approved: bool = False
    review_notes: str | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    is_public: bool = True
    hide_exact_value: bool = False
    version: int = 1
    submitted_at: datetime | None = None


def public_view(submission: Any, viewer_can_see_private: bool = False) -> SubmissionResponse | None:
    """Project a submission for another viewer.

    Private submissions are hidden entirely. With ``hide_exact_value`` the
    number is withheld but the tier stays visible.
    """
    view = SubmissionResponse.model_validate(submission)
    if viewer_can_see_private:
        return view
    if not view.is_public:
        return None
    if view.hide_exact_value:
        return view.model_copy(update={"achieved_value": None})
    return view


def _parse(model: type[BaseSchema], payload: dict[str, Any], default_field: str) -> Any:
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = e.errors()
        first = errors[0] if errors else {}
        loc = first.get("loc") or ()
        field = str(loc[0]) if loc else default_field
        raise ValidationError(
            first.get("msg", "Invalid request"),
            field=field,
            errors=[err.get("msg", "") for err in errors],
        ) from e


def parse_create_request(payload: dict[str, Any]) -> CreateSubmissionRequest:
    """Validate a raw payload, surfacing the offending field as a ValidationError."""
    return _parse(CreateSubmissionRequest, payload, default_field="proof_type")


def parse_review_request(payload: dict[str, Any]) -> ReviewSubmissionRequest:
    return _parse(ReviewSubmissionRequest, payload, default_field="status")


__all__ = [
    "CreateSubmissionRequest",
    "PROOF_REQUIREMENTS",
    "ReviewSubmissionRequest",
    "SubmissionResponse",
    "missing_proof",
    "parse_create_request",
    "parse_review_request",
    "public_view",
]
