"""Division matching.

Selects the single competitive division (age/gender bracket) whose tier
ladder applies to an athlete. Divisions may overlap; the winner is picked by
``sort_order`` with an explicit, deterministic tie-break:

1. lowest ``sort_order``
2. narrowest age span (an open bound counts as infinitely wide)
3. gender-specific before gender-neutral
4. insertion order (``created_at``, then id)

No match is not an error. It yields ``DivisionMatch(division=None)`` and the
athlete is treated as ungraded.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable
from uuid import UUID

from ascent.shared.utils.datetime_utils import calculate_age
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)

ADULT_AGE = 18


@dataclass(frozen=True)
class DivisionRecord:
    """Flat, read-only view of a division row."""

    id: UUID
    name: str
    age_min: int | None = None
    age_max: int | None = None
    gender: str | None = None
    sort_order: int = 0
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def age_span(self) -> float:
        if self.age_min is None or self.age_max is None:
            return math.inf
        return float(self.age_max - self.age_min)


@dataclass(frozen=True)
class DivisionMatch:
    """Outcome of matching an athlete to a division."""

    age: int
    division: DivisionRecord | None

    @property
    def matched(self) -> bool:
        return self.division is not None

    @property
    def division_id(self) -> UUID | None:
        return self.division.id if self.division else None


def normalize_gender(gender: str | None) -> str | None:
    """Case- and whitespace-insensitive gender key; blank means unspecified."""
    if gender is None:
        return None
    key = gender.strip().casefold()
    return key or None


def is_candidate(division: DivisionRecord, age: int, gender: str | None) -> bool:
    """Whether a division accepts an athlete of this age and gender."""
    if not division.is_active:
        return False

    division_gender = normalize_gender(division.gender)
    if division_gender is not None and division_gender != normalize_gender(gender):
        return False

    if division.age_min is not None and age < division.age_min:
        return False
    if division.age_max is not None and age > division.age_max:
        return False
    return True


def _priority(item: tuple[int, DivisionRecord]) -> tuple:
    position, division = item
    created = division.created_at.timestamp() if division.created_at else math.inf
    return (
        division.sort_order,
        division.age_span,
        0 if normalize_gender(division.gender) else 1,
        created,
        position,
        str(division.id),
    )


def match_division(
    divisions: Iterable[DivisionRecord],
    date_of_birth: date,
    gender: str | None,
    today: date | datetime,
) -> DivisionMatch:
    """Pick the applicable division for an athlete.

    Args:
        divisions: All known divisions, in insertion order
        date_of_birth: Athlete's date of birth
        gender: Athlete's gender, None when not given
        today: The instant the match is evaluated at

    Returns:
        DivisionMatch carrying the derived age and the division (or None)
    """
    age = calculate_age(date_of_birth, today)
    candidates = [
        (position, division)
        for position, division in enumerate(divisions)
        if is_candidate(division, age, gender)
    ]
    if not candidates:
        logger.debug("division_not_matched", age=age, gender=gender)
        return DivisionMatch(age=age, division=None)

    _, best = min(candidates, key=_priority)
    return DivisionMatch(age=age, division=best)


def is_minor(date_of_birth: date, today: date | datetime) -> bool:
    """Whether the athlete is under 18."""
    return calculate_age(date_of_birth, today) < ADULT_AGE


def format_age_range(age_min: int | None, age_max: int | None) -> str:
    """Human-readable age range of a division."""
    if age_min is None and age_max is None:
        return "All ages"
    if age_min is None:
        return f"Under {age_max + 1}"
    if age_max is None:
        return f"{age_min}+"
    return f"{age_min}-{age_max}"


__all__ = [
    "DivisionMatch",
    "DivisionRecord",
    "format_age_range",
    "is_candidate",
    "is_minor",
    "match_division",
    "normalize_gender",
]
