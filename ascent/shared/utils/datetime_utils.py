"""Clock helpers and age arithmetic used by division matching and cooldowns."""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to aware UTC; naive values are taken to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def calculate_age(date_of_birth: date, today: date | datetime) -> int:
    """Whole years elapsed between ``date_of_birth`` and ``today``.

    An athlete who has not yet reached this year's birthday is still the
    previous age. A 29 February birthday is reached on 1 March in non-leap
    years.

    Example:
        >>> calculate_age(date(2000, 6, 15), date(2026, 6, 14))
        25
        >>> calculate_age(date(2000, 6, 15), date(2026, 6, 15))
        26
    """
    if isinstance(date_of_birth, datetime):
        date_of_birth = date_of_birth.date()
    if isinstance(today, datetime):
        today = today.date()

    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


__all__ = [
    "calculate_age",
    "ensure_utc",
    "utcnow",
]
