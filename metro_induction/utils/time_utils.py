"""
Time and date utilities for induction planning.

Key concepts:
  - Decision date: the ISO-8601 calendar date (``YYYY-MM-DD``) an induction
    plan is produced for. Stored as text, keyed together with the trainset.
  - Certificate cutoff: midnight (UTC) at the start of the day after the
    decision date. A certificate that lapses before the cutoff cannot cover
    the next operating day.

All datetimes handled by the planner are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def parse_decision_date(value: str | date) -> date:
    """Parse an ISO-8601 calendar date string into a ``date``.

    Args:
        value: ``"YYYY-MM-DD"`` string, or an existing ``date`` (returned as-is).

    Returns:
        The parsed ``date``.

    Raises:
        ValueError: If the string is not a valid ISO calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(
            f"Invalid decision date '{value}'. Expected ISO format YYYY-MM-DD."
        ) from exc


def next_day_cutoff(as_of: date) -> datetime:
    """Return UTC midnight at the start of the day after ``as_of``.

    Args:
        as_of: The decision date.

    Returns:
        Timezone-aware ``datetime`` for ``as_of + 1 day`` at 00:00 UTC.
    """
    return datetime.combine(as_of + timedelta(days=1), time.min, tzinfo=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
