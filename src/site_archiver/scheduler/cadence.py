"""Cron cadence parsing and next-occurrence evaluation.

Expressions use the five-field cron grammar (``minute hour day-of-month
month day-of-week``) and are evaluated in UTC.  Field parsing is delegated to
Celery's :class:`~celery.schedules.crontab`, which accepts ranges, steps,
lists and day/month names.  As with Celery, a time matches only when *all*
five fields match.

Examples::

    >>> next_occurrence("0 0 * * 0", datetime(2024, 1, 3, 12, tzinfo=timezone.utc))
    datetime.datetime(2024, 1, 7, 0, 0, tzinfo=datetime.timezone.utc)
    >>> next_occurrence("* * * * *", datetime(2024, 1, 3, 12, 0, 30, tzinfo=timezone.utc))
    datetime.datetime(2024, 1, 3, 12, 1, tzinfo=datetime.timezone.utc)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from celery.schedules import ParseException, crontab

from site_archiver.core.exceptions import InvalidCadenceError
from site_archiver.core.models.base import ensure_utc, utcnow

#: How far ahead :func:`next_occurrence` searches before giving up.
_SEARCH_DAYS: int = 366 * 5


@dataclass(frozen=True)
class Cadence:
    """The expanded value sets of a parsed cron expression.

    Day-of-week values follow cron: ``0`` is Sunday.
    """

    expression: str
    minutes: tuple[int, ...]
    hours: tuple[int, ...]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]

    def matches_day(self, day: date) -> bool:
        return (
            day.month in self.months
            and day.day in self.days_of_month
            and day.isoweekday() % 7 in self.days_of_week
        )


def parse_cadence(expression: str) -> Cadence:
    """Parse a five-field cron expression.

    Raises:
        InvalidCadenceError: If the expression does not have exactly five
            fields or any field is malformed.
    """
    fields = (expression or "").split()
    if len(fields) != 5:
        raise InvalidCadenceError(expression, f"expected 5 fields, got {len(fields)}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    try:
        spec = crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ValueError, ParseException) as exc:
        raise InvalidCadenceError(expression, str(exc)) from exc

    return Cadence(
        expression=" ".join(fields),
        minutes=tuple(sorted(spec.minute)),
        hours=tuple(sorted(spec.hour)),
        days_of_month=frozenset(spec.day_of_month),
        months=frozenset(spec.month_of_year),
        days_of_week=frozenset(spec.day_of_week),
    )


def validate_cadence(expression: str) -> str:
    """Return the normalised expression, or raise ``InvalidCadenceError``."""
    return parse_cadence(expression).expression


def next_occurrence(expression: str, after: Optional[datetime] = None) -> datetime:
    """Return the first UTC minute strictly after ``after`` matching ``expression``.

    Args:
        expression: Five-field cron expression.
        after: Reference time; defaults to now.  Naive values are taken as UTC.

    Raises:
        InvalidCadenceError: If the expression is malformed or never matches
            within the search window (e.g. ``0 0 31 2 *``).
    """
    cadence = parse_cadence(expression)
    reference = ensure_utc(after) if after is not None else utcnow()
    start = reference.replace(second=0, microsecond=0) + timedelta(minutes=1)

    # crontab.remaining_estimate() measures from the Celery app's clock and
    # timezone, not from ``after``, and has no bound for expressions such as
    # ``0 0 31 2 *``.  Only field parsing is taken from crontab; the search
    # below walks days in UTC from ``after`` and requires all five fields.
    day = start.date()
    for _ in range(_SEARCH_DAYS):
        if cadence.matches_day(day):
            for hour in cadence.hours:
                for minute in cadence.minutes:
                    candidate = datetime(
                        day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc
                    )
                    if candidate >= start:
                        return candidate
        day += timedelta(days=1)

    raise InvalidCadenceError(expression, "no matching time found")
