"""Day-granularity date helpers used by the scheduling code."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union

import pytz


DateLike = Union[date, datetime]

DEFAULT_TIMEZONE_NAME = "Asia/Seoul"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def as_day(value: DateLike) -> date:
    """Drop the time-of-day component of ``value``."""
    if isinstance(value, datetime):
        return value.date()
    return value


def to_iso_date(value: DateLike) -> str:
    return as_day(value).isoformat()


def from_iso_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string, raising ``ValueError`` when malformed."""
    if not is_iso_date(value):
        raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}.")
    return date.fromisoformat(value)


def is_iso_date(value: str) -> bool:
    if not _ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def add_days(value: DateLike, days: int) -> date:
    return as_day(value) + timedelta(days=days)


def is_due(due_date: str, today_iso: str) -> bool:
    # ISO dates compare chronologically as plain strings.
    return due_date <= today_iso


def days_until(due_date: str, today: DateLike) -> int:
    return (from_iso_date(due_date) - as_day(today)).days


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def learner_timezone(name: str = DEFAULT_TIMEZONE_NAME) -> tzinfo:
    """Return the timezone whose calendar defines a learner's "today".

    Raises ``pytz.UnknownTimeZoneError`` for names outside the tz database.
    """
    return pytz.timezone(name)


def resolve_moment(
    today: Optional[DateLike] = None,
    tz: Optional[tzinfo] = None,
) -> tuple[date, datetime]:
    """Return the calendar day and the UTC review timestamp for ``today``.

    A missing value means "now" in ``tz`` (the learner's timezone by default),
    so the day follows the learner's calendar rather than UTC. A bare ``date``
    is stamped at midnight UTC so that results stay reproducible for injected
    dates. Naive datetimes are read as UTC.
    """
    if today is None:
        today = _utcnow().astimezone(tz or learner_timezone())
    if isinstance(today, datetime):
        if today.tzinfo is None:
            return today.date(), today.replace(tzinfo=timezone.utc)
        return today.date(), today.astimezone(timezone.utc)
    return today, datetime.combine(today, time.min, tzinfo=timezone.utc)
