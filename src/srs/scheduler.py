"""Spaced-repetition scheduling for a single progress record."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from src.srs.dates import DateLike, add_days, resolve_moment, to_iso_date
from src.srs.records import Outcome, ProgressRecord, StudyState


INTERVAL_TABLE_DAYS = (1, 2, 4, 7, 14, 30)
REVIEW_STREAK = 2
MASTERED_STREAK = 6
RETRY_INTERVAL_DAYS = 1


def next_interval(streak: int) -> int:
    """Return the interval for a streak, reusing the last entry past the table end."""
    index = min(max(streak - 1, 0), len(INTERVAL_TABLE_DAYS) - 1)
    return INTERVAL_TABLE_DAYS[index]


def state_for_streak(streak: int) -> StudyState:
    if streak >= MASTERED_STREAK:
        return StudyState.MASTERED
    if streak >= REVIEW_STREAK:
        return StudyState.REVIEW
    return StudyState.LEARNING


def apply_known_outcome(
    record: ProgressRecord,
    today: Optional[DateLike] = None,
) -> ProgressRecord:
    """Return the record after the learner recalled the item correctly."""
    day, reviewed_at = resolve_moment(today)

    streak = record.streak + 1
    interval = next_interval(streak)

    return replace(
        record,
        state=state_for_streak(streak),
        streak=streak,
        interval=interval,
        due_date=to_iso_date(add_days(day, interval)),
        last_reviewed_at=reviewed_at,
    )


def apply_retry_outcome(
    record: ProgressRecord,
    today: Optional[DateLike] = None,
) -> ProgressRecord:
    """Return the record after a wrong answer.

    Any prior progress is discarded, MASTERED items included, and the item is
    due again on the same day.
    """
    day, reviewed_at = resolve_moment(today)

    return replace(
        record,
        state=StudyState.LEARNING,
        streak=0,
        interval=RETRY_INTERVAL_DAYS,
        due_date=to_iso_date(day),
        wrong_count=record.wrong_count + 1,
        last_reviewed_at=reviewed_at,
    )


def apply_outcome(
    record: ProgressRecord,
    outcome: Outcome,
    today: Optional[DateLike] = None,
) -> ProgressRecord:
    if Outcome(outcome) is Outcome.KNOWN:
        return apply_known_outcome(record, today)
    return apply_retry_outcome(record, today)
