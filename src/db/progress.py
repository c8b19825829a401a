"""Persistence of learner progress and the queries built on top of it."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.srs import Outcome, ProgressRecord, StudyState, apply_outcome, build_daily_queue
from src.srs.dates import DateLike, days_until, resolve_moment, to_iso_date

from . import HanjaChar, ProgressItem, StudySession


DEFAULT_NEW_LIMIT = 20
DEFAULT_MAX_ITEMS = 50


@dataclass(slots=True)
class StudyCard:
    """A queued progress record joined with the character it schedules."""

    char: HanjaChar
    progress: ProgressRecord


@dataclass(slots=True)
class DashboardStats:
    total: int
    mastered: int
    review_due: int
    new_count: int


@dataclass(slots=True)
class ReviewListItem:
    char: str
    due_date: str
    days_until: int


@dataclass(slots=True)
class StudySessionRecord:
    """Summary of a stored quiz run."""

    id: Optional[int]
    chat_id: int
    mode: str
    grade: int
    started_at: datetime
    ended_at: datetime
    score: int
    total: int
    correct_count: int


def quiz_score(correct_count: int, total: int) -> int:
    """Percentage of correct answers, rounded half-up."""
    if total == 0:
        return 0
    return (correct_count * 200 + total) // (2 * total)


def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_progress_record(row: ProgressItem) -> ProgressRecord:
    """Convert a stored row into the immutable value used by the scheduler."""
    return ProgressRecord(
        item_id=row.char,
        collection_id=row.grade,
        state=StudyState(row.state),
        interval=row.interval,
        streak=row.streak,
        due_date=row.due_date,
        wrong_count=row.wrong_count,
        last_reviewed_at=_ensure_aware(row.last_reviewed_at),
    )


def store_progress_record(row: ProgressItem, record: ProgressRecord) -> None:
    """Copy the scheduling fields of ``record`` onto ``row``."""
    row.state = record.state.value
    row.interval = record.interval
    row.streak = record.streak
    row.due_date = record.due_date
    row.wrong_count = record.wrong_count
    row.last_reviewed_at = record.last_reviewed_at


def new_progress_row(chat_id: int, record: ProgressRecord) -> ProgressItem:
    row = ProgressItem(chat_id=chat_id, char=record.item_id, grade=record.collection_id)
    store_progress_record(row, record)
    return row


async def get_progress_row(
    session: AsyncSession,
    chat_id: int,
    char: str,
    grade: int,
) -> Optional[ProgressItem]:
    stmt = select(ProgressItem).where(
        ProgressItem.chat_id == chat_id,
        ProgressItem.char == char,
        ProgressItem.grade == grade,
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_chars_by_grade(session: AsyncSession, grade: int) -> List[HanjaChar]:
    result = await session.execute(
        select(HanjaChar).where(HanjaChar.grade == grade).order_by(HanjaChar.char)
    )
    return list(result.scalars())


async def get_progress_by_grade(
    session: AsyncSession,
    chat_id: int,
    grade: int,
) -> List[ProgressRecord]:
    """Return the full progress snapshot of a learner for one grade."""
    stmt = (
        select(ProgressItem)
        .where(ProgressItem.chat_id == chat_id, ProgressItem.grade == grade)
        .order_by(ProgressItem.char)
    )
    result = await session.execute(stmt)
    return [to_progress_record(row) for row in result.scalars()]


async def get_dashboard_stats(
    session: AsyncSession,
    chat_id: int,
    grade: int,
    today: Optional[DateLike] = None,
) -> DashboardStats:
    records = await get_progress_by_grade(session, chat_id, grade)
    today_iso = to_iso_date(resolve_moment(today)[0])

    return DashboardStats(
        total=len(records),
        mastered=sum(1 for record in records if record.state is StudyState.MASTERED),
        review_due=sum(
            1
            for record in records
            if record.due_date <= today_iso and record.state is not StudyState.NEW
        ),
        new_count=sum(1 for record in records if record.state is StudyState.NEW),
    )


async def get_study_queue(
    session: AsyncSession,
    chat_id: int,
    grade: int,
    *,
    new_limit: int = DEFAULT_NEW_LIMIT,
    max_items: int = DEFAULT_MAX_ITEMS,
    today: Optional[DateLike] = None,
) -> List[StudyCard]:
    """Return today's ordered study cards for a learner, capped at ``max_items``."""
    today_iso = to_iso_date(resolve_moment(today)[0])
    records = await get_progress_by_grade(session, chat_id, grade)
    queued = build_daily_queue(records, today_iso, new_limit)[: max(0, max_items)]

    chars = {item.char: item for item in await get_chars_by_grade(session, grade)}

    cards: List[StudyCard] = []
    for record in queued:
        char_info = chars.get(record.item_id)
        if char_info is None:
            continue
        cards.append(StudyCard(char=char_info, progress=record))
    return cards


async def apply_study_action(
    session: AsyncSession,
    chat_id: int,
    char: str,
    grade: int,
    outcome: Outcome,
    today: Optional[DateLike] = None,
) -> Optional[ProgressRecord]:
    """Apply a study outcome to the stored record and flush it immediately."""
    row = await get_progress_row(session, chat_id, char, grade)
    if row is None:
        return None

    updated = apply_outcome(to_progress_record(row), outcome, today)
    store_progress_record(row, updated)
    await session.flush()
    return updated


async def get_upcoming_reviews(
    session: AsyncSession,
    chat_id: int,
    grade: int,
    limit: int = 3,
    today: Optional[DateLike] = None,
) -> List[ReviewListItem]:
    """Return the next non-mastered characters to come up for review."""
    day = resolve_moment(today)[0]
    records = [
        record
        for record in await get_progress_by_grade(session, chat_id, grade)
        if record.state is not StudyState.MASTERED
    ]
    records.sort(key=lambda record: (record.due_date, -record.wrong_count))

    return [
        ReviewListItem(
            char=record.item_id,
            due_date=record.due_date,
            days_until=days_until(record.due_date, day),
        )
        for record in records[: max(0, limit)]
    ]


async def lookup_char(session: AsyncSession, query: str) -> Optional[HanjaChar]:
    """Find the catalogue entry for the first character of ``query``."""
    target = query.strip()[:1]
    if not target:
        return None
    return await session.get(HanjaChar, target)


async def save_quiz_outcome(
    session: AsyncSession,
    chat_id: int,
    grade: int,
    mode: str,
    started_at: datetime,
    ended_at: datetime,
    answers: Sequence[Tuple[str, bool]],
    today: Optional[DateLike] = None,
) -> StudySessionRecord:
    """Schedule every answered character and store the quiz summary.

    ``answers`` holds ``(char, is_correct)`` pairs. Characters without a
    progress record are not scheduled but still count towards the score.
    Answers are scheduled on ``today``, which defaults to ``ended_at``.
    """
    review_day = ended_at if today is None else today
    for char, is_correct in answers:
        row = await get_progress_row(session, chat_id, char, grade)
        if row is None:
            continue
        outcome = Outcome.KNOWN if is_correct else Outcome.RETRY
        store_progress_record(row, apply_outcome(to_progress_record(row), outcome, review_day))

    total = len(answers)
    correct_count = sum(1 for _, is_correct in answers if is_correct)
    score = quiz_score(correct_count, total)

    study_session = StudySession(
        chat_id=chat_id,
        mode=mode,
        grade=grade,
        started_at=started_at,
        ended_at=ended_at,
        score=score,
        total=total,
        correct_count=correct_count,
    )
    session.add(study_session)
    await session.flush()

    return StudySessionRecord(
        id=study_session.id,
        chat_id=chat_id,
        mode=mode,
        grade=grade,
        started_at=started_at,
        ended_at=ended_at,
        score=score,
        total=total,
        correct_count=correct_count,
    )
