from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from src.db import ProgressItem, StudySession
from src.db.progress import (
    apply_study_action,
    get_dashboard_stats,
    get_progress_by_grade,
    get_progress_row,
    get_study_queue,
    get_upcoming_reviews,
    lookup_char,
    save_quiz_outcome,
)
from src.db.seed import bundled_catalogue, ensure_grade_progress
from src.srs import Outcome, StudyState


CHAT_ID = 101
TODAY = date(2026, 2, 20)


async def _set_progress(session, char: str, **values) -> None:
    row = await get_progress_row(session, CHAT_ID, char, 8)
    assert row is not None
    for name, value in values.items():
        setattr(row, name, value)
    await session.flush()


@pytest.mark.asyncio
async def test_ensure_grade_progress_creates_new_records_once(seeded_factory) -> None:
    async with seeded_factory() as session:
        async with session.begin():
            created_first = await ensure_grade_progress(session, CHAT_ID, 8, today=TODAY)
        async with session.begin():
            created_second = await ensure_grade_progress(session, CHAT_ID, 8, today=TODAY)
        records = await get_progress_by_grade(session, CHAT_ID, 8)

    grade_eight = [entry for entry in bundled_catalogue() if entry.grade == 8]
    assert created_first == len(grade_eight)
    assert created_second == 0
    assert all(record.state is StudyState.NEW for record in records)
    assert all(record.due_date == "2026-02-20" for record in records)
    assert all(record.last_reviewed_at is None for record in records)


@pytest.mark.asyncio
async def test_ensure_grade_progress_ignores_empty_grade(seeded_factory) -> None:
    async with seeded_factory() as session:
        async with session.begin():
            created = await ensure_grade_progress(session, CHAT_ID, 1, today=TODAY)

    assert created == 0


@pytest.mark.asyncio
async def test_study_queue_puts_reviews_first_and_caps_items(seeded_factory) -> None:
    async with seeded_factory() as session:
        async with session.begin():
            await ensure_grade_progress(session, CHAT_ID, 8, today=TODAY)
            await _set_progress(session, "山", state="REVIEW", streak=2, due_date="2026-02-19", wrong_count=1)
            await _set_progress(session, "水", state="REVIEW", streak=3, due_date="2026-02-18")
            await _set_progress(session, "火", state="LEARNING", streak=1, due_date="2026-02-25")

        cards = await get_study_queue(session, CHAT_ID, 8, new_limit=3, max_items=4, today=TODAY)

    chars = [card.char.char for card in cards]
    assert chars[:2] == ["水", "山"]
    assert len(cards) == 4
    assert "火" not in chars
    assert all(card.progress.state is StudyState.NEW for card in cards[2:])
    assert cards[0].char.meaning == "물"


@pytest.mark.asyncio
async def test_apply_study_action_persists_outcome(seeded_factory) -> None:
    async with seeded_factory() as session:
        async with session.begin():
            await ensure_grade_progress(session, CHAT_ID, 8, today=TODAY)
            known = await apply_study_action(session, CHAT_ID, "山", 8, Outcome.KNOWN, today=TODAY)
            retry = await apply_study_action(session, CHAT_ID, "水", 8, Outcome.RETRY, today=TODAY)
            missing = await apply_study_action(session, CHAT_ID, "龍", 8, Outcome.KNOWN, today=TODAY)

    async with seeded_factory() as session:
        stored = await get_progress_row(session, CHAT_ID, "山", 8)
        stored_retry = await get_progress_row(session, CHAT_ID, "水", 8)

    assert missing is None
    assert known is not None and known.due_date == "2026-02-21"
    assert retry is not None and retry.wrong_count == 1
    assert stored.state == "LEARNING"
    assert stored.streak == 1
    assert stored.due_date == "2026-02-21"
    assert stored.last_reviewed_at is not None
    assert stored_retry.due_date == "2026-02-20"
    assert stored_retry.wrong_count == 1


@pytest.mark.asyncio
async def test_dashboard_and_upcoming_reviews(seeded_factory) -> None:
    async with seeded_factory() as session:
        async with session.begin():
            await ensure_grade_progress(session, CHAT_ID, 8, today=TODAY)
            await _set_progress(session, "山", state="MASTERED", streak=6, due_date="2026-03-10")
            await _set_progress(session, "水", state="REVIEW", streak=2, due_date="2026-02-19")
            await _set_progress(session, "火", state="LEARNING", streak=1, due_date="2026-02-22")

        stats = await get_dashboard_stats(session, CHAT_ID, 8, today=TODAY)
        upcoming = await get_upcoming_reviews(session, CHAT_ID, 8, limit=50, today=TODAY)

    assert stats.total == 50
    assert stats.mastered == 1
    assert stats.review_due == 1
    assert stats.new_count == 47
    assert upcoming[0].char == "水"
    assert upcoming[0].days_until == -1
    assert "山" not in [item.char for item in upcoming]
    assert upcoming[-1].char == "火"
    assert upcoming[-1].days_until == 2


@pytest.mark.asyncio
async def test_lookup_char_uses_first_character(seeded_factory) -> None:
    async with seeded_factory() as session:
        found = await lookup_char(session, "  山水 ")
        missing = await lookup_char(session, "龍")
        empty = await lookup_char(session, "   ")

    assert found is not None
    assert found.reading == "산"
    assert missing is None
    assert empty is None


@pytest.mark.asyncio
async def test_save_quiz_outcome_schedules_answers(seeded_factory) -> None:
    started = datetime(2026, 2, 20, 9, 0, tzinfo=timezone.utc)
    ended = datetime(2026, 2, 20, 9, 5, tzinfo=timezone.utc)

    async with seeded_factory() as session:
        async with session.begin():
            await ensure_grade_progress(session, CHAT_ID, 8, today=TODAY)
            record = await save_quiz_outcome(
                session,
                CHAT_ID,
                8,
                "meaning",
                started,
                ended,
                [("山", True), ("水", False), ("龍", True)],
            )

    async with seeded_factory() as session:
        mountain = await get_progress_row(session, CHAT_ID, "山", 8)
        water = await get_progress_row(session, CHAT_ID, "水", 8)
        sessions = list((await session.execute(select(StudySession))).scalars())

    assert record.id is not None
    assert record.total == 3
    assert record.correct_count == 2
    assert record.score == 67
    assert mountain.streak == 1
    assert mountain.due_date == "2026-02-21"
    assert water.wrong_count == 1
    assert water.state == "LEARNING"
    assert len(sessions) == 1
    assert sessions[0].mode == "meaning"


@pytest.mark.asyncio
async def test_save_quiz_outcome_without_answers_scores_zero(seeded_factory) -> None:
    now = datetime(2026, 2, 20, tzinfo=timezone.utc)
    async with seeded_factory() as session:
        async with session.begin():
            record = await save_quiz_outcome(session, CHAT_ID, 8, "mixed", now, now, [])
            rows = list((await session.execute(select(ProgressItem))).scalars())

    assert record.score == 0
    assert record.total == 0
    assert rows == []
