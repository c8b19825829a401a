from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest
import pytz

from src.srs import dates
from src.srs import (
    Outcome,
    ProgressRecord,
    StudyState,
    apply_known_outcome,
    apply_outcome,
    apply_retry_outcome,
    build_daily_queue,
)
from src.srs.scheduler import INTERVAL_TABLE_DAYS, next_interval, state_for_streak


TODAY = date(2026, 2, 20)


def _progress(**overrides) -> ProgressRecord:
    base = ProgressRecord(item_id="大", collection_id=8, due_date="2026-02-20")
    return replace(base, **overrides)


def test_known_outcome_on_new_record_starts_learning() -> None:
    updated = apply_known_outcome(_progress(), TODAY)

    assert updated.streak == 1
    assert updated.interval == 1
    assert updated.state is StudyState.LEARNING
    assert updated.due_date == "2026-02-21"
    assert updated.wrong_count == 0
    assert updated.last_reviewed_at == datetime(2026, 2, 20, tzinfo=timezone.utc)


def test_retry_outcome_resets_review_record() -> None:
    record = _progress(
        state=StudyState.REVIEW,
        streak=3,
        interval=4,
        wrong_count=2,
        due_date="2026-02-25",
    )

    updated = apply_retry_outcome(record, TODAY)

    assert updated.streak == 0
    assert updated.interval == 1
    assert updated.state is StudyState.LEARNING
    assert updated.wrong_count == 3
    assert updated.due_date == "2026-02-20"


def test_retry_fully_demotes_mastered_record() -> None:
    record = _progress(state=StudyState.MASTERED, streak=9, interval=30, due_date="2026-03-01")

    updated = apply_retry_outcome(record, TODAY)

    assert updated.state is StudyState.LEARNING
    assert updated.streak == 0
    assert updated.interval == 1


@pytest.mark.parametrize(
    ("streak", "expected_state"),
    [
        (0, StudyState.LEARNING),
        (1, StudyState.REVIEW),
        (2, StudyState.REVIEW),
        (3, StudyState.REVIEW),
        (4, StudyState.REVIEW),
        (5, StudyState.MASTERED),
        (6, StudyState.MASTERED),
        (11, StudyState.MASTERED),
    ],
)
def test_known_outcome_increments_streak_and_schedules_future(
    streak: int, expected_state: StudyState
) -> None:
    record = _progress(state=StudyState.REVIEW if streak else StudyState.NEW, streak=streak)

    updated = apply_known_outcome(record, TODAY)

    assert updated.streak == streak + 1
    assert updated.state is expected_state
    assert updated.interval >= 1
    assert updated.due_date > TODAY.isoformat()
    assert updated.due_date == (TODAY + timedelta(days=updated.interval)).isoformat()


@pytest.mark.parametrize("streak", [0, 1, 2, 5, 6, 30])
def test_retry_outcome_resets_any_streak(streak: int) -> None:
    record = _progress(
        state=StudyState.LEARNING if streak < 2 else StudyState.REVIEW,
        streak=streak,
        interval=7,
        wrong_count=4,
        due_date="2026-02-18",
    )

    updated = apply_retry_outcome(record, TODAY)

    assert updated.streak == 0
    assert updated.interval == 1
    assert updated.state is StudyState.LEARNING
    assert updated.due_date == "2026-02-20"
    assert updated.wrong_count == 5


@pytest.mark.parametrize(
    ("streak", "expected"),
    [
        (1, StudyState.LEARNING),
        (2, StudyState.REVIEW),
        (5, StudyState.REVIEW),
        (6, StudyState.MASTERED),
        (15, StudyState.MASTERED),
    ],
)
def test_state_is_derived_from_streak(streak: int, expected: StudyState) -> None:
    assert state_for_streak(streak) is expected


def test_interval_table_clamps_past_last_entry() -> None:
    assert [next_interval(streak) for streak in range(1, 7)] == list(INTERVAL_TABLE_DAYS)
    assert next_interval(7) == 30
    assert next_interval(40) == 30
    assert next_interval(0) == 1


def test_outcomes_do_not_mutate_input() -> None:
    record = _progress(streak=2, state=StudyState.REVIEW)

    apply_known_outcome(record, TODAY)
    apply_retry_outcome(record, TODAY)

    assert record.streak == 2
    assert record.wrong_count == 0
    assert record.last_reviewed_at is None


def test_datetime_today_sets_review_timestamp() -> None:
    moment = datetime(2026, 2, 20, 21, 30, tzinfo=timezone.utc)

    updated = apply_known_outcome(_progress(), moment)

    assert updated.due_date == "2026-02-21"
    assert updated.last_reviewed_at == moment


def test_apply_outcome_accepts_raw_signal() -> None:
    record = _progress()

    assert apply_outcome(record, Outcome.KNOWN, TODAY).streak == 1
    assert apply_outcome(record, "retry", TODAY).wrong_count == 1


def test_daily_queue_orders_reviews_before_new() -> None:
    queue = build_daily_queue(
        [
            _progress(item_id="學", state=StudyState.NEW),
            _progress(item_id="校", state=StudyState.REVIEW, due_date="2026-02-19", wrong_count=1),
            _progress(item_id="生", state=StudyState.REVIEW, due_date="2026-02-18", wrong_count=0),
        ],
        "2026-02-20",
        20,
    )

    assert [record.item_id for record in queue] == ["生", "校", "學"]


def test_daily_queue_breaks_due_ties_by_wrong_count() -> None:
    queue = build_daily_queue(
        [
            _progress(item_id="一", state=StudyState.LEARNING, due_date="2026-02-19", wrong_count=0),
            _progress(item_id="二", state=StudyState.REVIEW, due_date="2026-02-19", wrong_count=4),
            _progress(item_id="三", state=StudyState.MASTERED, due_date="2026-02-19", wrong_count=1),
        ],
        "2026-02-20",
        0,
    )

    assert [record.item_id for record in queue] == ["二", "三", "一"]


def test_daily_queue_caps_new_items_and_prefers_failed_ones() -> None:
    records = [_progress(item_id=str(index), state=StudyState.NEW) for index in range(5)]
    records.append(_progress(item_id="again", state=StudyState.NEW, wrong_count=3))

    queue = build_daily_queue(records, "2026-02-20", 2)

    assert [record.item_id for record in queue] == ["again", "0"]


def test_daily_queue_excludes_future_records() -> None:
    queue = build_daily_queue(
        [
            _progress(item_id="明", state=StudyState.REVIEW, due_date="2026-02-21"),
            _progress(item_id="新", state=StudyState.NEW, due_date="2026-03-01"),
            _progress(item_id="今", state=StudyState.LEARNING, due_date="2026-02-20"),
        ],
        "2026-02-20",
        10,
    )

    assert [record.item_id for record in queue] == ["今"]


def test_daily_queue_treats_negative_limit_as_zero() -> None:
    queue = build_daily_queue([_progress(state=StudyState.NEW)], "2026-02-20", -3)

    assert queue == []


def test_daily_queue_leaves_input_untouched() -> None:
    records = [
        _progress(item_id="b", state=StudyState.REVIEW, due_date="2026-02-19"),
        _progress(item_id="a", state=StudyState.REVIEW, due_date="2026-02-10"),
    ]
    snapshot = list(records)

    build_daily_queue(records, "2026-02-20", 5)

    assert records == snapshot
    assert build_daily_queue([], "2026-02-20", 5) == []


def test_record_requires_due_date() -> None:
    with pytest.raises(TypeError):
        ProgressRecord(item_id="大", collection_id=8)  # type: ignore[call-arg]


def test_known_outcome_uses_learner_calendar_day() -> None:
    seoul = pytz.timezone("Asia/Seoul")
    morning = seoul.localize(datetime(2026, 2, 21, 8, 30))

    updated = apply_known_outcome(ProgressRecord.new("山", 8, "2026-02-21"), morning)

    assert updated.due_date == "2026-02-22"
    assert updated.last_reviewed_at == datetime(2026, 2, 20, 23, 30, tzinfo=timezone.utc)
    assert updated.last_reviewed_at.tzinfo is timezone.utc


def test_default_today_follows_learner_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
    # 08:30 in Seoul is still the previous day in UTC.
    monkeypatch.setattr(dates, "_utcnow", lambda: datetime(2026, 2, 20, 23, 30, tzinfo=timezone.utc))

    updated = apply_known_outcome(ProgressRecord.new("山", 8, "2026-02-21"))
    utc_day, _ = dates.resolve_moment(tz=timezone.utc)

    assert updated.due_date == "2026-02-22"
    assert updated.interval == 1
    assert utc_day == date(2026, 2, 20)
