"""CSV export and import of a learner's complete study state."""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.srs import ProgressRecord, StudyState
from src.srs.dates import DateLike, is_iso_date, learner_timezone, resolve_moment, to_iso_date

from . import HanjaChar, ProgressItem
from .progress import new_progress_row, store_progress_record, to_progress_record


LOGGER = logging.getLogger(__name__)

CSV_COLUMNS: Tuple[str, ...] = (
    "grade",
    "char",
    "reading",
    "meaning",
    "study_state",
    "is_learned",
    "is_mastered",
    "due_date",
    "streak",
    "interval",
    "wrong_count",
    "last_reviewed_at",
)
REQUIRED_COLUMNS: Tuple[str, ...] = (
    "grade",
    "char",
    "study_state",
    "due_date",
    "streak",
    "interval",
    "wrong_count",
)
FILE_PREFIX = "hanja-step-learning-state"


class LearningStateImportError(ValueError):
    """Raised when an uploaded learning-state file cannot be used at all."""


@dataclass(slots=True)
class CsvExportResult:
    file_name: str
    content: bytes
    row_count: int


@dataclass(slots=True)
class LearningStateImportResult:
    total_rows: int
    imported_count: int
    skipped_count: int


def export_file_name(now: datetime) -> str:
    return f"{FILE_PREFIX}-{now.strftime('%Y%m%d-%H%M%S')}.csv"


def _status_flags(state: StudyState) -> Tuple[str, str]:
    learned = "N" if state is StudyState.NEW else "Y"
    mastered = "Y" if state is StudyState.MASTERED else "N"
    return learned, mastered


async def build_learning_state_csv(
    session: AsyncSession,
    chat_id: int,
    now: Optional[datetime] = None,
) -> CsvExportResult:
    """Serialise every catalogue character with the learner's progress.

    Characters without progress are exported with NEW defaults so the file
    always describes the whole curriculum.
    """
    if now is None:
        now = datetime.now(learner_timezone())
    today_iso = to_iso_date(now)

    chars = list((await session.execute(select(HanjaChar))).scalars())
    progress_rows = await session.execute(select(ProgressItem).where(ProgressItem.chat_id == chat_id))
    progress: Dict[Tuple[int, str], ProgressRecord] = {
        (row.grade, row.char): to_progress_record(row) for row in progress_rows.scalars()
    }

    chars.sort(key=lambda item: (-item.grade, item.char))

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(CSV_COLUMNS)

    for char_info in chars:
        record = progress.get((char_info.grade, char_info.char))
        if record is None:
            record = ProgressRecord.new(char_info.char, char_info.grade, today_iso)
        learned, mastered = _status_flags(record.state)
        writer.writerow(
            (
                char_info.grade,
                char_info.char,
                char_info.reading,
                char_info.meaning,
                record.state.value,
                learned,
                mastered,
                record.due_date,
                record.streak,
                record.interval,
                record.wrong_count,
                record.last_reviewed_at.isoformat() if record.last_reviewed_at else "",
            )
        )

    return CsvExportResult(
        file_name=export_file_name(now),
        content=buffer.getvalue().encode("utf-8-sig"),
        row_count=len(chars),
    )


def _parse_state(value: str) -> Optional[StudyState]:
    try:
        return StudyState(value.strip().upper())
    except ValueError:
        return None


def _parse_non_negative_int(value: str, fallback: int = 0) -> int:
    try:
        parsed = float(value)
    except ValueError:
        return fallback
    if not math.isfinite(parsed):
        return fallback
    return max(0, int(parsed // 1))


def _parse_timestamp(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _read_rows(text: str) -> List[List[str]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff"), newline=""))
    rows = [[cell.strip() for cell in row] for row in reader]
    return [row for row in rows if any(cell for cell in row)]


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index]


async def import_learning_state_csv(
    session: AsyncSession,
    chat_id: int,
    text: str,
    today: Optional[DateLike] = None,
) -> LearningStateImportResult:
    """Restore progress records from an exported learning-state file.

    Invalid rows are skipped; the last row wins when a character appears twice.
    """
    rows = _read_rows(text)
    if len(rows) < 2:
        raise LearningStateImportError("The CSV file contains no data rows.")

    header = {name.lower(): index for index, name in enumerate(rows[0])}
    for column in REQUIRED_COLUMNS:
        if column not in header:
            raise LearningStateImportError(f"Missing required column: {column}")

    catalogue = await session.execute(select(HanjaChar.grade, HanjaChar.char))
    valid_keys = {(grade, char) for grade, char in catalogue.all()}
    today_iso = to_iso_date(resolve_moment(today)[0])

    deduped: Dict[Tuple[int, str], ProgressRecord] = {}
    skipped = 0

    for row in rows[1:]:
        char = _cell(row, header["char"])
        try:
            grade = int(_cell(row, header["grade"]))
        except ValueError:
            grade = None
        state = _parse_state(_cell(row, header["study_state"]))

        if grade is None or not char or state is None or (grade, char) not in valid_keys:
            skipped += 1
            continue

        due_date = _cell(row, header["due_date"])
        deduped[(grade, char)] = ProgressRecord(
            item_id=char,
            collection_id=grade,
            state=state,
            interval=_parse_non_negative_int(_cell(row, header["interval"])),
            streak=_parse_non_negative_int(_cell(row, header["streak"])),
            due_date=due_date if is_iso_date(due_date) else today_iso,
            wrong_count=_parse_non_negative_int(_cell(row, header["wrong_count"])),
            last_reviewed_at=_parse_timestamp(_cell(row, header.get("last_reviewed_at"))),
        )

    if deduped:
        existing = await session.execute(select(ProgressItem).where(ProgressItem.chat_id == chat_id))
        rows_by_key = {(row.grade, row.char): row for row in existing.scalars()}
        for key, record in deduped.items():
            stored = rows_by_key.get(key)
            if stored is None:
                session.add(new_progress_row(chat_id, record))
            else:
                store_progress_record(stored, record)
        await session.flush()

    LOGGER.info(
        "Imported %s learning-state rows for chat %s (%s skipped).",
        len(deduped),
        chat_id,
        skipped,
    )
    return LearningStateImportResult(
        total_rows=len(rows) - 1,
        imported_count=len(deduped),
        skipped_count=skipped,
    )
