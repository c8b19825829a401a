"""Seeding of the bundled character catalogue and per-learner progress rows."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.srs import ProgressRecord
from src.srs.dates import DateLike, resolve_moment, to_iso_date

from . import HanjaChar, ProgressItem
from .progress import get_chars_by_grade, new_progress_row


LOGGER = logging.getLogger(__name__)

SUPPORTED_GRADES: Tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 1)
CATALOGUE_PATH = Path(__file__).resolve().parents[2] / "static" / "hanja_chars.csv"


@dataclass(frozen=True, slots=True)
class CharPayload:
    """Catalogue entry as read from the bundled CSV file."""

    char: str
    grade: int
    reading: str
    meaning: str
    examples: Tuple[str, ...] = field(default_factory=tuple)

    def to_model(self) -> HanjaChar:
        return HanjaChar(
            char=self.char,
            grade=self.grade,
            reading=self.reading,
            meaning=self.meaning,
            examples=list(self.examples),
        )


def load_catalogue(path: Path = CATALOGUE_PATH) -> List[CharPayload]:
    """Read the character catalogue, skipping incomplete rows."""
    entries: List[CharPayload] = []
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as csv_file:
            reader = csv.DictReader(csv_file)
            for row_index, row in enumerate(reader, start=2):
                char = (row.get("char") or "").strip()
                reading = (row.get("reading") or "").strip()
                meaning = (row.get("meaning") or "").strip()
                try:
                    grade = int((row.get("grade") or "").strip())
                except ValueError:
                    grade = None
                if not char or not reading or not meaning or grade is None:
                    LOGGER.debug("Skipping incomplete catalogue row %s: %s", row_index, row)
                    continue
                examples = tuple(
                    example.strip()
                    for example in (row.get("examples") or "").split("|")
                    if example.strip()
                )
                entries.append(CharPayload(char, grade, reading, meaning, examples))
    except FileNotFoundError as exc:
        raise RuntimeError(f"Character catalogue {path} is missing.") from exc
    return entries


@lru_cache(maxsize=1)
def bundled_catalogue() -> Tuple[CharPayload, ...]:
    return tuple(load_catalogue())


async def seed_base_data(
    session: AsyncSession,
    catalogue: Optional[List[CharPayload]] = None,
) -> int:
    """Populate the character catalogue when it is empty.

    Returns the number of inserted characters.
    """
    existing = await session.scalar(select(func.count()).select_from(HanjaChar))
    if existing:
        return 0

    payloads = list(bundled_catalogue() if catalogue is None else catalogue)
    session.add_all(payload.to_model() for payload in payloads)
    await session.flush()
    LOGGER.info("Seeded %s catalogue characters.", len(payloads))
    return len(payloads)


async def ensure_grade_progress(
    session: AsyncSession,
    chat_id: int,
    grade: int,
    today: Optional[DateLike] = None,
) -> int:
    """Create NEW progress records for every character of ``grade`` the learner lacks."""
    chars = await get_chars_by_grade(session, grade)
    if not chars:
        return 0

    result = await session.execute(
        select(ProgressItem.char).where(
            ProgressItem.chat_id == chat_id,
            ProgressItem.grade == grade,
        )
    )
    known = set(result.scalars())
    today_iso = to_iso_date(resolve_moment(today)[0])

    missing = [
        new_progress_row(chat_id, ProgressRecord.new(item.char, grade, today_iso))
        for item in chars
        if item.char not in known
    ]
    if missing:
        session.add_all(missing)
        await session.flush()
    return len(missing)
