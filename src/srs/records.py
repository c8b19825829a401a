"""Value types shared by the scheduler and the queue builder."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class StudyState(str, Enum):
    NEW = "NEW"
    LEARNING = "LEARNING"
    REVIEW = "REVIEW"
    MASTERED = "MASTERED"


class Outcome(str, Enum):
    """Learner response to a presented item."""

    KNOWN = "known"
    RETRY = "retry"


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """Scheduling state of one item within one collection."""

    item_id: str
    collection_id: int
    due_date: str
    state: StudyState = StudyState.NEW
    interval: int = 0
    streak: int = 0
    wrong_count: int = 0
    last_reviewed_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, int]:
        return self.item_id, self.collection_id

    @classmethod
    def new(cls, item_id: str, collection_id: int, due_date: str) -> "ProgressRecord":
        """Return the record for an item that was just introduced to a collection."""
        return cls(item_id=item_id, collection_id=collection_id, due_date=due_date)
