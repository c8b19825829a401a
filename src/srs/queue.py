"""Daily queue construction and the in-session requeue protocol."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Deque, Iterable, List, Optional, Sequence

from src.srs.dates import DateLike, is_due
from src.srs.records import Outcome, ProgressRecord, StudyState
from src.srs.scheduler import apply_outcome


def _review_order(record: ProgressRecord) -> tuple[str, int]:
    return record.due_date, -record.wrong_count


def build_daily_queue(
    records: Iterable[ProgressRecord],
    today_iso: str,
    new_item_limit: int,
) -> List[ProgressRecord]:
    """Return today's due records, reviews first and at most ``new_item_limit`` new items."""
    due = [record for record in records if is_due(record.due_date, today_iso)]

    review_due = sorted(
        (record for record in due if record.state is not StudyState.NEW),
        key=_review_order,
    )
    new_due = sorted(
        (record for record in due if record.state is StudyState.NEW),
        key=lambda record: -record.wrong_count,
    )

    return review_due + new_due[: max(0, new_item_limit)]


@dataclass(frozen=True, slots=True)
class QueueEntry:
    """A queued record plus whatever the UI needs to present it."""

    record: ProgressRecord
    payload: Any = None


class StudyQueue:
    """In-memory study session over a queue built by :func:`build_daily_queue`.

    ``known`` removes the front entry. ``retry`` moves the updated entry to the
    back so the learner sees the other due items before meeting it again.
    """

    def __init__(self, entries: Iterable[QueueEntry | ProgressRecord] = ()) -> None:
        self._entries: Deque[QueueEntry] = deque(
            entry if isinstance(entry, QueueEntry) else QueueEntry(entry) for entry in entries
        )
        self.known_count = 0
        self.retry_count = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    @property
    def current(self) -> Optional[QueueEntry]:
        return self._entries[0] if self._entries else None

    @property
    def remaining(self) -> Sequence[QueueEntry]:
        return tuple(self._entries)

    def apply(self, outcome: Outcome, today: Optional[DateLike] = None) -> ProgressRecord:
        """Apply ``outcome`` to the front entry and advance the queue."""
        if not self._entries:
            raise IndexError("The study queue is empty.")

        entry = self._entries.popleft()
        updated = apply_outcome(entry.record, outcome, today)
        self._settle(entry, updated, outcome)
        return updated

    def advance(self, updated: ProgressRecord, outcome: Outcome) -> None:
        """Advance past the front entry using a record updated elsewhere.

        Used when the persistence layer applied the outcome and the session
        should continue with the stored value.
        """
        if not self._entries:
            raise IndexError("The study queue is empty.")
        entry = self._entries.popleft()
        self._settle(entry, updated, outcome)

    def _settle(self, entry: QueueEntry, updated: ProgressRecord, outcome: Outcome) -> None:
        if Outcome(outcome) is Outcome.KNOWN:
            self.known_count += 1
            return
        self.retry_count += 1
        self._entries.append(replace(entry, record=updated))
