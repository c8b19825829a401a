"""Deterministic spaced-repetition core: outcome scheduling and daily queues."""

from .dates import from_iso_date, is_due, to_iso_date
from .queue import QueueEntry, StudyQueue, build_daily_queue
from .records import Outcome, ProgressRecord, StudyState
from .scheduler import apply_known_outcome, apply_outcome, apply_retry_outcome

__all__ = [
    "Outcome",
    "ProgressRecord",
    "QueueEntry",
    "StudyQueue",
    "StudyState",
    "apply_known_outcome",
    "apply_outcome",
    "apply_retry_outcome",
    "build_daily_queue",
    "from_iso_date",
    "is_due",
    "to_iso_date",
]
