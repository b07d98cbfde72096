"""Selects which pending queue entries should fire on this invocation."""
from datetime import datetime, timedelta
from typing import Iterable, List

from ..domain import QueueEntry
from ..utils.time_utils import ensure_utc

# Absorbs jitter from a trigger that does not run exactly on the minute
DEFAULT_TOLERANCE = timedelta(minutes=2)


def send_time(entry: QueueEntry) -> datetime:
    """Instant the entry should be delivered: scheduled time minus its lead."""
    return ensure_utc(entry.scheduled_datetime) - timedelta(minutes=entry.minutes_before)


def select_due(
    entries: Iterable[QueueEntry],
    now: datetime,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> List[QueueEntry]:
    """Return the pending entries whose send time is within tolerance of now.

    Input order is preserved. Entries already sent are never returned.
    """
    now = ensure_utc(now)
    return [
        entry
        for entry in entries
        if entry.sent_at is None and abs(now - send_time(entry)) <= tolerance
    ]


def is_missed(entry: QueueEntry, now: datetime, tolerance: timedelta = DEFAULT_TOLERANCE) -> bool:
    """True when a pending entry's send window closed before it was picked up."""
    return entry.sent_at is None and send_time(entry) < ensure_utc(now) - tolerance


def select_missed(
    entries: Iterable[QueueEntry],
    now: datetime,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> List[QueueEntry]:
    """Pending entries that can no longer become due."""
    return [entry for entry in entries if is_missed(entry, now, tolerance)]
