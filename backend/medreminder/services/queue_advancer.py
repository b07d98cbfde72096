"""Queue advancer - enqueues the next reminder/confirmation pair of a recurring schedule."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ..config import settings
from ..domain import Medicine, NewQueueEntry, QueueEntry
from ..exceptions import AdvancementError
from ..stores.base import QueueStore
from ..utils.time_utils import ensure_utc, resolve_zone
from .recurrence import first_occurrence, next_occurrence, reminder_minutes_for

logger = logging.getLogger(__name__)


def build_queue_pair(
    user_id: str,
    medicine: Medicine,
    scheduled: datetime,
) -> List[NewQueueEntry]:
    """The reminder and confirmation rows for one dose."""
    return [
        NewQueueEntry(
            user_id=user_id,
            medicine_id=medicine.id,
            scheduled_datetime=scheduled,
            notification_type="reminder",
            minutes_before=reminder_minutes_for(medicine.meal_timing),
        ),
        NewQueueEntry(
            user_id=user_id,
            medicine_id=medicine.id,
            scheduled_datetime=scheduled,
            notification_type="confirmation",
            minutes_before=0,
        ),
    ]


class QueueAdvancer:
    """Keeps exactly one upcoming dose queued for each recurring medicine.

    Inserts go through the queue's (medicine, instant, type) uniqueness, so
    advancing twice from the same entry queues the pair once.
    """

    def __init__(self, queue: QueueStore, reference_timezone: Optional[str] = None):
        self._queue = queue
        self._reference_timezone = reference_timezone or settings.reference_timezone

    def zone_for(self, medicine: Medicine):
        return resolve_zone(medicine.timezone, self._reference_timezone)

    async def _enqueue(self, user_id: str, medicine: Medicine, scheduled: datetime) -> List[QueueEntry]:
        rows = build_queue_pair(user_id, medicine, scheduled)
        try:
            inserted = await self._queue.insert_queue_entries(rows)
        except Exception as e:
            raise AdvancementError(
                f"Failed to enqueue {medicine.id} at {scheduled.isoformat()}: {e}"
            ) from e

        if len(inserted) < len(rows):
            logger.info(
                f"{len(rows) - len(inserted)} of {len(rows)} entries for {medicine.id} "
                f"at {scheduled.isoformat()} were already queued"
            )
        return inserted

    async def advance(self, entry: QueueEntry, medicine: Medicine, now: datetime) -> Optional[datetime]:
        """Queue the dose after entry's; returns its instant, or None when the series ended."""
        scheduled = next_occurrence(
            entry.scheduled_datetime,
            medicine.occurrence,
            now,
            self.zone_for(medicine),
        )
        if scheduled is None:
            return None

        await self._enqueue(entry.user_id, medicine, scheduled)
        logger.info(f"Generated next occurrence for {medicine.id}: {scheduled.isoformat()}")
        return scheduled

    async def seed(self, medicine: Medicine, now: datetime) -> Optional[datetime]:
        """Queue the first upcoming dose of a newly created schedule.

        The reminder is left out when its send time has already passed.
        """
        if medicine.scheduled_date is None or not medicine.timing:
            raise ValueError(f"Medicine {medicine.id} has no start date or timing")

        scheduled = first_occurrence(
            medicine.scheduled_date,
            medicine.timing,
            medicine.occurrence,
            now,
            self.zone_for(medicine),
        )
        if scheduled is None:
            logger.info(f"Medicine {medicine.id} has no upcoming dose to schedule")
            return None

        rows = build_queue_pair(medicine.user_id, medicine, scheduled)
        now = ensure_utc(now)
        rows = [
            row for row in rows
            if row.scheduled_datetime - timedelta(minutes=row.minutes_before) >= now
        ]
        try:
            await self._queue.insert_queue_entries(rows)
        except Exception as e:
            raise AdvancementError(f"Failed to seed queue for {medicine.id}: {e}") from e

        logger.info(f"Scheduled first dose of {medicine.id} at {scheduled.isoformat()}")
        return scheduled
