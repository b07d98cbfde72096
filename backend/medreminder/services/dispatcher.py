"""Notification dispatcher - sends due queue entries and seeds the next cycle.

One call to run() is one scheduler tick: fetch a bounded batch of pending
entries, pick the ones due now, and process them one by one. Every processed
entry ends terminal (sent_at set, error set on failure) whatever happens to
its pushes; a confirmation of a recurring medicine then queues the next dose.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..config import settings
from ..domain import Medicine, QueueEntry, RunSummary
from ..exceptions import AdvancementError, PushNotConfiguredError
from ..stores.base import MedicineStore, QueueStore
from ..utils.time_utils import utc_now
from .notification_filter import select_due, select_missed
from .push_sender import PushSenderService, build_notification_payload, build_web_push_payload
from .queue_advancer import QueueAdvancer

logger = logging.getLogger(__name__)

NO_SUBSCRIPTIONS_ERROR = "No active subscriptions"
MEDICINE_NOT_FOUND_ERROR = "Medicine not found"
MISSED_WINDOW_ERROR = "Missed send window"

ResultListener = Callable[[QueueEntry, dict], Awaitable[None]]


class DispatchStatus(str, Enum):
    SENT = "sent"
    NO_SUBSCRIPTIONS = "no_subscriptions"
    FAILED = "failed"


@dataclass
class DispatchResult:
    """Outcome of sending one queue entry."""
    status: DispatchStatus
    reason: Optional[str] = None
    delivered: int = 0
    failed: int = 0
    removed: int = 0

    @classmethod
    def failure(cls, reason: str) -> "DispatchResult":
        return cls(status=DispatchStatus.FAILED, reason=reason)


class NotificationDispatcher:
    """Sends due notifications and advances recurring schedules."""

    def __init__(
        self,
        queue: QueueStore,
        medicines: MedicineStore,
        push_sender: PushSenderService,
        advancer: QueueAdvancer,
        batch_size: Optional[int] = None,
        tolerance: Optional[timedelta] = None,
        expire_missed: Optional[bool] = None,
    ):
        self._queue = queue
        self._medicines = medicines
        self._push_sender = push_sender
        self._advancer = advancer
        self._batch_size = batch_size or settings.dispatch_batch_size
        self._tolerance = tolerance or timedelta(seconds=settings.dispatch_tolerance_seconds)
        self._expire_missed_enabled = settings.expire_missed_entries if expire_missed is None else expire_missed
        self._listeners: List[ResultListener] = []

    def add_listener(self, listener: ResultListener):
        """Register a coroutine called with (entry, result) after each processed entry."""
        self._listeners.append(listener)

    async def _notify(self, entry: QueueEntry, result: dict):
        for listener in self._listeners:
            try:
                await listener(entry, result)
            except Exception as e:
                logger.warning(f"Dispatch listener failed for {entry.id}: {e}")

    async def dispatch(self, entry: QueueEntry, medicine: Medicine) -> DispatchResult:
        """Build the payload for entry and push it to every endpoint of its user."""
        zone = self._advancer.zone_for(medicine)
        payload = build_notification_payload(entry, medicine, zone)
        message = build_web_push_payload(payload, medicine)

        try:
            report = await self._push_sender.send_to_user(entry.user_id, message)
        except PushNotConfiguredError as e:
            logger.error(str(e))
            return DispatchResult.failure(str(e))

        if report.attempted == 0:
            return DispatchResult(status=DispatchStatus.NO_SUBSCRIPTIONS, reason=NO_SUBSCRIPTIONS_ERROR)

        return DispatchResult(
            status=DispatchStatus.SENT,
            delivered=report.delivered,
            failed=report.failed,
            removed=report.removed,
        )

    async def _advance(self, entry: QueueEntry, medicine: Medicine, now: datetime, result: dict):
        """Queue the next dose; a failure is recorded on result, never raised."""
        try:
            scheduled = await self._advancer.advance(entry, medicine, now)
        except AdvancementError as e:
            # The entry stays sent. The series has no upcoming dose until it is reseeded.
            logger.exception(f"Failed to generate next occurrence for entry {entry.id}")
            result["advanced"] = False
            result["advanceError"] = str(e)
            return

        result["advanced"] = scheduled is not None
        if scheduled is not None:
            result["nextScheduled"] = scheduled.isoformat()

    async def process_entry(self, entry: QueueEntry, now: datetime) -> dict:
        """Dispatch one due entry, mark it, and advance its series."""
        try:
            medicine = await self._medicines.get_medicine(entry.medicine_id)
            if medicine is None:
                await self._queue.mark_sent(entry.id, now, error=MEDICINE_NOT_FOUND_ERROR)
                return {"notificationId": entry.id, "error": MEDICINE_NOT_FOUND_ERROR}

            dispatched = await self.dispatch(entry, medicine)
            if dispatched.status != DispatchStatus.SENT:
                await self._queue.mark_sent(entry.id, now, error=dispatched.reason)
                return {
                    "notificationId": entry.id,
                    "medicineId": entry.medicine_id,
                    "error": dispatched.reason,
                }

            await self._queue.mark_sent(entry.id, now)
        except Exception as e:
            logger.exception(f"Error processing notification {entry.id}")
            try:
                await self._queue.mark_sent(entry.id, now, error=str(e))
            except Exception as mark_error:
                logger.error(f"Failed to mark notification {entry.id} as errored: {mark_error}")
            return {"notificationId": entry.id, "error": str(e)}

        result = {
            "notificationId": entry.id,
            "medicineId": entry.medicine_id,
            "sent": True,
            "delivered": dispatched.delivered,
            "failed": dispatched.failed,
            "removed": dispatched.removed,
        }

        if entry.notification_type == "confirmation":
            await self._advance(entry, medicine, now, result)

        await self._notify(entry, result)
        return result

    async def _expire_missed(self, entries: List[QueueEntry], now: datetime) -> int:
        """Close entries whose window passed unseen; missed confirmations still advance."""
        missed = select_missed(entries, now, self._tolerance)
        for entry in missed:
            try:
                await self._queue.mark_sent(entry.id, now, error=MISSED_WINDOW_ERROR)
                if entry.notification_type != "confirmation":
                    continue
                medicine = await self._medicines.get_medicine(entry.medicine_id)
                if medicine is not None:
                    await self._advance(entry, medicine, now, {})
            except Exception:
                logger.exception(f"Failed to expire missed notification {entry.id}")
        if missed:
            logger.warning(f"Expired {len(missed)} notifications that missed their send window")
        return len(missed)

    async def run(self, now: Optional[datetime] = None) -> RunSummary:
        """Process one batch of due notifications."""
        now = now or utc_now()

        # Rows older than the window can only be picked up to be expired
        scheduled_after = None if self._expire_missed_enabled else now - self._tolerance
        entries = await self._queue.fetch_pending_queue_entries(self._batch_size, scheduled_after)
        if not entries:
            return RunSummary(message="No pending notifications")

        expired = await self._expire_missed(entries, now) if self._expire_missed_enabled else 0

        due = select_due(entries, now, self._tolerance)
        logger.info(f"Found {len(entries)} pending notifications, {len(due)} ready to send")

        if not due:
            return RunSummary(
                message="No notifications ready to send at this time",
                count=len(entries),
                expired=expired,
            )

        results = []
        for entry in due:
            results.append(await self.process_entry(entry, now))

        return RunSummary(
            message="Notifications processed",
            count=len(entries),
            ready=len(due),
            expired=expired,
            results=results,
        )
