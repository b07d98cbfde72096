"""Dict-backed store used by the tests and for local dry runs of the dispatcher."""
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ..domain import (
    Confirmation,
    Medicine,
    NewQueueEntry,
    QueueEntry,
    StockHistoryEntry,
    StockLevel,
    Subscription,
    new_id,
)
from ..exceptions import DuplicateQueueEntryError
from ..utils.time_utils import ensure_utc, utc_now


class InMemoryStore:
    """Implements every store protocol on plain dictionaries."""

    def __init__(self):
        self.medicines: Dict[str, Medicine] = {}
        self.queue: Dict[str, QueueEntry] = {}
        self.subscriptions: List[Subscription] = []
        self.stock: Dict[str, StockLevel] = {}
        self.stock_history: List[StockHistoryEntry] = []
        self.confirmations: Dict[Tuple[str, str, datetime], Confirmation] = {}

    # Seeding helpers

    def add_medicine(self, medicine: Medicine) -> Medicine:
        self.medicines[medicine.id] = medicine
        return medicine

    def add_queue_entry(self, entry: QueueEntry) -> QueueEntry:
        self.queue[entry.id] = entry
        return entry

    def add_subscription(self, subscription: Subscription) -> Subscription:
        self.subscriptions.append(subscription)
        return subscription

    def add_pharmacy_item(
        self, medicine_id: str, user_id: str, stock, unit: str = "tablet"
    ) -> StockLevel:
        level = StockLevel(medicine_id=medicine_id, user_id=user_id, stock=Decimal(str(stock)), unit=unit)
        self.stock[medicine_id] = level
        return level

    # Queue store

    async def fetch_pending_queue_entries(
        self, limit: int, scheduled_after: Optional[datetime] = None
    ) -> List[QueueEntry]:
        pending = [
            e for e in self.queue.values()
            if e.sent_at is None
            and (scheduled_after is None or ensure_utc(e.scheduled_datetime) >= ensure_utc(scheduled_after))
        ]
        pending.sort(key=lambda e: ensure_utc(e.scheduled_datetime))
        return pending[:limit]

    def _slot_taken(self, row: NewQueueEntry) -> bool:
        scheduled = ensure_utc(row.scheduled_datetime)
        return any(
            e.medicine_id == row.medicine_id
            and ensure_utc(e.scheduled_datetime) == scheduled
            and e.notification_type == row.notification_type
            for e in self.queue.values()
        )

    async def insert_queue_entry(self, row: NewQueueEntry) -> QueueEntry:
        if self._slot_taken(row):
            raise DuplicateQueueEntryError(
                f"{row.notification_type} for {row.medicine_id} at {row.scheduled_datetime} already queued"
            )
        entry = QueueEntry(
            id=new_id(),
            user_id=row.user_id,
            medicine_id=row.medicine_id,
            scheduled_datetime=ensure_utc(row.scheduled_datetime),
            notification_type=row.notification_type,
            minutes_before=row.minutes_before,
        )
        self.queue[entry.id] = entry
        return entry

    async def insert_queue_entries(self, rows: Sequence[NewQueueEntry]) -> List[QueueEntry]:
        inserted = []
        for row in rows:
            try:
                inserted.append(await self.insert_queue_entry(row))
            except DuplicateQueueEntryError:
                continue
        return inserted

    async def mark_sent(self, entry_id: str, sent_at: datetime, error: Optional[str] = None) -> None:
        entry = self.queue[entry_id]
        self.queue[entry_id] = replace(entry, sent_at=sent_at, error=error)

    async def list_queue_entries(
        self, user_id: str, pending_only: bool = False, limit: int = 100
    ) -> List[QueueEntry]:
        rows = [
            e for e in self.queue.values()
            if e.user_id == user_id and (not pending_only or e.sent_at is None)
        ]
        rows.sort(key=lambda e: ensure_utc(e.scheduled_datetime))
        return rows[:limit]

    # Medicine store

    async def get_medicine(self, medicine_id: str) -> Optional[Medicine]:
        return self.medicines.get(medicine_id)

    # Subscription store

    async def list_subscriptions(self, user_id: str) -> List[Subscription]:
        return [s for s in self.subscriptions if s.user_id == user_id]

    async def delete_subscription(self, endpoint: str) -> None:
        self.subscriptions = [s for s in self.subscriptions if s.endpoint != endpoint]

    async def upsert_subscription(
        self,
        user_id: str,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> Subscription:
        await self.remove_user_subscription(user_id, endpoint)
        return self.add_subscription(Subscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth))

    async def remove_user_subscription(self, user_id: str, endpoint: str) -> bool:
        before = len(self.subscriptions)
        self.subscriptions = [
            s for s in self.subscriptions
            if not (s.user_id == user_id and s.endpoint == endpoint)
        ]
        return len(self.subscriptions) != before

    # Pharmacy store

    async def get_stock(self, pharmacy_medicine_id: str) -> Optional[StockLevel]:
        return self.stock.get(pharmacy_medicine_id)

    async def set_stock(self, pharmacy_medicine_id: str, new_stock: Decimal) -> None:
        level = self.stock[pharmacy_medicine_id]
        self.stock[pharmacy_medicine_id] = replace(level, stock=new_stock, version=level.version + 1)

    async def append_stock_history(self, row: StockHistoryEntry) -> StockHistoryEntry:
        stored = row.with_id(new_id(), utc_now())
        self.stock_history.append(stored)
        return stored

    async def record_stock_change(
        self,
        pharmacy_medicine_id: str,
        expected_version: int,
        row: StockHistoryEntry,
    ) -> Optional[StockHistoryEntry]:
        level = self.stock.get(pharmacy_medicine_id)
        if level is None or level.version != expected_version:
            return None
        await self.set_stock(pharmacy_medicine_id, row.after_stock)
        return await self.append_stock_history(row)

    async def list_stock_history(
        self, user_id: str, medicine_id: Optional[str] = None, limit: int = 100
    ) -> List[StockHistoryEntry]:
        rows = [
            h for h in self.stock_history
            if h.user_id == user_id and (medicine_id is None or h.medicine_id == medicine_id)
        ]
        return list(reversed(rows))[:limit]

    # Confirmation store

    async def get_existing_confirmation(
        self, user_id: str, medicine_id: str, scheduled_datetime: datetime
    ) -> Optional[Confirmation]:
        return self.confirmations.get((user_id, medicine_id, ensure_utc(scheduled_datetime)))

    async def upsert_confirmation(self, row: Confirmation) -> Tuple[Confirmation, bool]:
        key = (row.user_id, row.medicine_id, ensure_utc(row.scheduled_datetime))
        existing = self.confirmations.get(key)
        stored = replace(
            row,
            scheduled_datetime=key[2],
            id=existing.id if existing else new_id(),
            confirmed_at=row.confirmed_at or utc_now(),
        )
        self.confirmations[key] = stored
        return stored, existing.taken if existing else False

    async def list_confirmations(
        self,
        user_id: str,
        medicine_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Confirmation]:
        rows = [
            c for c in self.confirmations.values()
            if c.user_id == user_id
            and (medicine_id is None or c.medicine_id == medicine_id)
            and (start is None or c.scheduled_datetime >= ensure_utc(start))
            and (end is None or c.scheduled_datetime <= ensure_utc(end))
        ]
        rows.sort(key=lambda c: c.scheduled_datetime, reverse=True)
        return rows
