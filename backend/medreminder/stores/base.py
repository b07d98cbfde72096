"""Store interfaces.

The dispatcher, queue advancer and stock ledger only talk to these protocols,
so they run unchanged against the database (SqlStore) or plain dicts
(InMemoryStore).
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence, Tuple

from ..domain import (
    Confirmation,
    Medicine,
    NewQueueEntry,
    QueueEntry,
    StockHistoryEntry,
    StockLevel,
    Subscription,
)


class QueueStore(Protocol):
    async def fetch_pending_queue_entries(
        self, limit: int, scheduled_after: Optional[datetime] = None
    ) -> List[QueueEntry]:
        """Pending rows (sent_at is null), oldest scheduled first.

        scheduled_after drops rows whose dose instant is earlier, which can no
        longer become due and would otherwise fill the batch.
        """
        ...

    async def insert_queue_entry(self, row: NewQueueEntry) -> QueueEntry:
        """Insert one row; raises DuplicateQueueEntryError if its slot is taken."""
        ...

    async def insert_queue_entries(self, rows: Sequence[NewQueueEntry]) -> List[QueueEntry]:
        """Insert rows, skipping any whose slot is already taken."""
        ...

    async def mark_sent(self, entry_id: str, sent_at: datetime, error: Optional[str] = None) -> None:
        ...

    async def list_queue_entries(
        self, user_id: str, pending_only: bool = False, limit: int = 100
    ) -> List[QueueEntry]:
        ...


class MedicineStore(Protocol):
    async def get_medicine(self, medicine_id: str) -> Optional[Medicine]:
        ...


class SubscriptionStore(Protocol):
    async def list_subscriptions(self, user_id: str) -> List[Subscription]:
        ...

    async def delete_subscription(self, endpoint: str) -> None:
        """Remove an endpoint the push service reported as gone."""
        ...

    async def upsert_subscription(
        self,
        user_id: str,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> Subscription:
        ...

    async def remove_user_subscription(self, user_id: str, endpoint: str) -> bool:
        ...


class PharmacyStore(Protocol):
    async def get_stock(self, pharmacy_medicine_id: str) -> Optional[StockLevel]:
        ...

    async def set_stock(self, pharmacy_medicine_id: str, new_stock: Decimal) -> None:
        ...

    async def append_stock_history(self, row: StockHistoryEntry) -> StockHistoryEntry:
        ...

    async def record_stock_change(
        self,
        pharmacy_medicine_id: str,
        expected_version: int,
        row: StockHistoryEntry,
    ) -> Optional[StockHistoryEntry]:
        """Write row.after_stock and append row atomically.

        Returns None without writing anything when the item's version no longer
        matches expected_version.
        """
        ...

    async def list_stock_history(
        self, user_id: str, medicine_id: Optional[str] = None, limit: int = 100
    ) -> List[StockHistoryEntry]:
        ...


class ConfirmationStore(Protocol):
    async def get_existing_confirmation(
        self, user_id: str, medicine_id: str, scheduled_datetime: datetime
    ) -> Optional[Confirmation]:
        ...

    async def upsert_confirmation(self, row: Confirmation) -> Tuple[Confirmation, bool]:
        """Insert or overwrite the answer for row's dose.

        Returns the stored row and the taken flag it replaced (False for a new
        row). The flag is read and written atomically, so of two concurrent
        writes of the same answer only one sees the flag change.
        """
        ...

    async def list_confirmations(
        self,
        user_id: str,
        medicine_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Confirmation]:
        ...
