"""Plain value types passed between the scheduling core and the stores.

The core never touches ORM rows directly; stores translate to and from these.
"""
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional


def new_id() -> str:
    """Generate an opaque row identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class QueueEntry:
    """One row of the notification queue."""
    id: str
    user_id: str
    medicine_id: str
    scheduled_datetime: datetime
    notification_type: str  # reminder, confirmation
    minutes_before: int = 0
    sent_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.sent_at is None


@dataclass(frozen=True)
class NewQueueEntry:
    """A queue row that has not been persisted yet."""
    user_id: str
    medicine_id: str
    scheduled_datetime: datetime
    notification_type: str
    minutes_before: int = 0


@dataclass(frozen=True)
class Medicine:
    """The parts of a medicine schedule the notification core reads."""
    id: str
    user_id: str
    name: str
    occurrence: str
    meal_timing: str
    dosage: Optional[str] = None
    timing: Optional[str] = None
    scheduled_date: Optional[date] = None
    timezone: Optional[str] = None
    pharmacy_medicine_id: Optional[str] = None
    dose_amount: Optional[Decimal] = None
    dose_unit: Optional[str] = None


@dataclass(frozen=True)
class Subscription:
    """A Web Push endpoint and its encryption keys."""
    user_id: str
    endpoint: str
    p256dh: str
    auth: str

    def to_webpush_info(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }


@dataclass(frozen=True)
class StockLevel:
    """Stock on hand for one pharmacy item."""
    medicine_id: str
    user_id: str
    stock: Decimal
    unit: str
    version: int = 0


@dataclass(frozen=True)
class StockHistoryEntry:
    """One immutable stock movement."""
    user_id: str
    medicine_id: str
    delta: Decimal
    before_stock: Decimal
    after_stock: Decimal
    stock_unit: str
    source: str
    note: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def with_id(self, id: str, created_at: datetime) -> "StockHistoryEntry":
        return replace(self, id=id, created_at=created_at)


@dataclass(frozen=True)
class Confirmation:
    """The user's answer for one scheduled dose."""
    user_id: str
    medicine_id: str
    scheduled_datetime: datetime
    taken: bool = False
    skipped: bool = False
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class RunSummary:
    """What one dispatcher invocation did, returned to the cron trigger."""
    message: str
    count: int = 0
    ready: int = 0
    expired: int = 0
    results: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "count": self.count,
            "ready": self.ready,
            "expired": self.expired,
            "results": self.results,
        }
