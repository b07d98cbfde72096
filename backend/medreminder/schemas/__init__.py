"""Pydantic schemas for API request/response models."""
from .notification import (
    DispatchSummary,
    QueueEntryResponse,
    ScheduleResponse,
)
from .confirmation import (
    ConfirmationCreate,
    ConfirmationResponse,
    ConfirmationResult,
)
from .stock import (
    StockHistoryResponse,
    RefillRequest,
    StockAdjustRequest,
)
from .push import (
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionResponse,
    UnsubscribeRequest,
)

__all__ = [
    "DispatchSummary",
    "QueueEntryResponse",
    "ScheduleResponse",
    "ConfirmationCreate",
    "ConfirmationResponse",
    "ConfirmationResult",
    "StockHistoryResponse",
    "RefillRequest",
    "StockAdjustRequest",
    "SubscribeRequest",
    "SubscribeResponse",
    "SubscriptionResponse",
    "UnsubscribeRequest",
]
