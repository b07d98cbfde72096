"""Services for scheduling, dispatching and stock accounting."""
from .dispatcher import NotificationDispatcher, DispatchResult, DispatchStatus
from .queue_advancer import QueueAdvancer
from .stock_ledger import StockLedgerService, compute_confirmation_effect
from .confirmations import ConfirmationService
from .scheduler import SchedulerService
from .websocket_manager import ConnectionManager

__all__ = [
    "NotificationDispatcher",
    "DispatchResult",
    "DispatchStatus",
    "QueueAdvancer",
    "StockLedgerService",
    "compute_confirmation_effect",
    "ConfirmationService",
    "SchedulerService",
    "ConnectionManager",
]
