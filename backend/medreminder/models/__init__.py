"""Database models."""
from .medicine import UserMedicine
from .notification_queue import NotificationQueueEntry
from .push_subscription import PushSubscription
from .pharmacy import PharmacyMedicine, PharmacyStockHistory
from .confirmation import MedicineConfirmation

__all__ = [
    "UserMedicine",
    "NotificationQueueEntry",
    "PushSubscription",
    "PharmacyMedicine",
    "PharmacyStockHistory",
    "MedicineConfirmation",
]
