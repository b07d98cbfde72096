"""Persistence interfaces consumed by the scheduling core, and their implementations."""
from .base import (
    ConfirmationStore,
    MedicineStore,
    PharmacyStore,
    QueueStore,
    SubscriptionStore,
)
from .memory import InMemoryStore
from .sql import SqlStore

__all__ = [
    "ConfirmationStore",
    "MedicineStore",
    "PharmacyStore",
    "QueueStore",
    "SubscriptionStore",
    "InMemoryStore",
    "SqlStore",
]
