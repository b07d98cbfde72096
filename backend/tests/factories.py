"""Builders for domain objects and a push transport that records instead of sending."""
import json
from datetime import date, datetime, timezone
from decimal import Decimal

from medreminder.domain import Medicine, QueueEntry, Subscription, new_id
from medreminder.services.push_sender import PushOutcome

USER_ID = "user-1"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_medicine(**overrides) -> Medicine:
    fields = {
        "id": "med-1",
        "user_id": USER_ID,
        "name": "Metformin",
        "dosage": "500mg",
        "occurrence": "daily",
        "meal_timing": "after",
        "timing": "09:00",
        "scheduled_date": date(2024, 1, 1),
        "timezone": "UTC",
    }
    fields.update(overrides)
    return Medicine(**fields)


def make_entry(**overrides) -> QueueEntry:
    fields = {
        "id": new_id(),
        "user_id": USER_ID,
        "medicine_id": "med-1",
        "scheduled_datetime": utc(2024, 1, 1, 9, 0),
        "notification_type": "confirmation",
        "minutes_before": 0,
    }
    fields.update(overrides)
    return QueueEntry(**fields)


def make_subscription(endpoint: str = "https://push.example.com/a", user_id: str = USER_ID) -> Subscription:
    return Subscription(user_id=user_id, endpoint=endpoint, p256dh="p256dh-key", auth="auth-key")


class FakeTransport:
    """Records payloads instead of calling a push service.

    outcomes maps endpoint -> PushOutcome, or an exception to raise.
    """

    def __init__(self, outcomes=None, configured: bool = True):
        self.outcomes = outcomes or {}
        self.configured = configured
        self.sent = []

    async def send(self, subscription: Subscription, payload: str) -> PushOutcome:
        self.sent.append((subscription.endpoint, json.loads(payload)))
        outcome = self.outcomes.get(subscription.endpoint, PushOutcome.SENT)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
