"""Push notification sender service using Web Push (VAPID)."""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import List, Optional

from pywebpush import WebPushException, webpush

from ..config import settings
from ..domain import Medicine, QueueEntry, Subscription
from ..exceptions import PushNotConfiguredError
from ..stores.base import SubscriptionStore
from ..utils.time_utils import ensure_utc, isoformat_utc

logger = logging.getLogger(__name__)

# HTTP statuses meaning the endpoint is permanently gone
GONE_STATUS_CODES = {404, 410}

NOTIFICATION_ICON = "/icon-192x192.png"


class PushOutcome(str, Enum):
    """Result of one delivery attempt to one endpoint."""
    SENT = "sent"
    GONE = "gone"
    FAILED = "failed"


@dataclass
class PushConfig:
    """VAPID configuration."""
    public_key: Optional[str] = None
    private_key: Optional[str] = None
    subject: str = "mailto:support@medreminder.app"
    timeout_seconds: float = 10.0
    ttl_seconds: int = 86400

    @property
    def configured(self) -> bool:
        return bool(self.public_key and self.private_key)

    @classmethod
    def from_settings(cls) -> "PushConfig":
        return cls(
            public_key=settings.vapid_public_key,
            private_key=settings.vapid_private_key,
            subject=settings.vapid_subject,
            timeout_seconds=settings.push_timeout_seconds,
            ttl_seconds=settings.push_ttl_seconds,
        )


@dataclass
class DeliveryReport:
    """Per-user totals from one fan-out."""
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    removed: int = 0


def _short(endpoint: str) -> str:
    return endpoint[:50] + "..." if len(endpoint) > 50 else endpoint


def format_local_time(value: datetime, zone: tzinfo) -> str:
    """Render an instant as a 12-hour local clock time, e.g. "09:00 AM"."""
    return ensure_utc(value).astimezone(zone).strftime("%I:%M %p")


def build_notification_payload(entry: QueueEntry, medicine: Medicine, zone: tzinfo) -> dict:
    """Title and body shown to the user for a queue entry."""
    label = " ".join(part for part in (medicine.name, medicine.dosage) if part)
    scheduled = isoformat_utc(entry.scheduled_datetime)

    if entry.notification_type == "reminder":
        minutes_text = "30 minutes" if entry.minutes_before == 30 else "15 minutes"
        title = f"Medicine Reminder - {minutes_text}"
        time_str = format_local_time(entry.scheduled_datetime, zone)
        body = f"{label} at {time_str} ({medicine.meal_timing} meal)"
    else:
        title = "Time to take your medicine!"
        body = f"{label} - {medicine.meal_timing} meal"

    return {
        "title": title,
        "body": body,
        "medicineId": entry.medicine_id,
        "scheduledDatetime": scheduled,
        "notificationType": entry.notification_type,
    }


def build_web_push_payload(payload: dict, medicine: Medicine) -> str:
    """Serialize the message the service worker turns into a notification."""
    is_confirmation = payload["notificationType"] == "confirmation"
    medicine_id = payload["medicineId"]

    return json.dumps({
        "title": payload["title"],
        "body": payload["body"],
        "icon": NOTIFICATION_ICON,
        "badge": NOTIFICATION_ICON,
        "tag": f"medicine-{medicine_id}-{payload['scheduledDatetime']}",
        "data": {
            "medicineId": medicine_id,
            "medicineName": medicine.name,
            "dosage": medicine.dosage,
            "mealTiming": medicine.meal_timing,
            "scheduledDatetime": payload["scheduledDatetime"],
            "notificationType": payload["notificationType"],
            "url": "/dashboard" if is_confirmation else f"/medicine-details/{medicine_id}",
        },
        "actions": (
            [
                {"action": "taken", "title": "✓ Taken"},
                {"action": "skip", "title": "✗ Skip"},
            ]
            if is_confirmation
            else []
        ),
        "requireInteraction": is_confirmation,
    })


class WebPushTransport:
    """Sends one encrypted payload to one endpoint."""

    def __init__(self, config: PushConfig):
        self._config = config

    @property
    def configured(self) -> bool:
        return self._config.configured

    def _send_blocking(self, subscription: Subscription, payload: str) -> None:
        webpush(
            subscription_info=subscription.to_webpush_info(),
            data=payload,
            vapid_private_key=self._config.private_key,
            # pywebpush fills in aud/exp on the dict it is given
            vapid_claims={"sub": self._config.subject},
            ttl=self._config.ttl_seconds,
            timeout=self._config.timeout_seconds,
        )

    async def send(self, subscription: Subscription, payload: str) -> PushOutcome:
        """Deliver payload; GONE when the push service says the endpoint no longer exists."""
        if not self.configured:
            raise PushNotConfiguredError(
                "VAPID keys not configured. Set VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY"
            )

        try:
            await asyncio.to_thread(self._send_blocking, subscription, payload)
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status in GONE_STATUS_CODES:
                logger.info(f"Push endpoint gone ({status}): {_short(subscription.endpoint)}")
                return PushOutcome.GONE
            logger.error(f"Push failed ({status}) for {_short(subscription.endpoint)}: {e}")
            return PushOutcome.FAILED
        except Exception as e:
            # Timeouts and connection errors from the underlying HTTP client
            logger.error(f"Push failed for {_short(subscription.endpoint)}: {e}")
            return PushOutcome.FAILED

        logger.info(f"Notification sent to {_short(subscription.endpoint)}")
        return PushOutcome.SENT


class PushSenderService:
    """Fans a payload out to every subscription a user has."""

    def __init__(self, subscriptions: SubscriptionStore, transport: WebPushTransport):
        self._subscriptions = subscriptions
        self._transport = transport

    async def _deliver(self, subscription: Subscription, payload: str) -> PushOutcome:
        outcome = await self._transport.send(subscription, payload)
        if outcome == PushOutcome.GONE:
            try:
                await self._subscriptions.delete_subscription(subscription.endpoint)
                logger.info(f"Removed invalid subscription {_short(subscription.endpoint)}")
            except Exception as e:
                logger.error(f"Failed to remove subscription {_short(subscription.endpoint)}: {e}")
        return outcome

    async def send_to_user(self, user_id: str, payload: str) -> DeliveryReport:
        """Send to all of a user's endpoints.

        One endpoint failing does not stop delivery to the others.

        Returns:
            DeliveryReport; attempted == 0 means the user has no subscriptions
        """
        subscriptions: List[Subscription] = await self._subscriptions.list_subscriptions(user_id)
        if not subscriptions:
            logger.warning(f"No subscriptions found for user: {user_id}")
            return DeliveryReport()

        if not self._transport.configured:
            raise PushNotConfiguredError(
                "VAPID keys not configured. Set VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY"
            )

        outcomes = await asyncio.gather(
            *[self._deliver(subscription, payload) for subscription in subscriptions]
        )

        report = DeliveryReport(attempted=len(outcomes))
        for outcome in outcomes:
            if outcome == PushOutcome.SENT:
                report.delivered += 1
            else:
                report.failed += 1
                if outcome == PushOutcome.GONE:
                    report.removed += 1

        logger.info(
            f"Push notifications for user {user_id}: "
            f"{report.delivered} success, {report.failed} failed, {report.removed} removed"
        )
        return report
