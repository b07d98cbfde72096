"""Push subscription API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from ..dependencies import get_current_user_id, get_store
from ..schemas.push import (
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionResponse,
    UnsubscribeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/push", tags=["push"])


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    request: SubscribeRequest,
    user_agent: Optional[str] = Header(None),
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """Register a browser for push notifications.

    Subscribing the same endpoint again refreshes its keys. The web client
    calls this whenever the service worker hands it a subscription.
    """
    data = request.subscription
    subscription = await store.upsert_subscription(
        user_id=user_id,
        endpoint=data.endpoint,
        p256dh=data.keys.p256dh,
        auth=data.keys.auth,
        user_agent=user_agent or "Unknown",
    )

    logger.info(f"Push subscription saved: {data.endpoint[:50]}...")
    return SubscribeResponse(
        success=True,
        subscription=SubscriptionResponse.model_validate(subscription),
        message="Subscription saved",
    )


@router.delete("/subscribe")
async def unsubscribe(
    request: UnsubscribeRequest,
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """Remove one of the caller's push endpoints."""
    removed = await store.remove_user_subscription(user_id, request.endpoint)
    if not removed:
        raise HTTPException(status_code=404, detail="Subscription not found")

    logger.info(f"Push subscription removed: {request.endpoint[:50]}...")
    return {"success": True}


@router.get("/subscribe", response_model=List[SubscriptionResponse])
async def list_subscriptions(
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """List the caller's push endpoints."""
    subscriptions = await store.list_subscriptions(user_id)
    return [SubscriptionResponse.model_validate(s) for s in subscriptions]
