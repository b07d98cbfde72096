"""Push subscription schemas for API."""
from typing import Optional
from pydantic import BaseModel, Field


class SubscriptionKeys(BaseModel):
    """Encryption keys from the browser's PushSubscription."""
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionData(BaseModel):
    """The browser's PushSubscription.toJSON() shape."""
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys


class SubscribeRequest(BaseModel):
    """Request to register a browser for push notifications."""
    subscription: PushSubscriptionData


class UnsubscribeRequest(BaseModel):
    """Request to remove a browser endpoint."""
    endpoint: str = Field(..., min_length=1)


class SubscriptionResponse(BaseModel):
    """Schema for a push subscription in API responses."""
    endpoint: str
    p256dh: str
    auth: str

    class Config:
        from_attributes = True


class SubscribeResponse(BaseModel):
    """Response after subscribing."""
    success: bool
    subscription: SubscriptionResponse
    message: Optional[str] = None
