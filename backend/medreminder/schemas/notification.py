"""Notification queue and dispatch schemas for API."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class DispatchSummary(BaseModel):
    """What one dispatcher run did."""
    message: str
    count: int = 0  # pending entries looked at
    ready: int = 0  # entries that were due and processed
    expired: int = 0  # entries closed as missed
    results: List[Dict[str, Any]] = []


class QueueEntryResponse(BaseModel):
    """Schema for a notification queue row in API responses."""
    id: str
    medicine_id: str
    scheduled_datetime: datetime
    notification_type: str
    minutes_before: int
    sent_at: Optional[datetime] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True


class ScheduleResponse(BaseModel):
    """First dose queued for a medicine; null when nothing is left to schedule."""
    medicine_id: str
    scheduled_datetime: Optional[datetime] = None
