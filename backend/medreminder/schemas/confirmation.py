"""Dose confirmation schemas for API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from .stock import StockHistoryResponse


class ConfirmationCreate(BaseModel):
    """Taken/skipped answer for one scheduled dose.

    Accepts the camelCase keys the web client sends.
    """
    medicine_id: str = Field(..., alias="medicineId", min_length=1)
    scheduled_datetime: datetime = Field(..., alias="scheduledDatetime")
    taken: bool = False
    skipped: bool = False
    notes: Optional[str] = Field(None, max_length=1000)

    class Config:
        populate_by_name = True


class ConfirmationResponse(BaseModel):
    """Schema for a confirmation in API responses."""
    id: Optional[str] = None
    medicine_id: str
    scheduled_datetime: datetime
    confirmed_at: Optional[datetime] = None
    taken: bool
    skipped: bool
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ConfirmationResult(BaseModel):
    """Response after saving a confirmation."""
    success: bool
    confirmation: ConfirmationResponse
    stock_entry: Optional[StockHistoryResponse] = None
    stock_error: Optional[str] = None
