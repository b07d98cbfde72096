"""Pharmacy stock schemas for API."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class StockHistoryResponse(BaseModel):
    """Schema for a stock history row in API responses."""
    id: Optional[str] = None
    medicine_id: str
    delta: float
    before_stock: float
    after_stock: float
    stock_unit: str
    source: str  # initial_stock, refill, taken, manual_adjustment
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RefillRequest(BaseModel):
    """Add stock after buying more."""
    amount: float = Field(..., gt=0)
    note: Optional[str] = Field(None, max_length=500)


class StockAdjustRequest(BaseModel):
    """Set the stock on hand after a manual count."""
    available_stock: float = Field(..., ge=0)
    note: Optional[str] = Field(None, max_length=500)
