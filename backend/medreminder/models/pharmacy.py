"""Pharmacy inventory models - stock on hand and its append-only history."""
from sqlalchemy import Column, Integer, String, DateTime, Numeric

from ..database import Base
from ..domain import new_id
from ..utils.time_utils import utc_now


class PharmacyMedicine(Base):
    """An item in the user's home pharmacy.

    available_stock is the authoritative running total; version is bumped on
    every stock write so concurrent writers can compare-and-swap.
    """

    __tablename__ = "pharmacy_medicines"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    dosage = Column(String, nullable=True)
    category = Column(String, nullable=True)  # tablet, syrup, ...
    available_stock = Column(Numeric(12, 3), nullable=False, default=0)
    stock_unit = Column(String, nullable=False, default="tablet")
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class PharmacyStockHistory(Base):
    """Immutable record of a single stock movement."""

    __tablename__ = "pharmacy_stock_history"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    medicine_id = Column(String(36), nullable=False, index=True)  # pharmacy item
    delta = Column(Numeric(12, 3), nullable=False)
    before_stock = Column(Numeric(12, 3), nullable=False)
    after_stock = Column(Numeric(12, 3), nullable=False)
    stock_unit = Column(String, nullable=False)
    source = Column(String, nullable=False)  # initial_stock, refill, taken, manual_adjustment
    note = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
