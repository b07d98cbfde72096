"""UserMedicine model - a medicine schedule owned by a user."""
from sqlalchemy import Column, String, DateTime, Date, Numeric

from ..database import Base
from ..domain import new_id
from ..utils.time_utils import utc_now


class UserMedicine(Base):
    """One dose schedule: what to take, when, and how often."""

    __tablename__ = "user_medicines"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    group_id = Column(String(36), nullable=True)  # schedules created together share a group
    name = Column(String, nullable=False)
    dosage = Column(String, nullable=True)
    occurrence = Column(String, nullable=False, default="once")  # once, daily, weekly, monthly, custom
    custom_occurrence = Column(String, nullable=True)
    scheduled_date = Column(Date, nullable=False)
    timing = Column(String, nullable=False)  # HH:MM local wall-clock time
    meal_timing = Column(String, nullable=False, default="before")  # before, after
    pharmacy_medicine_id = Column(String(36), nullable=True, index=True)
    dose_amount = Column(Numeric(12, 3), nullable=True)
    dose_unit = Column(String, nullable=True)
    timezone = Column(String, nullable=True)  # IANA zone name
    notes = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
