"""MedicineConfirmation model - whether a scheduled dose was taken or skipped."""
from sqlalchemy import Column, String, DateTime, Boolean, UniqueConstraint

from ..database import Base
from ..domain import new_id
from ..utils.time_utils import utc_now


class MedicineConfirmation(Base):
    """The user's answer for one scheduled dose."""

    __tablename__ = "medicine_confirmations"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "medicine_id",
            "scheduled_datetime",
            name="uq_medicine_confirmations_dose",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    medicine_id = Column(String(36), nullable=False, index=True)
    scheduled_datetime = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), default=utc_now)
    taken = Column(Boolean, nullable=False, default=False)
    skipped = Column(Boolean, nullable=False, default=False)
    notes = Column(String, nullable=True)
