"""NotificationQueueEntry model - one scheduled reminder or confirmation push."""
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from ..database import Base
from ..domain import new_id
from ..utils.time_utils import utc_now


class NotificationQueueEntry(Base):
    """A pending or terminal notification job.

    Rows are written once by the dispatcher (sent_at, error) and never deleted,
    so the table doubles as the delivery audit trail.
    """

    __tablename__ = "notification_queue"
    __table_args__ = (
        UniqueConstraint(
            "medicine_id",
            "scheduled_datetime",
            "notification_type",
            name="uq_notification_queue_slot",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    medicine_id = Column(String(36), nullable=False, index=True)
    scheduled_datetime = Column(DateTime(timezone=True), nullable=False, index=True)
    notification_type = Column(String, nullable=False)  # reminder, confirmation
    minutes_before = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True), nullable=True, index=True)
    error = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
