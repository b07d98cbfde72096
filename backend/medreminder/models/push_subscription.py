"""PushSubscription model - Web Push endpoints registered by a user's browsers."""
from sqlalchemy import Column, String, DateTime, UniqueConstraint

from ..database import Base
from ..domain import new_id
from ..utils.time_utils import utc_now


class PushSubscription(Base):
    """A browser push endpoint belonging to one user."""

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_push_subscriptions_user_endpoint"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    endpoint = Column(String, nullable=False, index=True)
    p256dh = Column(String, nullable=False)
    auth = Column(String, nullable=False)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
