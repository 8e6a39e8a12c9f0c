# chatlearn/subscriptions/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Uuid

from ..database import Base


class PlanTier:
    FREE = "free"
    PRO = "pro"
    ULTRA_PRO = "ultra_pro"


class UserSubscription(Base):
    """Cached Stripe subscription state, at most one row per user"""
    __tablename__ = "user_subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, unique=True, nullable=False, index=True)

    # Provider details
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    product_id = Column(String, nullable=True)

    # Plan
    plan_name = Column(String, nullable=True)
    plan = Column(String, nullable=False, default=PlanTier.FREE)
    status = Column(String, nullable=False, default="active")
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<UserSubscription {self.user_id} - {self.plan}/{self.status}>"
