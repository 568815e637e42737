from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, text
from db.base import Base
from datetime import datetime

# Subscription status constants
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_EXPIRED = "expired"
SUBSCRIPTION_CANCELLED = "cancelled"

# Statuses that make a row the user's "current" subscription
CURRENT_STATUSES = (SUBSCRIPTION_ACTIVE, SUBSCRIPTION_EXPIRED)

PLAN_MONTHLY = "monthly"

_CURRENT_ROW = text("status IN ('active', 'expired')")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        # At most one current row per user
        Index(
            "uq_subscriptions_user_current",
            "user_id",
            unique=True,
            sqlite_where=_CURRENT_ROW,
            postgresql_where=_CURRENT_ROW,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(String, nullable=False, default=PLAN_MONTHLY)
    status = Column(String, nullable=False, default=SUBSCRIPTION_ACTIVE, index=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    cancelled_at = Column(DateTime, nullable=True)
