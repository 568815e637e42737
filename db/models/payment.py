from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from db.base import Base
from datetime import datetime

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"


class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key=True, index=True)
    # Nulled when the user is deleted; email keeps the audit trail
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String, nullable=False, index=True)
    plan_id = Column(String, nullable=False, default="monthly")
    amount = Column(Float, nullable=False)  # major units, e.g. 299.00
    currency = Column(String, nullable=False)
    provider_order_id = Column(String, unique=True, nullable=False, index=True)
    # NULL until captured; unique constraints ignore NULLs so pending rows can share it
    provider_payment_id = Column(String, unique=True, nullable=True)
    provider_signature = Column(String, nullable=True)
    status = Column(String, nullable=False, default=PAYMENT_PENDING)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow)
