from datetime import datetime
from sqlalchemy.orm import Session
from db.models.subscription import (
    Subscription,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_EXPIRED,
    SUBSCRIPTION_CANCELLED,
    CURRENT_STATUSES,
)


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def add(self, subscription: Subscription) -> Subscription:
        """Stage a new row; the caller commits"""
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def get_by_id(self, subscription_id: int) -> Subscription | None:
        return self.db.query(Subscription).filter(Subscription.id == subscription_id).first()

    def get_current_for_user(self, user_id: int) -> Subscription | None:
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(CURRENT_STATUSES),
            )
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    def get_active_for_user(self, user_id: int) -> Subscription | None:
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status == SUBSCRIPTION_ACTIVE,
            )
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    def list_by_user(self, user_id: int) -> list[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at, Subscription.id)
            .all()
        )

    def list_all(self, skip: int = 0, limit: int = 100) -> list[Subscription]:
        return (
            self.db.query(Subscription)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def list_past_due(self, now: datetime) -> list[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.status == SUBSCRIPTION_ACTIVE,
                Subscription.end_date < now,
            )
            .all()
        )

    def cancel_current_for_user(self, user_id: int, now: datetime) -> int:
        """Stage active/expired -> cancelled for a user; the caller commits"""
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(CURRENT_STATUSES),
            )
            .update(
                {
                    "status": SUBSCRIPTION_CANCELLED,
                    "cancelled_at": now,
                    "updated_at": now,
                },
                synchronize_session="fetch",
            )
        )

    def cancel_active_for_user(self, user_id: int, now: datetime) -> int:
        count = (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status == SUBSCRIPTION_ACTIVE,
            )
            .update(
                {
                    "status": SUBSCRIPTION_CANCELLED,
                    "cancelled_at": now,
                    "updated_at": now,
                },
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        return count

    def extend_end_date(self, subscription: Subscription, end_date: datetime, now: datetime) -> Subscription:
        subscription.end_date = end_date
        subscription.updated_at = now
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def mark_expired(self, subscription_id: int, now: datetime) -> bool:
        """active -> expired, only if the row is still active"""
        count = (
            self.db.query(Subscription)
            .filter(
                Subscription.id == subscription_id,
                Subscription.status == SUBSCRIPTION_ACTIVE,
            )
            .update(
                {"status": SUBSCRIPTION_EXPIRED, "updated_at": now},
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        return count > 0

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
