from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.exc import IntegrityError

from api.errors import Conflict, InvalidInput, NotFound
from api.utils import as_naive_utc, compute_end_date, is_past_due, is_subscription_active, utcnow
from db.models.subscription import (
    Subscription,
    PLAN_MONTHLY,
    SUBSCRIPTION_ACTIVE,
)
from db.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger(__name__)

MAX_MONTHS = 120


def _validate_months(months) -> int:
    if isinstance(months, bool) or not isinstance(months, int) or months < 1:
        raise InvalidInput("months must be a positive integer")
    if months > MAX_MONTHS:
        raise InvalidInput(f"months must be at most {MAX_MONTHS}")
    return months


class SubscriptionService:
    """Owns the subscription state machine.

    (none) -> active -> expired (lazy, time based) | cancelled (explicit).
    Rows never go back to active; renewal always appends a new row.
    """

    def __init__(self, subscription_repo: SubscriptionRepository):
        self.subscription_repo = subscription_repo

    def get_current_subscription(self, user_id: int) -> Optional[Subscription]:
        """Most recently created active/expired row, without touching its status"""
        return self.subscription_repo.get_current_for_user(user_id)

    def is_active(self, subscription: Optional[Subscription]) -> bool:
        return is_subscription_active(subscription)

    def create_subscription(
        self, user_id: int, months: int = 1, start_date: Optional[datetime] = None
    ) -> Subscription:
        """Insert a new active row. Prior rows are left alone; use renew for that."""
        months = _validate_months(months)
        subscription = self._build(user_id, months, start_date)
        try:
            self.subscription_repo.add(subscription)
            self.subscription_repo.commit()
        except IntegrityError:
            self.subscription_repo.rollback()
            logger.error(f"User {user_id} already has a current subscription")
            raise Conflict("User already has a current subscription")
        logger.info(
            f"Created subscription {subscription.id} for user {user_id} "
            f"until {subscription.end_date.isoformat()}"
        )
        return subscription

    def renew_subscription(self, user_id: int, months: int = 1) -> Subscription:
        """Cancel every active/expired row and start a fresh term from now.

        Both steps commit together. A concurrent renewal for the same user
        trips the one-current-row index and surfaces as Conflict.
        """
        months = _validate_months(months)
        now = utcnow()
        try:
            cancelled = self.subscription_repo.cancel_current_for_user(user_id, now)
            subscription = self._build(user_id, months, now)
            self.subscription_repo.add(subscription)
            self.subscription_repo.commit()
        except IntegrityError:
            self.subscription_repo.rollback()
            logger.error(f"Concurrent renewal detected for user {user_id}")
            raise Conflict("Subscription is being renewed concurrently, please retry")
        logger.info(
            f"Renewed subscription for user {user_id}: cancelled {cancelled} prior, "
            f"new subscription {subscription.id} until {subscription.end_date.isoformat()}"
        )
        return subscription

    def activate_without_payment(self, user_id: int, months: int = 1) -> Subscription:
        logger.info(f"Admin activation of {months} month(s) for user {user_id}")
        return self.renew_subscription(user_id, months)

    def extend_subscription(self, user_id: int, months: int) -> Subscription:
        """Stack months onto the current active term's end date"""
        months = _validate_months(months)
        subscription = self.subscription_repo.get_active_for_user(user_id)
        if not subscription:
            logger.error(f"No active subscription to extend for user {user_id}")
            raise NotFound("Active subscription not found")
        new_end_date = compute_end_date(subscription.end_date, months)
        subscription = self.subscription_repo.extend_end_date(subscription, new_end_date, utcnow())
        logger.info(
            f"Extended subscription {subscription.id} for user {user_id} by {months} month(s) "
            f"until {new_end_date.isoformat()}"
        )
        return subscription

    def cancel_subscription(self, user_id: int) -> int:
        count = self.subscription_repo.cancel_active_for_user(user_id, utcnow())
        if count == 0:
            logger.error(f"No active subscription to cancel for user {user_id}")
            raise NotFound("Active subscription not found")
        logger.info(f"Cancelled {count} subscription(s) for user {user_id}")
        return count

    def expire_if_past_due(self, subscription: Optional[Subscription]) -> bool:
        if subscription is None or subscription.status != SUBSCRIPTION_ACTIVE:
            return False
        if not is_past_due(subscription):
            return False
        expired = self.subscription_repo.mark_expired(subscription.id, utcnow())
        if expired:
            logger.info(
                f"Subscription {subscription.id} for user {subscription.user_id} expired "
                f"(end date {subscription.end_date.isoformat()})"
            )
        return expired

    def refresh_current_status(self, user_id: int) -> Optional[Subscription]:
        """Make a lapsed expiry durable for one user and return the current row"""
        subscription = self.get_current_subscription(user_id)
        if self.expire_if_past_due(subscription):
            subscription = self.get_current_subscription(user_id)
        return subscription

    def expire_past_due_subscriptions(self) -> int:
        count = 0
        for subscription in self.subscription_repo.list_past_due(utcnow()):
            if self.expire_if_past_due(subscription):
                count += 1
        if count:
            logger.info(f"Expiry sweep marked {count} subscription(s) as expired")
        return count

    def list_subscriptions(self, skip: int = 0, limit: int = 100) -> list[Subscription]:
        return self.subscription_repo.list_all(skip, limit)

    def _build(self, user_id: int, months: int, start_date: Optional[datetime]) -> Subscription:
        start = as_naive_utc(start_date) if start_date else utcnow()
        now = utcnow()
        return Subscription(
            user_id=user_id,
            plan_id=PLAN_MONTHLY,
            status=SUBSCRIPTION_ACTIVE,
            start_date=start,
            end_date=compute_end_date(start, months),
            created_at=now,
            updated_at=now,
        )
