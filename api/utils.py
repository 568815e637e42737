from datetime import datetime, timedelta, timezone
from typing import Optional

DAYS_PER_MONTH = 30


def utcnow() -> datetime:
    """Naive UTC now, matching what the database columns store"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def compute_end_date(start_date: datetime, months: int) -> datetime:
    """A month is always 30 days, so Jan 31 + 1 month is Mar 2 (or Mar 1 in a leap year)."""
    return start_date + timedelta(days=months * DAYS_PER_MONTH)


def is_past_due(subscription, now: Optional[datetime] = None) -> bool:
    if subscription.end_date is None:
        return True
    now = as_naive_utc(now) if now else utcnow()
    return now > as_naive_utc(subscription.end_date)


def is_subscription_active(subscription, now: Optional[datetime] = None) -> bool:
    """True iff the subscription is status "active" and now <= end_date.

    Every access decision goes through this; it re-derives from the stored
    status and end date each time.
    """
    if subscription is None or subscription.status != "active":
        return False
    return not is_past_due(subscription, now)
