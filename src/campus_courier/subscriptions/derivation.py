"""Wall-clock derivations over subscriptions.

Expiry is computed on read: the stored status is never trusted alone.
These functions are pure so they can be tested without a manager.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from campus_courier.models.subscription import SubscriptionStatus, UserSubscription

_DAY_SECONDS = timedelta(days=1).total_seconds()


def days_remaining(subscription: UserSubscription, now: datetime) -> int:
    """``max(0, ceil((end - now) / 1 day))``."""
    seconds = (subscription.end_utc - now).total_seconds()
    return max(0, math.ceil(seconds / _DAY_SECONDS))


def is_active(subscription: Optional[UserSubscription], now: datetime) -> bool:
    """Active status and at least part of a day left."""
    if subscription is None:
        return False
    return (
        subscription.status == SubscriptionStatus.ACTIVE
        and days_remaining(subscription, now) > 0
    )


def has_lapsed(subscription: UserSubscription, now: datetime) -> bool:
    """Stored as active but no longer read as active."""
    return (
        subscription.status == SubscriptionStatus.ACTIVE
        and days_remaining(subscription, now) == 0
    )
