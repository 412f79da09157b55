"""Subscriptions: plan catalog, user subscriptions and payment settlement."""

from campus_courier.subscriptions.manager import SubscriptionManager
from campus_courier.subscriptions.settlement import (
    ManualScheduler,
    SettlementScheduler,
    ThreadingScheduler,
)

__all__ = [
    "ManualScheduler",
    "SettlementScheduler",
    "SubscriptionManager",
    "ThreadingScheduler",
]
