"""Subscription models: plans, user subscriptions and their payments.

Subscription lifecycle:
    PENDING → ACTIVE      (payment settled)
    PENDING → CANCELLED   (payment failed)
    ACTIVE → CANCELLED    (user cancels)
    ACTIVE → EXPIRED      (only via the explicit lapse sweep)

Whether a subscription is currently usable is always derived from the
wall clock (see campus_courier.subscriptions.derivation), never trusted
from the stored status alone.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class SubscriptionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"


@dataclass(frozen=True)
class SubscriptionPlan:
    """Static catalog entry."""
    plan_id: str
    name: str
    description: str
    price: Decimal
    currency: str
    duration_days: int
    features: tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True


@dataclass
class UserSubscription:
    subscription_id: str
    user_id: str
    plan_id: str
    status: SubscriptionStatus
    start_utc: datetime
    end_utc: datetime
    payment_method: PaymentMethod
    auto_renew: bool = True
    transaction_id: Optional[str] = None
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None


@dataclass
class SubscriptionPayment:
    payment_id: str
    subscription_id: str
    user_id: str
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    transaction_id: str
    status: PaymentStatus = PaymentStatus.PENDING
    paid_utc: Optional[datetime] = None
    created_utc: Optional[datetime] = None


@dataclass(frozen=True)
class SubscriptionStats:
    total_paid: Decimal
    current_plan: Optional[str]
    days_remaining: int
    is_active: bool
    auto_renew: bool
