"""Uniform result envelope shared by every core operation.

Callers branch on ``success`` and ``error``; ``message`` is user-facing text
looked up from a message catalog that the caller may replace (for example
with a localized one). Control flow never depends on message text.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping, Optional


class ErrorKind(str, enum.Enum):
    """Stable, discriminable failure kinds."""
    NOT_FOUND = "not_found"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    UNAUTHORIZED = "unauthorized"
    VALIDATION_ERROR = "validation_error"
    DUPLICATE_RATING = "duplicate_rating"
    ALREADY_SUBSCRIBED = "already_subscribed"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    data: Any = None
    message: str = ""
    error: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> ServiceResult:
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls, error: ErrorKind, message: str = "", data: Any = None,
    ) -> ServiceResult:
        return cls(success=False, data=data, message=message, error=error)


DEFAULT_MESSAGES: dict[str, str] = {
    # Missions
    "mission.created": "Mission created successfully",
    "mission.fetched": "Missions fetched successfully",
    "mission.not_found": "Mission not found",
    "mission.invalid": "Mission details are invalid",
    "mission.invalid_type": "Unknown mission type",
    "mission.not_available": "Mission is no longer available",
    "mission.accepted": "Mission accepted successfully",
    "mission.start_unauthorized": "Unauthorized to start this mission",
    "mission.cannot_start": "Mission cannot be started",
    "mission.started": "Mission started successfully",
    "mission.complete_unauthorized": "Unauthorized to complete this mission",
    "mission.not_in_progress": "Mission is not in progress",
    "mission.completed": "Mission completed successfully",
    "mission.cancel_unauthorized": "Unauthorized to cancel this mission",
    "mission.cannot_cancel": "Mission cannot be cancelled",
    "mission.cancelled": "Mission cancelled successfully",
    "mission.conflict": "Mission was changed by another operation",
    "mission.stats": "Mission statistics fetched successfully",
    # Wallet
    "wallet.fetched": "Wallet fetched successfully",
    "wallet.not_found": "Wallet not found",
    "wallet.invalid_amount": "Amount must be positive",
    "wallet.earning_added": "Earning added successfully",
    "wallet.insufficient_balance": "Insufficient balance",
    "wallet.below_minimum": "Amount is below the minimum withdrawal",
    "wallet.withdrawal_requested": "Withdrawal request submitted successfully",
    "wallet.withdrawal_not_found": "Withdrawal request not found",
    "wallet.withdrawal_not_pending": "Withdrawal request is not pending",
    "wallet.withdrawal_settled": "Withdrawal settled successfully",
    "wallet.withdrawal_rejected": "Withdrawal rejected and refunded",
    "wallet.history": "Transaction history fetched successfully",
    "wallet.withdrawals": "Withdrawal requests fetched successfully",
    "wallet.stats": "Wallet statistics fetched successfully",
    # Subscriptions
    "subscription.plans": "Subscription plans fetched successfully",
    "subscription.fetched": "Subscription fetched successfully",
    "subscription.none": "No active subscription",
    "subscription.plan_not_found": "Subscription plan not found",
    "subscription.already_active": "You already have an active subscription",
    "subscription.created": "Subscription created, processing payment",
    "subscription.not_found": "No subscription found",
    "subscription.not_active": "Subscription is not active",
    "subscription.cancelled": "Subscription cancelled successfully",
    "subscription.auto_renew_on": "Auto-renewal enabled",
    "subscription.auto_renew_off": "Auto-renewal disabled",
    "subscription.payments": "Payment history fetched successfully",
    "subscription.payment_not_found": "Payment not found",
    "subscription.payment_not_pending": "Payment is not pending",
    "subscription.payment_settled": "Payment settled",
    "subscription.payment_failed": "Payment failed",
    "subscription.payment_refunded": "Payment refunded for a replaced subscription",
    "subscription.invalid_payment_method": "Unknown payment method",
    "subscription.activation_timeout": "Payment is still being processed",
    "subscription.active": "Subscription is active",
    "subscription.stats": "Subscription statistics fetched successfully",
    "subscription.expired_swept": "Lapsed subscriptions expired",
    # Ratings
    "rating.created": "Rating submitted successfully",
    "rating.duplicate": "This mission has already been rated",
    "rating.invalid_score": "Rating must be a whole number from 1 to 5",
    "rating.invalid_direction": "Unknown rating direction",
    "rating.self": "You cannot rate yourself",
    "rating.not_found": "Rating not found",
    "rating.updated": "Rating updated successfully",
    "rating.deleted": "Rating deleted successfully",
    "rating.fetched": "Ratings fetched successfully",
    "rating.stats": "Rating statistics fetched successfully",
    # Reports
    "report.created": "Report submitted successfully",
    "report.no_target": "A report must name a user or a mission",
    "report.invalid_type": "Unknown report type",
    "report.invalid_status": "Unknown report status",
    "report.self": "You cannot report yourself",
    "report.not_found": "Report not found",
    "report.updated": "Report updated successfully",
    "report.deleted": "Report deleted successfully",
    "report.fetched": "Reports fetched successfully",
    "report.stats": "Report statistics fetched successfully",
    "safety.fetched": "Safety score fetched successfully",
    "safety.updated": "Safety score updated",
}


class MessageCatalog:
    """Looks up user-facing messages by key, falling back to the defaults."""

    def __init__(self, overrides: Optional[Mapping[str, str]] = None) -> None:
        self._messages = dict(DEFAULT_MESSAGES)
        if overrides:
            self._messages.update(overrides)

    def get(self, key: str) -> str:
        return self._messages.get(key, key)
