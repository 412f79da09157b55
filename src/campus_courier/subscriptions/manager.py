"""Subscription manager: plan catalog and one subscription per user.

Subscribing is two-phase. ``subscribe`` records a PENDING subscription
and a PENDING payment and returns immediately; settlement runs later on
the injected scheduler and flips both records. Callers that need to know
whether activation happened poll ``get_subscription`` or block on
``wait_for_activation`` with a timeout. They must never assume activation
is synchronous.

Settlement and every other mutation share one lock. A payment whose
subscription has since been replaced still settles, but never touches
the replacement: a successful charge is refunded and never counts
towards ``total_paid``.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from campus_courier.models.subscription import (
    PaymentMethod,
    PaymentStatus,
    SubscriptionPayment,
    SubscriptionPlan,
    SubscriptionStats,
    SubscriptionStatus,
    UserSubscription,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind, MessageCatalog, ServiceResult
from campus_courier.subscriptions import derivation
from campus_courier.subscriptions.settlement import SettlementScheduler, ThreadingScheduler

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """Manages plans, user subscriptions and subscription payments.

    Usage:
        manager = SubscriptionManager(resolver, scheduler=ManualScheduler())
        manager.subscribe("student_1", "premium_student", PaymentMethod.CARD)
        scheduler.run_all()
        assert manager.get_subscription("student_1").data.status == SubscriptionStatus.ACTIVE
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        scheduler: Optional[SettlementScheduler] = None,
        messages: Optional[MessageCatalog] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._messages = messages or MessageCatalog()
        self._event_log = event_log
        self._plans: dict[str, SubscriptionPlan] = {
            p["plan_id"]: SubscriptionPlan(
                plan_id=p["plan_id"],
                name=p["name"],
                description=p.get("description", ""),
                price=Decimal(str(p["price"])),
                currency=resolver.currency(),
                duration_days=int(p["duration_days"]),
                features=tuple(p.get("features", [])),
                is_active=bool(p.get("is_active", True)),
            )
            for p in resolver.plan_catalog()
        }
        self._subscriptions: dict[str, UserSubscription] = {}
        self._payments: dict[str, SubscriptionPayment] = {}
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def list_plans(self) -> ServiceResult:
        plans = [p for p in self._plans.values() if p.is_active]
        return ServiceResult.ok(plans, self._messages.get("subscription.plans"))

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def get_subscription(self, user_id: str) -> ServiceResult:
        """Return the user's subscription, or ``None`` as data."""
        with self._lock:
            sub = self._subscriptions.get(user_id)
            data = copy.deepcopy(sub)
        key = "subscription.fetched" if sub is not None else "subscription.none"
        return ServiceResult.ok(data, self._messages.get(key))

    def subscribe(
        self,
        user_id: str,
        plan_id: str,
        payment_method: PaymentMethod,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create a PENDING subscription and schedule its payment settlement."""
        plan = self._plans.get(plan_id)
        if plan is None or not plan.is_active:
            logger.warning("Subscribe by %s to unknown plan %s", user_id, plan_id)
            return self._fail(ErrorKind.VALIDATION_ERROR, "subscription.plan_not_found")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            logger.warning("Subscribe by %s with unknown method %r", user_id, payment_method)
            return self._fail(
                ErrorKind.VALIDATION_ERROR, "subscription.invalid_payment_method",
            )

        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            existing = self._subscriptions.get(user_id)
            if derivation.is_active(existing, now):
                logger.warning("%s already holds an active subscription", user_id)
                return self._fail(
                    ErrorKind.ALREADY_SUBSCRIBED, "subscription.already_active",
                )

            subscription = UserSubscription(
                subscription_id=f"sub_{uuid4().hex[:12]}",
                user_id=user_id,
                plan_id=plan_id,
                status=SubscriptionStatus.PENDING,
                start_utc=now,
                end_utc=now + timedelta(days=plan.duration_days),
                payment_method=method,
                auto_renew=True,
                created_utc=now,
                updated_utc=now,
            )
            payment = SubscriptionPayment(
                payment_id=f"payment_{uuid4().hex[:12]}",
                subscription_id=subscription.subscription_id,
                user_id=user_id,
                amount=plan.price,
                currency=plan.currency,
                payment_method=subscription.payment_method,
                transaction_id=f"txn_{uuid4().hex[:12]}",
                status=PaymentStatus.PENDING,
                created_utc=now,
            )
            self._subscriptions[user_id] = subscription
            self._payments[payment.payment_id] = payment
            self._record(EventKind.SUBSCRIPTION_CREATED, user_id, {
                "subscription_id": subscription.subscription_id,
                "payment_id": payment.payment_id,
                "plan_id": plan_id,
                "amount": str(plan.price),
            }, now)
            snapshot = copy.deepcopy(subscription)
            self._changed.notify_all()

        payment_id = payment.payment_id
        self._scheduler.schedule(
            self._resolver.settlement_delay_seconds(),
            lambda: self.settle_payment(payment_id, succeeded=True),
        )
        logger.info(
            "Subscription %s created for %s on %s, payment %s pending",
            snapshot.subscription_id, user_id, plan_id, payment_id,
        )
        return ServiceResult.ok(snapshot, self._messages.get("subscription.created"))

    def settle_payment(
        self,
        payment_id: str,
        succeeded: bool = True,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Settle a pending payment and its subscription.

        Success activates the subscription; failure cancels it. Success for
        a replaced subscription refunds the payment.
        """
        with self._lock:
            payment = self._payments.get(payment_id)
            if payment is None:
                return self._fail(ErrorKind.NOT_FOUND, "subscription.payment_not_found")
            if payment.status != PaymentStatus.PENDING:
                return self._fail(
                    ErrorKind.INVALID_STATE_TRANSITION,
                    "subscription.payment_not_pending",
                    copy.deepcopy(payment),
                )

            if now is None:
                now = datetime.now(timezone.utc)
            sub = self._subscriptions.get(payment.user_id)
            current = (
                sub is not None
                and sub.subscription_id == payment.subscription_id
                and sub.status == SubscriptionStatus.PENDING
            )
            if succeeded and not current:
                payment.status = PaymentStatus.REFUNDED
                payment.paid_utc = now
                kind, key = (
                    EventKind.SUBSCRIPTION_PAYMENT_REFUNDED, "subscription.payment_refunded",
                )
            elif succeeded:
                payment.status = PaymentStatus.COMPLETED
                payment.paid_utc = now
                sub.status = SubscriptionStatus.ACTIVE
                sub.transaction_id = payment.transaction_id
                sub.updated_utc = now
                kind, key = EventKind.SUBSCRIPTION_ACTIVATED, "subscription.payment_settled"
            else:
                payment.status = PaymentStatus.FAILED
                if current:
                    sub.status = SubscriptionStatus.CANCELLED
                    sub.auto_renew = False
                    sub.updated_utc = now
                kind, key = EventKind.SUBSCRIPTION_PAYMENT_FAILED, "subscription.payment_failed"
            self._record(kind, payment.user_id, {
                "payment_id": payment_id,
                "subscription_id": payment.subscription_id,
                "applied": current,
            }, now)
            snapshot = copy.deepcopy(payment)
            self._changed.notify_all()

        if not current:
            logger.warning(
                "Payment %s settled for superseded subscription %s as %s",
                payment_id, payment.subscription_id, snapshot.status.value,
            )
        elif succeeded:
            logger.info("Subscription %s activated", payment.subscription_id)
        else:
            logger.warning("Payment %s failed; subscription cancelled", payment_id)
        return ServiceResult.ok(snapshot, self._messages.get(key))

    def wait_for_activation(self, user_id: str, timeout: float) -> ServiceResult:
        """Block until the user's subscription leaves PENDING, or time out."""
        deadline = time.monotonic() + timeout
        with self._changed:
            while True:
                sub = self._subscriptions.get(user_id)
                if sub is None:
                    return self._fail(ErrorKind.NOT_FOUND, "subscription.not_found")
                if sub.status != SubscriptionStatus.PENDING:
                    return ServiceResult.ok(
                        copy.deepcopy(sub), self._messages.get("subscription.fetched"),
                    )
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("Timed out waiting for activation of %s", user_id)
                    return self._fail(
                        ErrorKind.TIMEOUT, "subscription.activation_timeout",
                        copy.deepcopy(sub),
                    )
                self._changed.wait(remaining)

    def cancel(self, user_id: str, now: Optional[datetime] = None) -> ServiceResult:
        """ACTIVE → CANCELLED and auto-renew off. No partial refund."""
        with self._lock:
            sub = self._subscriptions.get(user_id)
            if sub is None:
                return self._fail(ErrorKind.NOT_FOUND, "subscription.not_found")
            if sub.status != SubscriptionStatus.ACTIVE:
                return self._fail(
                    ErrorKind.INVALID_STATE_TRANSITION, "subscription.not_active",
                    copy.deepcopy(sub),
                )
            if now is None:
                now = datetime.now(timezone.utc)
            sub.status = SubscriptionStatus.CANCELLED
            sub.auto_renew = False
            sub.updated_utc = now
            self._record(EventKind.SUBSCRIPTION_CANCELLED, user_id, {
                "subscription_id": sub.subscription_id,
            }, now)
            snapshot = copy.deepcopy(sub)
            self._changed.notify_all()

        logger.info("Subscription %s cancelled by %s", snapshot.subscription_id, user_id)
        return ServiceResult.ok(snapshot, self._messages.get("subscription.cancelled"))

    def toggle_auto_renew(self, user_id: str, now: Optional[datetime] = None) -> ServiceResult:
        with self._lock:
            sub = self._subscriptions.get(user_id)
            if sub is None:
                return self._fail(ErrorKind.NOT_FOUND, "subscription.not_found")
            if now is None:
                now = datetime.now(timezone.utc)
            sub.auto_renew = not sub.auto_renew
            sub.updated_utc = now
            self._record(EventKind.SUBSCRIPTION_AUTO_RENEW, user_id, {
                "subscription_id": sub.subscription_id,
                "auto_renew": sub.auto_renew,
            }, now)
            snapshot = copy.deepcopy(sub)

        key = "subscription.auto_renew_on" if snapshot.auto_renew else "subscription.auto_renew_off"
        return ServiceResult.ok(snapshot, self._messages.get(key))

    def expire_lapsed(self, now: Optional[datetime] = None) -> ServiceResult:
        """Persist EXPIRED for active subscriptions past their end date.

        Optional sweep; reads never depend on it having run.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        expired: list[str] = []
        with self._lock:
            for sub in self._subscriptions.values():
                if derivation.has_lapsed(sub, now):
                    sub.status = SubscriptionStatus.EXPIRED
                    sub.updated_utc = now
                    expired.append(sub.user_id)
                    self._record(EventKind.SUBSCRIPTION_EXPIRED, sub.user_id, {
                        "subscription_id": sub.subscription_id,
                    }, now)
            if expired:
                self._changed.notify_all()
        if expired:
            logger.info("Expired %d lapsed subscriptions", len(expired))
        return ServiceResult.ok(expired, self._messages.get("subscription.expired_swept"))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def payment_history(self, user_id: str) -> ServiceResult:
        with self._lock:
            mine = [p for p in self._payments.values() if p.user_id == user_id]
            mine.sort(key=lambda p: p.created_utc, reverse=True)
            data = [copy.deepcopy(p) for p in mine]
        return ServiceResult.ok(data, self._messages.get("subscription.payments"))

    def has_active_subscription(
        self, user_id: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            active = derivation.is_active(self._subscriptions.get(user_id), now)
        key = "subscription.active" if active else "subscription.none"
        return ServiceResult.ok(active, self._messages.get(key))

    def stats(self, user_id: str, now: Optional[datetime] = None) -> ServiceResult:
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            sub = self._subscriptions.get(user_id)
            total_paid = sum(
                (
                    p.amount for p in self._payments.values()
                    if p.user_id == user_id and p.status == PaymentStatus.COMPLETED
                ),
                Decimal("0"),
            )
            if sub is None:
                stats = SubscriptionStats(total_paid, None, 0, False, False)
            else:
                plan = self._plans.get(sub.plan_id)
                stats = SubscriptionStats(
                    total_paid=total_paid,
                    current_plan=plan.name if plan else None,
                    days_remaining=derivation.days_remaining(sub, now),
                    is_active=derivation.is_active(sub, now),
                    auto_renew=sub.auto_renew,
                )
        return ServiceResult.ok(stats, self._messages.get("subscription.stats"))

    def shutdown(self) -> None:
        """Drop settlements that have not run yet."""
        self._scheduler.shutdown()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fail(self, kind: ErrorKind, key: str, data: object = None) -> ServiceResult:
        return ServiceResult.fail(kind, self._messages.get(key), data)

    def _record(self, kind: EventKind, actor_id: str, payload: dict, now: datetime) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id, payload, now)
