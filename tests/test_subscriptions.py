"""Tests for subscriptions: two-phase settlement, lifecycle and derivations."""

import json
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from campus_courier.models.subscription import (
    PaymentMethod,
    PaymentStatus,
    SubscriptionStatus,
    UserSubscription,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind
from campus_courier.subscriptions import derivation
from campus_courier.subscriptions.manager import SubscriptionManager
from campus_courier.subscriptions.settlement import ManualScheduler, ThreadingScheduler


CONFIG_DIR = Path(__file__).resolve().parents[1] / "src" / "campus_courier" / "config"


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def manager(scheduler: ManualScheduler) -> SubscriptionManager:
    return SubscriptionManager(PolicyResolver.from_config_dir(CONFIG_DIR), scheduler=scheduler)


def _activate(manager: SubscriptionManager, scheduler: ManualScheduler, user: str = "s1") -> None:
    assert manager.subscribe(user, "premium_student", PaymentMethod.CARD, now=_now()).success
    scheduler.run_all()


class TestPlans:
    def test_catalog_from_config(self, manager: SubscriptionManager) -> None:
        plans = {p.plan_id: p for p in manager.list_plans().data}
        assert set(plans) == {"courier_monthly", "premium_student"}
        assert plans["courier_monthly"].price == Decimal("5.0")
        assert plans["premium_student"].duration_days == 30
        assert plans["premium_student"].currency == "OMR"

    def test_unknown_plan(self, manager: SubscriptionManager) -> None:
        result = manager.subscribe("s1", "gold", PaymentMethod.CARD)
        assert result.error == ErrorKind.VALIDATION_ERROR
        assert manager.get_subscription("s1").data is None


class TestSettlement:
    def test_subscribe_is_pending_until_settled(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        result = manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        assert result.data.status == SubscriptionStatus.PENDING
        assert result.data.end_utc == _now() + timedelta(days=30)
        assert scheduler.pending == 1

        # Default delay is 2 seconds.
        assert scheduler.advance(1.0) == 0
        assert manager.get_subscription("s1").data.status == SubscriptionStatus.PENDING
        assert scheduler.advance(1.0) == 1

        sub = manager.get_subscription("s1").data
        assert sub.status == SubscriptionStatus.ACTIVE
        payment = manager.payment_history("s1").data[0]
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.paid_utc is not None
        assert sub.transaction_id == payment.transaction_id

    def test_failed_payment_cancels(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        payment_id = manager.payment_history("s1").data[0].payment_id
        assert manager.settle_payment(payment_id, succeeded=False, now=_now()).success

        sub = manager.get_subscription("s1").data
        assert sub.status == SubscriptionStatus.CANCELLED
        assert sub.auto_renew is False
        assert manager.payment_history("s1").data[0].status == PaymentStatus.FAILED

        # The scheduled settlement finds the payment already settled.
        scheduler.run_all()
        assert manager.get_subscription("s1").data.status == SubscriptionStatus.CANCELLED

    def test_settle_twice_fails(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler)
        payment_id = manager.payment_history("s1").data[0].payment_id
        result = manager.settle_payment(payment_id, succeeded=False)
        assert result.error == ErrorKind.INVALID_STATE_TRANSITION
        assert manager.get_subscription("s1").data.status == SubscriptionStatus.ACTIVE

    def test_unknown_payment(self, manager: SubscriptionManager) -> None:
        assert manager.settle_payment("nope").error == ErrorKind.NOT_FOUND

    def test_superseded_payment_does_not_touch_replacement(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        replacement = manager.subscribe(
            "s1", "courier_monthly", PaymentMethod.WALLET, now=_now(),
        ).data
        payments = manager.payment_history("s1").data
        old = next(p for p in payments if p.subscription_id != replacement.subscription_id)
        new = next(p for p in payments if p.subscription_id == replacement.subscription_id)

        manager.settle_payment(new.payment_id, succeeded=False, now=_now())
        manager.settle_payment(old.payment_id, succeeded=True, now=_now())

        sub = manager.get_subscription("s1").data
        assert sub.subscription_id == replacement.subscription_id
        assert sub.status == SubscriptionStatus.CANCELLED
        statuses = {p.payment_id: p.status for p in manager.payment_history("s1").data}
        assert statuses[old.payment_id] == PaymentStatus.REFUNDED
        assert statuses[new.payment_id] == PaymentStatus.FAILED

    def test_replaced_pending_subscription_is_not_charged(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        replacement = manager.subscribe(
            "s1", "courier_monthly", PaymentMethod.CARD, now=_now(),
        ).data
        assert scheduler.run_all() == 2

        sub = manager.get_subscription("s1").data
        assert sub.subscription_id == replacement.subscription_id
        assert sub.status == SubscriptionStatus.ACTIVE
        statuses = sorted(p.status.value for p in manager.payment_history("s1").data)
        assert statuses == ["completed", "refunded"]
        assert manager.stats("s1", now=_now()).data.total_paid == Decimal("5.0")

    def test_shutdown_drops_pending(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        manager.shutdown()
        assert scheduler.run_all() == 0
        assert manager.get_subscription("s1").data.status == SubscriptionStatus.PENDING


class TestWaitForActivation:
    def test_times_out_when_never_settled(self, manager: SubscriptionManager) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        result = manager.wait_for_activation("s1", timeout=0.05)
        assert result.error == ErrorKind.TIMEOUT
        assert result.data.status == SubscriptionStatus.PENDING

    def test_unknown_user(self, manager: SubscriptionManager) -> None:
        assert manager.wait_for_activation("ghost", timeout=0.01).error == ErrorKind.NOT_FOUND

    def test_returns_once_settled_on_timer(self) -> None:
        with (CONFIG_DIR / "core_params.json").open(encoding="utf-8") as f:
            params = json.load(f)
        params["subscriptions"]["settlement_delay_seconds"] = 0.01
        manager = SubscriptionManager(PolicyResolver(params), scheduler=ThreadingScheduler())
        try:
            manager.subscribe("s1", "premium_student", PaymentMethod.CARD)
            result = manager.wait_for_activation("s1", timeout=5.0)
            assert result.success
            assert result.data.status == SubscriptionStatus.ACTIVE
        finally:
            manager.shutdown()


class TestLifecycle:
    def test_already_subscribed(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler)
        result = manager.subscribe("s1", "courier_monthly", PaymentMethod.CARD, now=_now())
        assert result.error == ErrorKind.ALREADY_SUBSCRIBED
        assert manager.get_subscription("s1").data.plan_id == "premium_student"

    def test_already_subscribed_changes_nothing(self, scheduler: ManualScheduler) -> None:
        log = EventLog()
        manager = SubscriptionManager(
            PolicyResolver.from_config_dir(CONFIG_DIR), scheduler=scheduler, event_log=log,
        )
        _activate(manager, scheduler)
        sub_before = manager.get_subscription("s1").data
        payments_before = manager.payment_history("s1").data
        events_before = log.count

        result = manager.subscribe("s1", "courier_monthly", PaymentMethod.CARD, now=_now())
        assert result.error == ErrorKind.ALREADY_SUBSCRIBED
        assert manager.get_subscription("s1").data == sub_before
        assert manager.payment_history("s1").data == payments_before
        assert log.count == events_before
        assert scheduler.pending == 0

    def test_unknown_payment_method(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        result = manager.subscribe("s1", "premium_student", "paypal", now=_now())
        assert result.error == ErrorKind.VALIDATION_ERROR
        assert manager.get_subscription("s1").data is None
        assert scheduler.pending == 0

    def test_resubscribe_after_lapse(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler)
        later = _now() + timedelta(days=31)
        result = manager.subscribe("s1", "courier_monthly", PaymentMethod.CARD, now=later)
        assert result.success
        assert result.data.status == SubscriptionStatus.PENDING

    def test_cancel_once(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler)
        first = manager.cancel("s1", now=_now())
        assert first.data.status == SubscriptionStatus.CANCELLED
        assert first.data.auto_renew is False

        second = manager.cancel("s1", now=_now())
        assert second.error == ErrorKind.INVALID_STATE_TRANSITION

    def test_cancel_pending_fails(self, manager: SubscriptionManager) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        assert manager.cancel("s1").error == ErrorKind.INVALID_STATE_TRANSITION

    def test_cancel_without_subscription(self, manager: SubscriptionManager) -> None:
        assert manager.cancel("ghost").error == ErrorKind.NOT_FOUND

    def test_toggle_auto_renew(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler)
        assert manager.toggle_auto_renew("s1").data.auto_renew is False
        assert manager.toggle_auto_renew("s1").data.auto_renew is True
        assert manager.toggle_auto_renew("ghost").error == ErrorKind.NOT_FOUND

    def test_expire_lapsed(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler, "s1")
        _activate(manager, scheduler, "s2")
        assert manager.expire_lapsed(now=_now() + timedelta(days=10)).data == []

        swept = manager.expire_lapsed(now=_now() + timedelta(days=31)).data
        assert sorted(swept) == ["s1", "s2"]
        assert manager.get_subscription("s1").data.status == SubscriptionStatus.EXPIRED

    def test_expire_at_exact_end(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        _activate(manager, scheduler)
        end = _now() + timedelta(days=30)
        assert manager.has_active_subscription("s1", now=end).data is False
        assert manager.expire_lapsed(now=end).data == ["s1"]


class TestQueries:
    def test_no_subscription_is_success_with_none(self, manager: SubscriptionManager) -> None:
        result = manager.get_subscription("ghost")
        assert result.success
        assert result.data is None

    def test_has_active_subscription(
        self, manager: SubscriptionManager, scheduler: ManualScheduler,
    ) -> None:
        assert manager.has_active_subscription("s1", now=_now()).data is False
        _activate(manager, scheduler)
        assert manager.has_active_subscription("s1", now=_now()).data is True
        later = _now() + timedelta(days=30, seconds=1)
        assert manager.has_active_subscription("s1", now=later).data is False

    def test_stats(self, manager: SubscriptionManager, scheduler: ManualScheduler) -> None:
        _activate(manager, scheduler)
        stats = manager.stats("s1", now=_now() + timedelta(days=10, hours=1)).data
        assert stats.total_paid == Decimal("3.0")
        assert stats.current_plan == "Premium Student Plan"
        assert stats.days_remaining == 20
        assert stats.is_active is True
        assert stats.auto_renew is True

    def test_stats_without_subscription(self, manager: SubscriptionManager) -> None:
        stats = manager.stats("ghost").data
        assert stats.total_paid == Decimal("0")
        assert stats.current_plan is None
        assert stats.is_active is False

    def test_failed_payments_not_counted(self, manager: SubscriptionManager) -> None:
        manager.subscribe("s1", "premium_student", PaymentMethod.CARD, now=_now())
        payment_id = manager.payment_history("s1").data[0].payment_id
        manager.settle_payment(payment_id, succeeded=False)
        assert manager.stats("s1", now=_now()).data.total_paid == Decimal("0")


class TestDerivation:
    def _sub(self, status: SubscriptionStatus, end: datetime) -> UserSubscription:
        return UserSubscription(
            subscription_id="sub1", user_id="s1", plan_id="premium_student",
            status=status, start_utc=_now(), end_utc=end,
            payment_method=PaymentMethod.CARD,
        )

    def test_days_remaining_rounds_up(self) -> None:
        sub = self._sub(SubscriptionStatus.ACTIVE, _now() + timedelta(days=1, hours=12))
        assert derivation.days_remaining(sub, _now()) == 2

    def test_days_remaining_never_negative(self) -> None:
        sub = self._sub(SubscriptionStatus.ACTIVE, _now() - timedelta(days=3))
        assert derivation.days_remaining(sub, _now()) == 0
        assert derivation.is_active(sub, _now()) is False
        assert derivation.has_lapsed(sub, _now()) is True

    def test_ending_now_is_lapsed(self) -> None:
        sub = self._sub(SubscriptionStatus.ACTIVE, _now())
        assert derivation.is_active(sub, _now()) is False
        assert derivation.has_lapsed(sub, _now()) is True

    def test_inactive_status_is_never_active(self) -> None:
        sub = self._sub(SubscriptionStatus.PENDING, _now() + timedelta(days=3))
        assert derivation.is_active(sub, _now()) is False
        assert derivation.is_active(None, _now()) is False


class TestAuditTrail:
    def test_events(self, scheduler: ManualScheduler) -> None:
        log = EventLog()
        manager = SubscriptionManager(
            PolicyResolver.from_config_dir(CONFIG_DIR), scheduler=scheduler, event_log=log,
        )
        _activate(manager, scheduler)
        manager.cancel("s1")
        kinds = [e.event_kind for e in log.events()]
        assert kinds == [
            EventKind.SUBSCRIPTION_CREATED,
            EventKind.SUBSCRIPTION_ACTIVATED,
            EventKind.SUBSCRIPTION_CANCELLED,
        ]
