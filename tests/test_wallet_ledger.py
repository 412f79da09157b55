"""Tests for the wallet ledger: proves the books always balance."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from campus_courier.models.wallet import (
    TransactionStatus,
    TransactionType,
    WithdrawalStatus,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind
from campus_courier.wallet.ledger import WalletLedger


CONFIG_DIR = Path(__file__).resolve().parents[1] / "src" / "campus_courier" / "config"


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger() -> WalletLedger:
    return WalletLedger(PolicyResolver.from_config_dir(CONFIG_DIR))


def _assert_conserved(ledger: WalletLedger, user_id: str) -> None:
    w = ledger.get_wallet(user_id).data
    assert w.balance == w.total_earnings - w.total_withdrawals - w.pending_amount
    assert w.balance >= 0
    assert w.pending_amount >= 0


class TestWallets:
    def test_get_or_create_is_zeroed(self, ledger: WalletLedger) -> None:
        wallet = ledger.get_or_create_wallet("u1", now=_now()).data
        assert wallet.user_id == "u1"
        assert wallet.balance == Decimal("0")
        assert wallet.transactions == []
        assert wallet.created_utc == _now()

    def test_get_or_create_is_idempotent(self, ledger: WalletLedger) -> None:
        first = ledger.get_or_create_wallet("u1").data
        second = ledger.get_or_create_wallet("u1").data
        assert first.wallet_id == second.wallet_id

    def test_get_wallet_does_not_create(self, ledger: WalletLedger) -> None:
        result = ledger.get_wallet("ghost")
        assert result.error == ErrorKind.NOT_FOUND
        assert ledger.get_wallet("ghost").error == ErrorKind.NOT_FOUND


class TestEarnings:
    def test_add_earning_credits(self, ledger: WalletLedger) -> None:
        result = ledger.add_earning("c1", Decimal("20"), "Book delivery", "m1", now=_now())
        assert result.success
        txn = result.data
        assert txn.transaction_type == TransactionType.EARNING
        assert txn.status == TransactionStatus.COMPLETED
        assert txn.mission_id == "m1"

        wallet = ledger.get_wallet("c1").data
        assert wallet.balance == Decimal("20")
        assert wallet.total_earnings == Decimal("20")
        assert wallet.transactions[0].transaction_id == txn.transaction_id
        assert wallet.version == 1
        _assert_conserved(ledger, "c1")

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_non_positive_rejected(self, ledger: WalletLedger, amount: str) -> None:
        result = ledger.add_earning("c1", Decimal(amount), "Bad")
        assert result.error == ErrorKind.VALIDATION_ERROR
        assert ledger.get_wallet("c1").error == ErrorKind.NOT_FOUND

    def test_float_amount_keeps_its_decimal_value(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", 0.1, "Tip")
        ledger.add_earning("c1", 10.2, "Delivery")
        assert ledger.get_wallet("c1").data.balance == Decimal("10.3")

        ledger.request_withdrawal("c1", 10.1, "Bank", "OM00")
        wallet = ledger.get_wallet("c1").data
        assert wallet.pending_amount == Decimal("10.1")
        assert wallet.balance == Decimal("0.2")


class TestWithdrawalRequests:
    def test_minimum_floor(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", Decimal("50"), "Earned")
        below = ledger.request_withdrawal("c1", Decimal("9.99"), "Bank Muscat", "OM00")
        assert below.error == ErrorKind.VALIDATION_ERROR
        assert ledger.get_wallet("c1").data.balance == Decimal("50")

        at = ledger.request_withdrawal("c1", Decimal("10"), "Bank Muscat", "OM00")
        assert at.success
        assert at.data.status == WithdrawalStatus.PENDING

    def test_insufficient_balance(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", Decimal("20"), "Earned")
        result = ledger.request_withdrawal("c1", Decimal("25"), "Bank", "OM00")
        assert result.error == ErrorKind.VALIDATION_ERROR
        wallet = ledger.get_wallet("c1").data
        assert wallet.balance == Decimal("20")
        assert wallet.pending_amount == Decimal("0")
        assert len(wallet.transactions) == 1

    def test_missing_wallet(self, ledger: WalletLedger) -> None:
        result = ledger.request_withdrawal("ghost", Decimal("10"), "Bank", "OM00")
        assert result.error == ErrorKind.NOT_FOUND

    def test_request_moves_balance_to_pending(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", Decimal("20"), "Earned")
        request = ledger.request_withdrawal("c1", Decimal("15"), "Bank", "OM81", now=_now()).data

        wallet = ledger.get_wallet("c1").data
        assert wallet.balance == Decimal("5")
        assert wallet.pending_amount == Decimal("15")
        txn = wallet.transactions[0]
        assert txn.transaction_type == TransactionType.WITHDRAWAL
        assert txn.amount == Decimal("-15")
        assert txn.status == TransactionStatus.PENDING
        assert txn.transaction_id == request.transaction_id
        assert txn.withdrawal_request_id == request.request_id
        _assert_conserved(ledger, "c1")


class TestSettlement:
    def _pending(self, ledger: WalletLedger) -> str:
        ledger.add_earning("c1", Decimal("20"), "Earned", now=_now())
        return ledger.request_withdrawal(
            "c1", Decimal("15"), "Bank", "OM81", now=_now(),
        ).data.request_id

    def test_success(self, ledger: WalletLedger) -> None:
        rid = self._pending(ledger)
        result = ledger.settle_withdrawal(rid, succeeded=True, now=_now())
        assert result.data.status == WithdrawalStatus.COMPLETED
        assert result.data.processed_utc == _now()

        wallet = ledger.get_wallet("c1").data
        assert wallet.balance == Decimal("5")
        assert wallet.pending_amount == Decimal("0")
        assert wallet.total_withdrawals == Decimal("15")
        assert wallet.transactions[0].status == TransactionStatus.COMPLETED
        _assert_conserved(ledger, "c1")

    def test_failure_refunds(self, ledger: WalletLedger) -> None:
        rid = self._pending(ledger)
        result = ledger.settle_withdrawal(rid, succeeded=False, notes="IBAN invalid")
        assert result.data.status == WithdrawalStatus.REJECTED
        assert result.data.notes == "IBAN invalid"

        wallet = ledger.get_wallet("c1").data
        assert wallet.balance == Decimal("20")
        assert wallet.pending_amount == Decimal("0")
        assert wallet.total_withdrawals == Decimal("0")
        refund, withdrawal = wallet.transactions[0], wallet.transactions[1]
        assert refund.transaction_type == TransactionType.REFUND
        assert refund.amount == Decimal("15")
        assert withdrawal.status == TransactionStatus.FAILED
        _assert_conserved(ledger, "c1")

    def test_settle_twice_fails(self, ledger: WalletLedger) -> None:
        rid = self._pending(ledger)
        assert ledger.settle_withdrawal(rid, succeeded=True).success
        again = ledger.settle_withdrawal(rid, succeeded=False)
        assert again.error == ErrorKind.INVALID_STATE_TRANSITION
        assert ledger.get_wallet("c1").data.total_withdrawals == Decimal("15")

    def test_unknown_request(self, ledger: WalletLedger) -> None:
        assert ledger.settle_withdrawal("nope", True).error == ErrorKind.NOT_FOUND

    def test_conservation_over_mixed_sequence(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", Decimal("100"), "A")
        r1 = ledger.request_withdrawal("c1", Decimal("30"), "Bank", "OM").data.request_id
        ledger.add_earning("c1", Decimal("12.5"), "B")
        r2 = ledger.request_withdrawal("c1", Decimal("40"), "Bank", "OM").data.request_id
        _assert_conserved(ledger, "c1")
        ledger.settle_withdrawal(r1, succeeded=True)
        _assert_conserved(ledger, "c1")
        ledger.settle_withdrawal(r2, succeeded=False)
        _assert_conserved(ledger, "c1")
        assert ledger.get_wallet("c1").data.balance == Decimal("82.5")


class TestQueries:
    def test_history_newest_first_with_limit(self, ledger: WalletLedger) -> None:
        for i in range(3):
            ledger.add_earning("c1", Decimal("10"), f"E{i}", now=_now() + timedelta(minutes=i))
        history = ledger.transaction_history("c1", limit=2).data
        assert [t.description for t in history] == ["E2", "E1"]
        assert len(ledger.transaction_history("c1").data) == 3

    def test_history_unknown_user(self, ledger: WalletLedger) -> None:
        result = ledger.transaction_history("ghost")
        assert result.error == ErrorKind.NOT_FOUND
        assert result.data == []

    def test_withdrawal_requests_newest_first(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", Decimal("50"), "E")
        first = ledger.request_withdrawal("c1", Decimal("10"), "B", "OM", now=_now()).data
        second = ledger.request_withdrawal(
            "c1", Decimal("10"), "B", "OM", now=_now() + timedelta(hours=1),
        ).data
        ids = [r.request_id for r in ledger.withdrawal_requests("c1").data]
        assert ids == [second.request_id, first.request_id]

    def test_stats_this_month(self, ledger: WalletLedger) -> None:
        ledger.add_earning("c1", Decimal("7"), "Last month", "m0", now=datetime(
            2026, 1, 30, 9, 0, tzinfo=timezone.utc,
        ))
        ledger.add_earning("c1", Decimal("20"), "This month", "m1", now=datetime(
            2026, 2, 2, 9, 0, tzinfo=timezone.utc,
        ))
        ledger.add_earning("c1", Decimal("3"), "Bonus", now=_now())
        stats = ledger.stats("c1", now=_now()).data
        assert stats.total_earnings == Decimal("30")
        assert stats.this_month_earnings == Decimal("23")
        assert stats.completed_missions == 2
        assert stats.current_balance == Decimal("30")

    def test_stats_unknown_user(self, ledger: WalletLedger) -> None:
        result = ledger.stats("ghost")
        assert result.error == ErrorKind.NOT_FOUND
        assert result.data.current_balance == Decimal("0")


class TestAuditTrail:
    def test_mutations_recorded(self) -> None:
        log = EventLog()
        ledger = WalletLedger(PolicyResolver.from_config_dir(CONFIG_DIR), event_log=log)
        ledger.add_earning("c1", Decimal("20"), "E")
        rid = ledger.request_withdrawal("c1", Decimal("10"), "B", "OM").data.request_id
        ledger.settle_withdrawal(rid, succeeded=False)
        kinds = [e.event_kind for e in log.events()]
        assert kinds == [
            EventKind.WALLET_CREATED,
            EventKind.EARNING_CREDITED,
            EventKind.WITHDRAWAL_REQUESTED,
            EventKind.WITHDRAWAL_REJECTED,
        ]


class TestRejectedWithdrawalsChangeNothing:
    @pytest.fixture
    def logged(self) -> tuple[WalletLedger, EventLog]:
        log = EventLog()
        ledger = WalletLedger(PolicyResolver.from_config_dir(CONFIG_DIR), event_log=log)
        ledger.add_earning("c1", Decimal("20"), "Earned", now=_now())
        return ledger, log

    @pytest.mark.parametrize("amount", ["9.99", "25"])
    def test_wallet_and_log_untouched(
        self, logged: tuple[WalletLedger, EventLog], amount: str,
    ) -> None:
        ledger, log = logged
        wallet_before = ledger.get_wallet("c1").data
        requests_before = ledger.withdrawal_requests("c1").data
        events_before = log.count

        result = ledger.request_withdrawal("c1", Decimal(amount), "Bank", "OM00", now=_now())
        assert result.error == ErrorKind.VALIDATION_ERROR
        assert ledger.get_wallet("c1").data == wallet_before
        assert ledger.withdrawal_requests("c1").data == requests_before
        assert log.count == events_before
