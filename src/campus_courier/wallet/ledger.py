"""Wallet ledger: per-user balances backed by an append-only history.

Every mutation that moves ``balance`` also moves its paired counter and
appends a transaction, all under the ledger lock, so the books always
satisfy:

    balance == total_earnings - total_withdrawals - pending_amount

Withdrawal lifecycle:
    request_withdrawal        balance -= amount, pending += amount,
                              pending debit appended, request PENDING
    settle_withdrawal(ok)     pending -= amount, total_withdrawals += amount,
                              debit COMPLETED, request COMPLETED
    settle_withdrawal(fail)   pending -= amount, balance += amount,
                              debit FAILED, refund appended, request REJECTED

Settlement is an explicit hook for a payment-gateway callback; nothing
settles a withdrawal automatically.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from campus_courier.models.wallet import (
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletStats,
    WalletTransaction,
    WithdrawalRequest,
    WithdrawalStatus,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind, MessageCatalog, ServiceResult

logger = logging.getLogger(__name__)


class WalletLedger:
    """Manages wallets, their transactions and withdrawal requests.

    Usage:
        ledger = WalletLedger(resolver)
        ledger.add_earning("courier_1", Decimal("20"), "Book delivery", "mission_1")
        result = ledger.request_withdrawal("courier_1", Decimal("15"), "Bank", "OM81...")
        ledger.settle_withdrawal(result.data.request_id, succeeded=True)
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        messages: Optional[MessageCatalog] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._messages = messages or MessageCatalog()
        self._event_log = event_log
        self._wallets: dict[str, Wallet] = {}
        self._withdrawals: dict[str, WithdrawalRequest] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    def get_or_create_wallet(
        self, user_id: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Return the user's wallet, creating a zeroed one on first access."""
        with self._lock:
            wallet = self._ensure_wallet(user_id, now)
            return ServiceResult.ok(
                copy.deepcopy(wallet), self._messages.get("wallet.fetched"),
            )

    def get_wallet(self, user_id: str) -> ServiceResult:
        """Return the user's wallet without creating one."""
        with self._lock:
            wallet = self._wallets.get(user_id)
            if wallet is None:
                return self._fail(ErrorKind.NOT_FOUND, "wallet.not_found")
            return ServiceResult.ok(
                copy.deepcopy(wallet), self._messages.get("wallet.fetched"),
            )

    # ------------------------------------------------------------------
    # Credits and debits
    # ------------------------------------------------------------------

    def add_earning(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        mission_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Credit a completed earning; creates the wallet if needed."""
        amount = Decimal(str(amount))
        if amount <= 0:
            logger.warning("Rejected earning of %s for %s", amount, user_id)
            return self._fail(ErrorKind.VALIDATION_ERROR, "wallet.invalid_amount")

        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            wallet = self._ensure_wallet(user_id, now)
            txn = WalletTransaction(
                transaction_id=f"txn_{uuid4().hex[:12]}",
                transaction_type=TransactionType.EARNING,
                amount=amount,
                description=description,
                mission_id=mission_id,
                status=TransactionStatus.COMPLETED,
                created_utc=now,
                completed_utc=now,
            )
            wallet.transactions.insert(0, txn)
            wallet.balance += amount
            wallet.total_earnings += amount
            self._touch(wallet, now)
            self._record(EventKind.EARNING_CREDITED, user_id, {
                "transaction_id": txn.transaction_id,
                "amount": str(amount),
                "mission_id": mission_id,
                "balance": str(wallet.balance),
            }, now)
            snapshot = copy.deepcopy(txn)

        logger.info("Credited %s to %s (mission %s)", amount, user_id, mission_id)
        return ServiceResult.ok(snapshot, self._messages.get("wallet.earning_added"))

    def request_withdrawal(
        self,
        user_id: str,
        amount: Decimal,
        bank_account: str,
        iban: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Debit the balance into a pending withdrawal.

        Fails with VALIDATION_ERROR below the minimum withdrawal or when
        the balance does not cover the amount.
        """
        amount = Decimal(str(amount))
        with self._lock:
            wallet = self._wallets.get(user_id)
            if wallet is None:
                return self._fail(ErrorKind.NOT_FOUND, "wallet.not_found")
            if amount < self._resolver.min_withdrawal():
                logger.warning("Withdrawal of %s by %s below minimum", amount, user_id)
                return self._fail(ErrorKind.VALIDATION_ERROR, "wallet.below_minimum")
            if wallet.balance < amount:
                logger.warning(
                    "Withdrawal of %s by %s exceeds balance %s",
                    amount, user_id, wallet.balance,
                )
                return self._fail(
                    ErrorKind.VALIDATION_ERROR, "wallet.insufficient_balance",
                )

            if now is None:
                now = datetime.now(timezone.utc)
            txn = WalletTransaction(
                transaction_id=f"txn_{uuid4().hex[:12]}",
                transaction_type=TransactionType.WITHDRAWAL,
                amount=-amount,
                description=f"Withdrawal to {bank_account}",
                status=TransactionStatus.PENDING,
                created_utc=now,
            )
            request = WithdrawalRequest(
                request_id=f"withdrawal_{uuid4().hex[:12]}",
                user_id=user_id,
                amount=amount,
                bank_account=bank_account,
                iban=iban,
                transaction_id=txn.transaction_id,
                status=WithdrawalStatus.PENDING,
                requested_utc=now,
            )
            txn.withdrawal_request_id = request.request_id

            wallet.transactions.insert(0, txn)
            wallet.balance -= amount
            wallet.pending_amount += amount
            self._withdrawals[request.request_id] = request
            self._touch(wallet, now)
            self._record(EventKind.WITHDRAWAL_REQUESTED, user_id, {
                "request_id": request.request_id,
                "transaction_id": txn.transaction_id,
                "amount": str(amount),
                "balance": str(wallet.balance),
            }, now)
            snapshot = copy.deepcopy(request)

        logger.info("Withdrawal %s of %s requested by %s", snapshot.request_id, amount, user_id)
        return ServiceResult.ok(snapshot, self._messages.get("wallet.withdrawal_requested"))

    def settle_withdrawal(
        self,
        request_id: str,
        succeeded: bool,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Settle a pending withdrawal: pay it out, or reject and refund it."""
        with self._lock:
            request = self._withdrawals.get(request_id)
            if request is None:
                return self._fail(ErrorKind.NOT_FOUND, "wallet.withdrawal_not_found")
            if request.status != WithdrawalStatus.PENDING:
                return self._fail(
                    ErrorKind.INVALID_STATE_TRANSITION,
                    "wallet.withdrawal_not_pending",
                    copy.deepcopy(request),
                )

            if now is None:
                now = datetime.now(timezone.utc)
            wallet = self._wallets[request.user_id]
            txn = next(
                t for t in wallet.transactions
                if t.transaction_id == request.transaction_id
            )

            wallet.pending_amount -= request.amount
            txn.completed_utc = now
            request.processed_utc = now
            request.notes = notes
            if succeeded:
                wallet.total_withdrawals += request.amount
                txn.status = TransactionStatus.COMPLETED
                request.status = WithdrawalStatus.COMPLETED
                kind, key = EventKind.WITHDRAWAL_SETTLED, "wallet.withdrawal_settled"
            else:
                wallet.balance += request.amount
                txn.status = TransactionStatus.FAILED
                request.status = WithdrawalStatus.REJECTED
                wallet.transactions.insert(0, WalletTransaction(
                    transaction_id=f"txn_{uuid4().hex[:12]}",
                    transaction_type=TransactionType.REFUND,
                    amount=request.amount,
                    description=f"Refund of rejected withdrawal {request_id}",
                    status=TransactionStatus.COMPLETED,
                    created_utc=now,
                    completed_utc=now,
                    withdrawal_request_id=request_id,
                ))
                kind, key = EventKind.WITHDRAWAL_REJECTED, "wallet.withdrawal_rejected"
            self._touch(wallet, now)
            self._record(kind, request.user_id, {
                "request_id": request_id,
                "amount": str(request.amount),
                "balance": str(wallet.balance),
            }, now)
            snapshot = copy.deepcopy(request)

        if succeeded:
            logger.info("Withdrawal %s settled", request_id)
        else:
            logger.warning("Withdrawal %s rejected and refunded", request_id)
        return ServiceResult.ok(snapshot, self._messages.get(key))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def transaction_history(
        self, user_id: str, limit: Optional[int] = None,
    ) -> ServiceResult:
        """Most recent transactions first, at most ``limit`` of them."""
        if limit is None:
            limit = self._resolver.default_history_limit()
        with self._lock:
            wallet = self._wallets.get(user_id)
            if wallet is None:
                return self._fail(ErrorKind.NOT_FOUND, "wallet.not_found", [])
            # Stable sort keeps insertion order (newest first) for equal stamps.
            ordered = sorted(wallet.transactions, key=lambda t: t.created_utc, reverse=True)
            data = [copy.deepcopy(t) for t in ordered[:max(limit, 0)]]
        return ServiceResult.ok(data, self._messages.get("wallet.history"))

    def withdrawal_requests(self, user_id: str) -> ServiceResult:
        with self._lock:
            mine = [r for r in self._withdrawals.values() if r.user_id == user_id]
            mine.sort(key=lambda r: r.requested_utc, reverse=True)
            data = [copy.deepcopy(r) for r in mine]
        return ServiceResult.ok(data, self._messages.get("wallet.withdrawals"))

    def stats(self, user_id: str, now: Optional[datetime] = None) -> ServiceResult:
        """Roll up totals plus this calendar month's completed earnings."""
        if now is None:
            now = datetime.now(timezone.utc)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        with self._lock:
            wallet = self._wallets.get(user_id)
            if wallet is None:
                zero = Decimal("0")
                return self._fail(
                    ErrorKind.NOT_FOUND, "wallet.not_found",
                    WalletStats(zero, zero, zero, zero, zero, 0),
                )
            earnings = [
                t for t in wallet.transactions
                if t.transaction_type == TransactionType.EARNING
                and t.status == TransactionStatus.COMPLETED
            ]
            stats = WalletStats(
                total_earnings=wallet.total_earnings,
                total_withdrawals=wallet.total_withdrawals,
                current_balance=wallet.balance,
                pending_amount=wallet.pending_amount,
                this_month_earnings=sum(
                    (t.amount for t in earnings if t.created_utc >= month_start),
                    Decimal("0"),
                ),
                completed_missions=sum(1 for t in earnings if t.mission_id),
            )
        return ServiceResult.ok(stats, self._messages.get("wallet.stats"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_wallet(self, user_id: str, now: Optional[datetime]) -> Wallet:
        wallet = self._wallets.get(user_id)
        if wallet is None:
            if now is None:
                now = datetime.now(timezone.utc)
            wallet = Wallet(
                wallet_id=f"wallet_{user_id}",
                user_id=user_id,
                created_utc=now,
                updated_utc=now,
            )
            self._wallets[user_id] = wallet
            self._record(EventKind.WALLET_CREATED, user_id, {
                "wallet_id": wallet.wallet_id,
            }, now)
            logger.info("Created wallet for %s", user_id)
        return wallet

    def _touch(self, wallet: Wallet, now: datetime) -> None:
        """Bump version and verify the books after a mutation."""
        if not wallet.is_reconciled():
            raise ValueError(
                f"Ledger invariant violated for {wallet.user_id}: "
                f"balance {wallet.balance} != earnings {wallet.total_earnings} "
                f"- withdrawals {wallet.total_withdrawals} - pending {wallet.pending_amount}"
            )
        wallet.updated_utc = now
        wallet.version += 1

    def _fail(self, kind: ErrorKind, key: str, data: object = None) -> ServiceResult:
        return ServiceResult.fail(kind, self._messages.get(key), data)

    def _record(self, kind: EventKind, actor_id: str, payload: dict, now: datetime) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id, payload, now)
