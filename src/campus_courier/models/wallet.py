"""Wallet and ledger models.

All monetary values use Decimal. The ledger invariant, maintained by
WalletLedger on every mutation, is:

    balance == total_earnings - total_withdrawals - pending_amount
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class TransactionType(str, enum.Enum):
    EARNING = "earning"
    WITHDRAWAL = "withdrawal"
    SUBSCRIPTION = "subscription"
    REFUND = "refund"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


@dataclass
class WalletTransaction:
    """A single ledger entry. Amount is signed: debits are negative.

    Only status and completed_utc change after the entry is appended.
    """
    transaction_id: str
    transaction_type: TransactionType
    amount: Decimal
    description: str
    status: TransactionStatus
    created_utc: datetime
    mission_id: Optional[str] = None
    withdrawal_request_id: Optional[str] = None
    completed_utc: Optional[datetime] = None


@dataclass
class Wallet:
    wallet_id: str
    user_id: str
    balance: Decimal = Decimal("0")
    total_earnings: Decimal = Decimal("0")
    total_withdrawals: Decimal = Decimal("0")
    pending_amount: Decimal = Decimal("0")
    # Newest first.
    transactions: list[WalletTransaction] = field(default_factory=list)
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None
    version: int = 0

    def is_reconciled(self) -> bool:
        return self.balance == (
            self.total_earnings - self.total_withdrawals - self.pending_amount
        )


@dataclass
class WithdrawalRequest:
    """Back-office record of a requested payout."""
    request_id: str
    user_id: str
    amount: Decimal
    bank_account: str
    iban: str
    transaction_id: str
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    requested_utc: Optional[datetime] = None
    processed_utc: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class WalletStats:
    total_earnings: Decimal
    total_withdrawals: Decimal
    current_balance: Decimal
    pending_amount: Decimal
    this_month_earnings: Decimal
    completed_missions: int
