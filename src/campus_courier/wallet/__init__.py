"""Wallet ledger: balances, earnings, withdrawals and their settlement."""

from campus_courier.wallet.ledger import WalletLedger

__all__ = ["WalletLedger"]
