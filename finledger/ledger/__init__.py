"""Ledger consistency engine package."""

from finledger.ledger.balances import (
    balance_effects,
    recompute_balances,
    sort_ledger,
)
from finledger.ledger.engine import LedgerEngine

__all__ = [
    "LedgerEngine",
    "balance_effects",
    "recompute_balances",
    "sort_ledger",
]
