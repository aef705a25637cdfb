"""Tests for the pure balance rules."""

import pytest
from datetime import date

from finledger.ledger.balances import (
    balance_effects,
    opening_balance_amount,
    recompute_balances,
    sort_ledger,
)
from finledger.models.ledger import Transaction, TransactionType


def _tx(type, amount, account_id="a", to_account_id=None, **kwargs):
    return Transaction(
        date=kwargs.pop("date", date(2024, 5, 1)),
        type=type,
        account_id=account_id,
        to_account_id=to_account_id,
        amount=amount,
        **kwargs,
    )


class TestBalanceEffects:
    """Tests for per-transaction deltas."""

    def test_income_adds(self):
        """Test Income credits the source account."""
        assert balance_effects(_tx(TransactionType.INCOME, 100)) == [("a", 100)]

    def test_expense_subtracts(self):
        """Test Expense debits the source account."""
        assert balance_effects(_tx(TransactionType.EXPENSE, 100)) == [("a", -100)]

    def test_transfer_moves_money(self):
        """Test Transfer debits the source and credits the destination."""
        effects = balance_effects(_tx(TransactionType.TRANSFER, 50, to_account_id="b"))
        assert effects == [("a", -50), ("b", 50)]

    def test_history_record_has_no_effect(self):
        """Test that a record with affects_balance=False changes nothing."""
        tx = _tx(TransactionType.INCOME, 100, affects_balance=False)
        assert balance_effects(tx) == []

    def test_negative_amount_inverts(self):
        """Test that negative amounts are folded as-is (corrections)."""
        assert balance_effects(_tx(TransactionType.EXPENSE, -30)) == [("a", 30)]


class TestRecomputeBalances:
    """Tests for the full ledger replay."""

    def test_starts_from_opening_balance(self):
        """Test that the opening entry seeds the account."""
        txs = [
            _tx(TransactionType.INCOME, 1000, is_opening_balance=True),
            _tx(TransactionType.EXPENSE, 300),
        ]
        assert recompute_balances(["a"], txs) == {"a": 700}

    def test_account_without_transactions_is_zero(self):
        """Test that an untouched account derives to zero."""
        assert recompute_balances(["a", "b"], []) == {"a": 0.0, "b": 0.0}

    def test_unknown_accounts_ignored(self):
        """Test that transactions for other accounts do not leak in."""
        txs = [_tx(TransactionType.TRANSFER, 40, account_id="a", to_account_id="zz")]
        assert recompute_balances(["a"], txs) == {"a": -40}

    def test_negative_opening_balance(self):
        """Test that an account may start in debt."""
        txs = [_tx(TransactionType.INCOME, -500, is_opening_balance=True)]
        assert recompute_balances(["a"], txs) == {"a": -500}

    def test_opening_amount_lookup(self):
        """Test opening balance lookup by flag, not category."""
        txs = [
            _tx(TransactionType.INCOME, 10, category="Saldo Awal", is_opening_balance=False),
            _tx(TransactionType.INCOME, 99, is_opening_balance=True),
        ]
        assert opening_balance_amount("a", txs) == 99
        assert opening_balance_amount("b", txs) == 0.0


class TestSortLedger:
    """Tests for deterministic ledger ordering."""

    def test_newest_date_first(self):
        """Test that later dates sort first."""
        old = _tx(TransactionType.INCOME, 1, date=date(2024, 1, 1), sequence=5)
        new = _tx(TransactionType.INCOME, 2, date=date(2024, 6, 1), sequence=1)
        txs = [old, new]
        sort_ledger(txs)
        assert txs == [new, old]

    def test_same_date_uses_sequence(self):
        """Test that same-date entries sort by insertion sequence, newest first."""
        first = _tx(TransactionType.INCOME, 1, sequence=1)
        second = _tx(TransactionType.INCOME, 2, sequence=2)
        third = _tx(TransactionType.INCOME, 3, sequence=3)
        txs = [second, first, third]
        sort_ledger(txs)
        assert [t.sequence for t in txs] == [3, 2, 1]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
