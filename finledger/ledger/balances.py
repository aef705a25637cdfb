"""
Balance Derivation Rules

Pure functions that turn transactions into balance changes. The engine
uses balance_effects() for incremental updates on the hot path and
recompute_balances() for the full replay, so both paths share the same
rules and cannot drift apart.

Rules:
- Income:   source += amount
- Expense:  source -= amount
- Transfer: source -= amount, destination += amount
"""

from collections.abc import Iterable

from finledger.models.ledger import Transaction, TransactionType


def balance_effects(tx: Transaction) -> list[tuple[str, float]]:
    """
    List the (account_id, delta) pairs a transaction applies.

    History records (affects_balance=False) apply nothing.
    """
    if not tx.affects_balance:
        return []

    if tx.type == TransactionType.INCOME:
        return [(tx.account_id, tx.amount)]

    effects = [(tx.account_id, -tx.amount)]
    if tx.type == TransactionType.TRANSFER and tx.to_account_id:
        effects.append((tx.to_account_id, tx.amount))
    return effects


def opening_balance_amount(
    account_id: str,
    transactions: Iterable[Transaction],
) -> float:
    """Amount of the account's opening-balance entry, 0 if it has none."""
    for tx in transactions:
        if tx.is_opening_balance and tx.account_id == account_id:
            return tx.amount
    return 0.0


def recompute_balances(
    account_ids: Iterable[str],
    transactions: list[Transaction],
) -> dict[str, float]:
    """
    Replay the ledger from scratch.

    Each account starts from its opening-balance amount (0 if none), then
    every non-opening transaction is folded in. Transactions that point
    at accounts outside account_ids are ignored.
    """
    balances = {
        account_id: opening_balance_amount(account_id, transactions)
        for account_id in account_ids
    }

    for tx in transactions:
        if tx.is_opening_balance:
            continue
        for account_id, delta in balance_effects(tx):
            if account_id in balances:
                balances[account_id] += delta

    return balances


def ledger_sort_key(tx: Transaction) -> tuple:
    return (tx.date, tx.sequence)


def sort_ledger(transactions: list[Transaction]) -> None:
    """
    Order the ledger in place: newest date first, and for the same date
    the most recently inserted entry first.
    """
    transactions.sort(key=ledger_sort_key, reverse=True)
