"""
Dashboard Summary

Read-only aggregation over a ledger. Works on anything exposing the
accounts, investments, receivables and transactions collections: a
LedgerEngine, a LedgerSession or a LedgerSnapshot.

It only ever reports what is in the data. Nothing is estimated, and an empty ledger sums to zero.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from finledger.models.ledger import (
    ReceivableStatus,
    Transaction,
    TransactionType,
)


class CategoryTotal(BaseModel):
    """Expense total for one category."""
    category: str
    amount: float


class DashboardSummary(BaseModel):
    """Wealth and spending figures for one date range."""

    start: date
    end: date
    today: date

    total_account_balance: float = 0.0
    total_investment_value: float = Field(
        default=0.0,
        description="Sum of current (marked) investment values",
    )
    total_unpaid_receivables: float = 0.0
    total_wealth: float = Field(
        default=0.0,
        description="Accounts + investments + unpaid receivables (assets excluded)",
    )
    investment_profit_loss: float = 0.0

    total_expense: float = Field(default=0.0, description="Expenses within start..end")
    expense_today: float = 0.0
    expense_this_month: float = 0.0
    expense_by_category: list[CategoryTotal] = Field(
        default_factory=list,
        description="Expenses within start..end, largest first",
    )


def filter_transactions_by_date(
    transactions: Iterable[Transaction],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Transaction]:
    """
    Transactions dated within [start, end], both ends inclusive.

    Either bound may be omitted. Order is preserved.
    """
    return [
        t for t in transactions
        if (start is None or t.date >= start) and (end is None or t.date <= end)
    ]


def _expense_total(transactions: Iterable[Transaction]) -> float:
    return sum(t.amount for t in transactions if t.type == TransactionType.EXPENSE)


def build_dashboard_summary(
    source,
    start: Optional[date] = None,
    end: Optional[date] = None,
    today: Optional[date] = None,
) -> DashboardSummary:
    """
    Compute the dashboard figures.

    Args:
        source: Engine, session or snapshot
        start: Range start (defaults to the first day of today's month)
        end: Range end, inclusive (defaults to today)
        today: Reference day (defaults to date.today())
    """
    today = today or date.today()
    month_start = today.replace(day=1)
    start = start or month_start
    end = end or today

    accounts = source.accounts
    investments = source.investments
    receivables = source.receivables
    transactions = source.transactions

    total_account_balance = sum(a.balance for a in accounts)
    total_investment_value = sum(i.current_value for i in investments)
    total_unpaid = sum(
        r.amount for r in receivables
        if r.status == ReceivableStatus.UNPAID
    )

    in_range = filter_transactions_by_date(transactions, start, end)

    by_category: dict[str, float] = defaultdict(float)
    for tx in in_range:
        if tx.type == TransactionType.EXPENSE:
            by_category[tx.category] += tx.amount

    return DashboardSummary(
        start=start,
        end=end,
        today=today,
        total_account_balance=total_account_balance,
        total_investment_value=total_investment_value,
        total_unpaid_receivables=total_unpaid,
        total_wealth=total_account_balance + total_investment_value + total_unpaid,
        investment_profit_loss=sum(i.profit_loss for i in investments),
        total_expense=_expense_total(in_range),
        expense_today=_expense_total(
            filter_transactions_by_date(transactions, today, today)
        ),
        expense_this_month=_expense_total(
            filter_transactions_by_date(transactions, month_start, today)
        ),
        expense_by_category=[
            CategoryTotal(category=category, amount=amount)
            for category, amount in sorted(
                by_category.items(),
                key=lambda item: item[1],
                reverse=True,
            )
        ],
    )
