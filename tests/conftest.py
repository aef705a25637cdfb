"""
Shared fixtures.

Every engine runs on a fixed clock so synthesized transactions
(opening balances, refunds, receivable entries) get a known date.
"""

from datetime import date

import pytest

from finledger.config import LedgerSettings
from finledger.ledger import LedgerEngine
from finledger.models.ledger import AccountDraft, AccountType
from finledger.validation import LedgerValidator


TODAY = date(2024, 5, 15)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def engine() -> LedgerEngine:
    """Empty engine on a fixed clock."""
    return LedgerEngine(clock=lambda: TODAY)


@pytest.fixture
def cash(engine):
    """'Cash' account opened with 100000."""
    return engine.add_account(AccountDraft(
        name="Cash",
        type=AccountType.CASH,
        initial_balance=100000,
    ))


@pytest.fixture
def bank(engine):
    """'Bank' account opened with 500000."""
    return engine.add_account(AccountDraft(
        name="Bank",
        type=AccountType.BANK,
        initial_balance=500000,
    ))


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        warn_insufficient_funds=True,
        max_reasonable_amount=1_000_000_000,
    )


@pytest.fixture
def validator(engine, ledger_settings) -> LedgerValidator:
    return LedgerValidator(engine, settings=ledger_settings)
