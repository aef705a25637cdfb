"""
Data Models Package

This package contains all Pydantic models used in FinLedger.
All data flowing through the system must conform to these schemas.
"""

from finledger.models.ledger import (
    Account,
    AccountDraft,
    AccountType,
    Asset,
    AssetDraft,
    AssetType,
    Investment,
    InvestmentDraft,
    LedgerSnapshot,
    Platform,
    Receivable,
    ReceivableDraft,
    ReceivableStatus,
    SystemCategory,
    Transaction,
    TransactionDraft,
    TransactionOrigin,
    TransactionType,
    new_id,
)
from finledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)
from finledger.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountDraft",
    "AccountType",
    "Asset",
    "AssetDraft",
    "AssetType",
    "Investment",
    "InvestmentDraft",
    "LedgerSnapshot",
    "Platform",
    "Receivable",
    "ReceivableDraft",
    "ReceivableStatus",
    "SystemCategory",
    "Transaction",
    "TransactionDraft",
    "TransactionOrigin",
    "TransactionType",
    "new_id",
    # Event models
    "EventSeverity",
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
