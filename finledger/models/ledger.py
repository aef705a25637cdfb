"""
Core Ledger Models for FinLedger

These models define the schemas for everything the ledger engine owns:
accounts, platforms, investments, assets, receivables and transactions.

DESIGN DECISION: Python attributes are snake_case, but the wire format
(snapshot JSON) is camelCase. Snapshots the web app already wrote load
as-is (legacy "source" tags and "Saldo Awal" openings are upgraded on
read). Written snapshots use the newer fields (origin, isOpeningBalance,
affectsBalance, sequence), so compatibility is one-way: read only.
Both spellings are accepted on input.

DESIGN DECISION: Transactions are the single source of truth for money.
Account.balance is only a cached fold over the ledger and can always be
recomputed from transactions alone.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a new opaque entity ID."""
    return str(uuid4())


class LedgerModel(BaseModel):
    """Base for all ledger models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kind of account holding money."""
    CASH = "Tunai"
    BANK = "Bank"
    E_WALLET = "E-Wallet"
    INVESTMENT = "Investasi"


class AssetType(str, Enum):
    """Kind of physical asset."""
    PROPERTY = "Properti"
    VEHICLE = "Kendaraan"
    ELECTRONICS = "Elektronik"
    OTHER = "Lainnya"


class TransactionType(str, Enum):
    """
    Accounting type of a transaction.

    Income adds to the source account, Expense subtracts from it.
    Transfer subtracts from the source and adds to the destination.
    """
    INCOME = "Uang Masuk"
    EXPENSE = "Uang Keluar"
    TRANSFER = "Transfer"


class TransactionOrigin(str, Enum):
    """
    What caused a transaction.

    Independent of TransactionType: an investment creates an Expense,
    its deletion creates an Income, both with origin INVESTMENT.
    """
    MANUAL = "manual"
    INVESTMENT = "investment"
    RECEIVABLE = "receivable"
    ASSET = "asset"


class ReceivableStatus(str, Enum):
    """Settlement status of money lent out."""
    UNPAID = "Belum Lunas"
    PAID = "Lunas"


class SystemCategory(str, Enum):
    """
    Categories the engine writes on the transactions it synthesizes.

    Users may type the same text on manual transactions. The engine
    never identifies opening balances by category, only by the
    is_opening_balance flag.
    """
    OPENING_BALANCE = "Saldo Awal"
    INVESTMENT = "Investasi"
    INVESTMENT_REFUND = "Pengembalian Investasi"
    ASSET_PURCHASE = "Pembelian Aset"
    ASSET_SALE = "Penjualan Aset"
    RECEIVABLE = "Piutang"
    TRANSFER = "Transfer"


# =============================================================================
# ENTITIES
# =============================================================================

class Account(LedgerModel):
    """
    A place money lives (wallet, bank account, e-wallet...).

    balance is derived: it always equals the fold of every transaction
    touching this account. Only the engine writes it.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    balance: float = Field(
        default=0.0,
        description="Cached balance derived from the ledger"
    )


class Platform(LedgerModel):
    """Where an investment is held (broker, app, bank product)."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)


class Investment(LedgerModel):
    """
    Capital placed on a platform.

    Owns exactly one linked Expense transaction (the capital outflow)
    for as long as it exists. initial_value and account_id are frozen
    after creation; current_value moves freely and is never posted.
    """

    id: str = Field(default_factory=new_id)
    date: date
    name: str = Field(..., min_length=1, max_length=200)
    platform_id: str
    account_id: str = Field(
        ...,
        description="Funding account (source of the capital)"
    )
    initial_value: float
    current_value: float

    @property
    def profit_loss(self) -> float:
        """Unrealized gain (positive) or loss (negative)."""
        return self.current_value - self.initial_value


class Asset(LedgerModel):
    """
    A physical asset (property, vehicle, electronics...).

    Funded purchases own one linked Expense transaction. Assets
    contributed in-kind have no funding account and no transaction.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    type: AssetType = AssetType.OTHER
    purchase_date: date
    account_id: Optional[str] = Field(
        default=None,
        description="Funding account, only set for funded purchases"
    )
    purchase_value: float
    current_value: float

    @property
    def profit_loss(self) -> float:
        return self.current_value - self.purchase_value


class Receivable(LedgerModel):
    """
    Money lent to someone.

    Owns its lending Expense transaction from creation, and gains a
    second Income transaction once paid back.
    """

    id: str = Field(default_factory=new_id)
    debtor_name: str = Field(..., min_length=1, max_length=200)
    amount: float
    due_date: date
    status: ReceivableStatus = ReceivableStatus.UNPAID
    account_id: str = Field(
        ...,
        description="Account the money was lent from"
    )


class Transaction(LedgerModel):
    """
    A single ledger entry.

    CRITICAL: This is the source of truth for balances. Everything
    else (account balances, dashboard totals) is derived from the
    list of transactions.
    """

    id: str = Field(default_factory=new_id)
    date: date
    type: TransactionType
    account_id: str = Field(
        ...,
        description="Source account (the only account for Income/Expense)"
    )
    to_account_id: Optional[str] = Field(
        default=None,
        description="Destination account, Transfer only"
    )
    amount: float
    category: str = ""
    description: str = ""
    origin: TransactionOrigin = TransactionOrigin.MANUAL

    # Back-references to the entity that caused this transaction
    linked_investment_id: Optional[str] = None
    linked_receivable_id: Optional[str] = None
    linked_asset_id: Optional[str] = None

    is_opening_balance: bool = Field(
        default=False,
        description="Synthetic entry seeding an account's starting balance"
    )
    affects_balance: bool = Field(
        default=True,
        description="False for history records whose effect is carried elsewhere"
    )
    sequence: int = Field(
        default=0,
        ge=0,
        description="Insertion order, breaks ties between same-date entries"
    )

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_fields(cls, data: Any) -> Any:
        """
        Accept snapshots written by older versions of the web app.

        Those used "source" for the origin tag and marked opening
        balances only by the "Saldo Awal" category.
        """
        if not isinstance(data, dict):
            return data

        data = dict(data)
        if "origin" not in data and "source" in data:
            data["origin"] = data.pop("source")

        if "isOpeningBalance" not in data and "is_opening_balance" not in data:
            data["is_opening_balance"] = (
                data.get("category") == SystemCategory.OPENING_BALANCE.value
                and data.get("type") in (TransactionType.INCOME, TransactionType.INCOME.value)
            )
        return data

    def touches(self, account_id: str) -> bool:
        """Does this transaction reference the account on either side?"""
        return self.account_id == account_id or self.to_account_id == account_id


# =============================================================================
# DRAFTS - caller-supplied input for create operations
# =============================================================================

class TransactionDraft(LedgerModel):
    """
    Input for posting a transaction.

    Schema-level checks live here. Checks that need ledger state
    (does the account exist?) live in finledger.validation.
    """

    date: date
    type: TransactionType
    account_id: str = Field(..., min_length=1)
    to_account_id: Optional[str] = None
    amount: float
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    origin: TransactionOrigin = TransactionOrigin.MANUAL
    linked_investment_id: Optional[str] = None
    linked_receivable_id: Optional[str] = None
    linked_asset_id: Optional[str] = None
    is_opening_balance: bool = False
    affects_balance: bool = True

    @field_validator("to_account_id")
    @classmethod
    def blank_destination_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def validate_destination(self) -> "TransactionDraft":
        """A destination account is required if and only if this is a Transfer."""
        if self.type == TransactionType.TRANSFER:
            if not self.to_account_id:
                raise ValueError("Transfer requires a destination account")
            if self.to_account_id == self.account_id:
                raise ValueError("Transfer source and destination must differ")
        elif self.to_account_id:
            raise ValueError("Only transfers may have a destination account")
        return self


class AccountDraft(LedgerModel):
    """Input for creating an account."""

    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    initial_balance: float = Field(
        default=0.0,
        description="Seeds an opening-balance transaction when non-zero (may be negative)"
    )


class InvestmentDraft(LedgerModel):
    """Input for creating an investment."""

    date: date
    name: str = Field(..., min_length=1, max_length=200)
    platform_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    initial_value: float
    current_value: Optional[float] = Field(
        default=None,
        description="Defaults to initial_value"
    )

    @model_validator(mode="after")
    def default_current_value(self) -> "InvestmentDraft":
        if self.current_value is None:
            self.current_value = self.initial_value
        return self


class AssetDraft(LedgerModel):
    """Input for creating an asset."""

    name: str = Field(..., min_length=1, max_length=200)
    type: AssetType = AssetType.OTHER
    purchase_date: date
    account_id: Optional[str] = None
    purchase_value: float
    current_value: Optional[float] = Field(
        default=None,
        description="Defaults to purchase_value"
    )

    @field_validator("account_id")
    @classmethod
    def blank_account_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def default_current_value(self) -> "AssetDraft":
        if self.current_value is None:
            self.current_value = self.purchase_value
        return self


class ReceivableDraft(LedgerModel):
    """Input for lending money out."""

    debtor_name: str = Field(..., min_length=1, max_length=200)
    amount: float
    due_date: date
    account_id: str = Field(..., min_length=1)


# =============================================================================
# SNAPSHOT - the unit of persistence
# =============================================================================

class LedgerSnapshot(LedgerModel):
    """
    Full state of one user's ledger.

    Saved and loaded wholesale (replace semantics, never a patch).
    Missing or null arrays load as empty.
    """

    accounts: list[Account] = Field(default_factory=list)
    platforms: list[Platform] = Field(default_factory=list)
    investments: list[Investment] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    receivables: list[Receivable] = Field(default_factory=list)
    assets: list[Asset] = Field(default_factory=list)

    @field_validator(
        "accounts", "platforms", "investments",
        "transactions", "receivables", "assets",
        mode="before",
    )
    @classmethod
    def null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_json_dict(self) -> dict:
        """Serialize to the camelCase wire format."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json_dict(cls, data: Optional[dict]) -> "LedgerSnapshot":
        """Parse the wire format; None or {} yields an empty snapshot."""
        return cls.model_validate(data or {})

    @property
    def is_empty(self) -> bool:
        return not any((
            self.accounts, self.platforms, self.investments,
            self.transactions, self.receivables, self.assets,
        ))
