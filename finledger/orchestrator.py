"""
Session Orchestrator for FinLedger

This module ties the components together for one user's session:

    load snapshot -> [validate -> mutate engine -> log -> save snapshot]*

DESIGN DECISION: The orchestrator enforces the boundaries:
- No mutation (and no save) before the initial load has finished, so an
  empty in-memory state can never overwrite the stored ledger
- Every draft is validated before it reaches the engine
- Every mutation is logged, and every save attempt is logged
- A failed save never undoes the in-memory mutation and never raises;
  the caller checks last_save_ok if it cares

The target of an action (the account being edited, the receivable being
deleted) may have disappeared under a stale UI. That is a logged no-op.
Entities the user *chose* as input (a funding or receiving account) are
validated, and an unknown one is rejected with InvalidInputError.
"""

import asyncio
from datetime import date
from typing import Optional, TypeVar, Union

from pydantic import BaseModel

from finledger.config import Settings, get_settings
from finledger.errors import OperationBlockedError, SessionNotLoadedError
from finledger.events import EventLogger, configure_logging
from finledger.ledger import LedgerEngine
from finledger.models.events import LedgerEventType
from finledger.models.ledger import (
    Account,
    AccountDraft,
    AccountType,
    Asset,
    AssetDraft,
    AssetType,
    Investment,
    InvestmentDraft,
    Platform,
    Receivable,
    ReceivableDraft,
    Transaction,
    TransactionDraft,
)
from finledger.models.validation import ValidationResult
from finledger.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsSnapshotStore,
    HttpSnapshotStore,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotStoreInterface,
    StorageError,
)
from finledger.validation import LedgerValidator


DraftT = TypeVar("DraftT", bound=BaseModel)


class LedgerSession:
    """
    One user's ledger, bound to a snapshot store.

    Flow:
    1. load()  -> replace engine state with the stored snapshot
    2. any mutation -> validate, call the engine, log, persist

    Usage:
        session = LedgerSession("alice@example.com", JsonFileSnapshotStore("db.json"))
        await session.load()
        cash = await session.add_account(AccountDraft(name="Cash", type="Tunai"))
    """

    def __init__(
        self,
        user_key: str,
        store: SnapshotStoreInterface,
        engine: Optional[LedgerEngine] = None,
        validator: Optional[LedgerValidator] = None,
        event_logger: Optional[EventLogger] = None,
        fail_on_load_error: bool = False,
    ):
        """
        Args:
            user_key: Identity the snapshot is stored under
            store: Snapshot backend
            engine: Ledger engine (a fresh one if None)
            validator: Boundary validator (built on the engine if None)
            event_logger: Structured event logger
            fail_on_load_error: Re-raise a failed load instead of
                                starting from an empty ledger
        """
        self._user_key = user_key
        self._store = store
        self._engine = engine or LedgerEngine()
        self._validator = validator or LedgerValidator(self._engine)
        self._events = event_logger or EventLogger(user_key=user_key)
        self._fail_on_load_error = fail_on_load_error
        self._loaded = False
        self._last_save_ok: Optional[bool] = None
        self._save_lock = asyncio.Lock()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def user_key(self) -> str:
        return self._user_key

    @property
    def store(self) -> SnapshotStoreInterface:
        return self._store

    @property
    def engine(self) -> LedgerEngine:
        return self._engine

    @property
    def events(self) -> EventLogger:
        return self._events

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def last_save_ok(self) -> Optional[bool]:
        """Outcome of the most recent save (None until the first save)."""
        return self._last_save_ok

    @property
    def accounts(self) -> list[Account]:
        return self._engine.accounts

    @property
    def platforms(self) -> list[Platform]:
        return self._engine.platforms

    @property
    def investments(self) -> list[Investment]:
        return self._engine.investments

    @property
    def assets(self) -> list[Asset]:
        return self._engine.assets

    @property
    def receivables(self) -> list[Receivable]:
        return self._engine.receivables

    @property
    def transactions(self) -> list[Transaction]:
        return self._engine.transactions

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def load(self) -> bool:
        """
        Load the stored snapshot into the engine.

        Returns True if the snapshot was read. On failure the ledger is
        left empty and the session is still marked loaded, unless
        fail_on_load_error is set.
        """
        try:
            snapshot = await self._store.load(self._user_key)
        except StorageError as e:
            self._events.log_snapshot_load_failed(self._user_key, str(e))
            if self._fail_on_load_error:
                raise
            self._loaded = True
            return False

        self._engine.load_snapshot(snapshot)
        self._loaded = True
        self._events.log_snapshot_loaded(
            self._user_key,
            counts={
                "accounts": len(snapshot.accounts),
                "platforms": len(snapshot.platforms),
                "investments": len(snapshot.investments),
                "assets": len(snapshot.assets),
                "receivables": len(snapshot.receivables),
                "transactions": len(snapshot.transactions),
            },
        )
        return True

    async def save(self) -> bool:
        """Persist the current state. Never raises on storage failure."""
        self._require_loaded()
        return await self._persist()

    async def aclose(self) -> None:
        await self._store.aclose()

    async def _persist(self) -> bool:
        # Saves run one at a time, each writing the state current when it starts
        async with self._save_lock:
            snapshot = self._engine.to_snapshot()
            try:
                await self._store.save(self._user_key, snapshot)
            except Exception as e:
                # The mutation stands; the failure is reported, not raised
                self._events.log_snapshot_save_failed(
                    self._user_key,
                    f"{type(e).__name__}: {e}",
                )
                self._last_save_ok = False
                return False

            self._events.log_snapshot_saved(self._user_key, len(snapshot.transactions))
            self._last_save_ok = True
            return True

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def post_transaction(
        self,
        draft: Union[TransactionDraft, dict],
    ) -> Optional[Transaction]:
        """Record a manual income, expense or transfer."""
        self._require_loaded()
        draft = self._coerce(TransactionDraft, draft)
        self._check(self._validator.validate_transaction(draft))

        tx = self._engine.post_transaction(draft)
        if tx is None:
            self._events.log_referent_missing("post_transaction", draft.account_id)
            return None

        self._events.log_transaction_posted(
            transaction_id=tx.id,
            transaction_type=tx.type.value,
            amount=tx.amount,
            category=tx.category,
        )
        await self._persist()
        return tx

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def add_account(self, draft: Union[AccountDraft, dict]) -> Account:
        self._require_loaded()
        draft = self._coerce(AccountDraft, draft)
        self._check(self._validator.validate_account(draft))

        account = self._engine.add_account(draft)
        self._events.log_entity_changed(
            LedgerEventType.ACCOUNT_CREATED,
            "account",
            account.id,
            f"Account created: {account.name}",
            details={"initial_balance": draft.initial_balance},
        )
        await self._persist()
        return account

    async def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        type: Optional[Union[AccountType, str]] = None,
        initial_balance: Optional[float] = None,
    ) -> Optional[Account]:
        self._require_loaded()
        if self._engine.get_account(account_id) is None:
            return self._missing("update_account", account_id)
        self._check(self._validator.validate_account_update(account_id, name=name))

        account = self._engine.update_account(
            account_id,
            name=name,
            type=AccountType(type) if type is not None else None,
            initial_balance=initial_balance,
        )
        self._events.log_entity_changed(
            LedgerEventType.ACCOUNT_UPDATED,
            "account",
            account_id,
            f"Account updated: {account.name}",
            details={"initial_balance": initial_balance},
        )
        await self._persist()
        return account

    async def delete_account(self, account_id: str) -> bool:
        """
        Raises:
            AccountInUseError: If transactions, investments or assets use it
        """
        self._require_loaded()
        deleted = self._guard("delete_account", account_id, self._engine.delete_account)
        if not deleted:
            self._missing("delete_account", account_id)
            return False

        self._events.log_entity_changed(
            LedgerEventType.ACCOUNT_DELETED,
            "account",
            account_id,
            "Account deleted",
        )
        await self._persist()
        return True

    # =========================================================================
    # PLATFORMS
    # =========================================================================

    async def add_platform(self, name: str) -> Platform:
        self._require_loaded()
        self._check(self._validator.validate_platform(name))

        platform = self._engine.add_platform(name)
        self._events.log_entity_changed(
            LedgerEventType.PLATFORM_CREATED,
            "platform",
            platform.id,
            f"Platform created: {platform.name}",
        )
        await self._persist()
        return platform

    async def update_platform(self, platform_id: str, name: str) -> Optional[Platform]:
        self._require_loaded()
        if self._engine.get_platform(platform_id) is None:
            return self._missing("update_platform", platform_id)
        self._check(self._validator.validate_platform(name, platform_id=platform_id))

        platform = self._engine.update_platform(platform_id, name)
        self._events.log_entity_changed(
            LedgerEventType.PLATFORM_UPDATED,
            "platform",
            platform_id,
            f"Platform renamed: {platform.name}",
        )
        await self._persist()
        return platform

    async def delete_platform(self, platform_id: str) -> bool:
        """
        Raises:
            PlatformInUseError: If any investment is held on it
        """
        self._require_loaded()
        deleted = self._guard("delete_platform", platform_id, self._engine.delete_platform)
        if not deleted:
            self._missing("delete_platform", platform_id)
            return False

        self._events.log_entity_changed(
            LedgerEventType.PLATFORM_DELETED,
            "platform",
            platform_id,
            "Platform deleted",
        )
        await self._persist()
        return True

    # =========================================================================
    # INVESTMENTS
    # =========================================================================

    async def add_investment(
        self,
        draft: Union[InvestmentDraft, dict],
    ) -> Optional[Investment]:
        self._require_loaded()
        draft = self._coerce(InvestmentDraft, draft)
        self._check(self._validator.validate_investment(draft))

        investment = self._engine.add_investment(draft)
        if investment is None:
            return self._missing("add_investment", draft.account_id)

        self._events.log_entity_changed(
            LedgerEventType.INVESTMENT_CREATED,
            "investment",
            investment.id,
            f"Investment created: {investment.name}",
            details={
                "initial_value": investment.initial_value,
                "account_id": investment.account_id,
            },
        )
        await self._persist()
        return investment

    async def update_investment(
        self,
        investment_id: str,
        name: Optional[str] = None,
        date: Optional[date] = None,
        platform_id: Optional[str] = None,
    ) -> Optional[Investment]:
        self._require_loaded()
        if self._engine.get_investment(investment_id) is None:
            return self._missing("update_investment", investment_id)
        if name is not None:
            self._check(self._validator.validate_name("update_investment", "name", name))

        investment = self._engine.update_investment(
            investment_id,
            name=name,
            date=date,
            platform_id=platform_id,
        )
        if investment is None:
            return self._missing("update_investment", platform_id)

        self._events.log_entity_changed(
            LedgerEventType.INVESTMENT_UPDATED,
            "investment",
            investment_id,
            f"Investment updated: {investment.name}",
        )
        await self._persist()
        return investment

    async def update_investment_value(
        self,
        investment_id: str,
        current_value: float,
    ) -> Optional[Investment]:
        self._require_loaded()
        if self._engine.get_investment(investment_id) is None:
            return self._missing("update_investment_value", investment_id)
        self._check(self._validator.validate_value_update(
            "update_investment_value",
            current_value,
        ))

        investment = self._engine.update_investment_value(investment_id, current_value)
        self._events.log_entity_changed(
            LedgerEventType.INVESTMENT_VALUE_UPDATED,
            "investment",
            investment_id,
            f"Investment marked to market: {investment.name}",
            details={"current_value": current_value},
        )
        await self._persist()
        return investment

    async def delete_investment(self, investment_id: str) -> Optional[Transaction]:
        """Refund the capital and drop the investment. Returns the refund."""
        self._require_loaded()
        refund = self._engine.delete_investment(investment_id)
        if refund is None:
            return self._missing("delete_investment", investment_id)

        self._events.log_entity_changed(
            LedgerEventType.INVESTMENT_DELETED,
            "investment",
            investment_id,
            "Investment deleted, capital returned",
            details={"refund_id": refund.id, "amount": refund.amount},
        )
        await self._persist()
        return refund

    # =========================================================================
    # ASSETS
    # =========================================================================

    async def add_asset(
        self,
        draft: Union[AssetDraft, dict],
        is_new_purchase: bool = False,
    ) -> Optional[Asset]:
        self._require_loaded()
        draft = self._coerce(AssetDraft, draft)
        self._check(self._validator.validate_asset(draft, is_new_purchase))

        asset = self._engine.add_asset(draft, is_new_purchase=is_new_purchase)
        if asset is None:
            return self._missing("add_asset", draft.account_id)

        self._events.log_entity_changed(
            LedgerEventType.ASSET_CREATED,
            "asset",
            asset.id,
            f"Asset added: {asset.name}",
            details={
                "purchase_value": asset.purchase_value,
                "funded": asset.account_id is not None,
            },
        )
        await self._persist()
        return asset

    async def update_asset(
        self,
        asset_id: str,
        name: Optional[str] = None,
        type: Optional[Union[AssetType, str]] = None,
        purchase_date: Optional[date] = None,
        current_value: Optional[float] = None,
    ) -> Optional[Asset]:
        self._require_loaded()
        if self._engine.get_asset(asset_id) is None:
            return self._missing("update_asset", asset_id)
        if name is not None:
            self._check(self._validator.validate_name("update_asset", "name", name))
        if current_value is not None:
            self._check(self._validator.validate_value_update("update_asset", current_value))

        asset = self._engine.update_asset(
            asset_id,
            name=name,
            type=AssetType(type) if type is not None else None,
            purchase_date=purchase_date,
            current_value=current_value,
        )
        self._events.log_entity_changed(
            LedgerEventType.ASSET_UPDATED,
            "asset",
            asset_id,
            f"Asset updated: {asset.name}",
        )
        await self._persist()
        return asset

    async def update_asset_value(
        self,
        asset_id: str,
        current_value: float,
    ) -> Optional[Asset]:
        self._require_loaded()
        if self._engine.get_asset(asset_id) is None:
            return self._missing("update_asset_value", asset_id)
        self._check(self._validator.validate_value_update("update_asset_value", current_value))

        asset = self._engine.update_asset_value(asset_id, current_value)
        self._events.log_entity_changed(
            LedgerEventType.ASSET_VALUE_UPDATED,
            "asset",
            asset_id,
            f"Asset revalued: {asset.name}",
            details={"current_value": current_value},
        )
        await self._persist()
        return asset

    async def sell_asset(
        self,
        asset_id: str,
        receiving_account_id: str,
    ) -> Optional[Transaction]:
        """Post the proceeds at current value and drop the asset."""
        self._require_loaded()
        if self._engine.get_asset(asset_id) is None:
            return self._missing("sell_asset", asset_id)
        self._check(self._validator.validate_receiving_account(
            "sell_asset",
            receiving_account_id,
        ))

        sale = self._engine.sell_asset(asset_id, receiving_account_id)
        self._events.log_entity_changed(
            LedgerEventType.ASSET_SOLD,
            "asset",
            asset_id,
            "Asset sold",
            details={"sale_id": sale.id, "amount": sale.amount},
        )
        await self._persist()
        return sale

    # =========================================================================
    # RECEIVABLES
    # =========================================================================

    async def add_receivable(
        self,
        draft: Union[ReceivableDraft, dict],
    ) -> Optional[Receivable]:
        self._require_loaded()
        draft = self._coerce(ReceivableDraft, draft)
        self._check(self._validator.validate_receivable(draft))

        receivable = self._engine.add_receivable(draft)
        if receivable is None:
            return self._missing("add_receivable", draft.account_id)

        self._events.log_entity_changed(
            LedgerEventType.RECEIVABLE_CREATED,
            "receivable",
            receivable.id,
            f"Money lent to {receivable.debtor_name}",
            details={"amount": receivable.amount},
        )
        await self._persist()
        return receivable

    async def update_receivable(
        self,
        receivable_id: str,
        debtor_name: Optional[str] = None,
        due_date: Optional[date] = None,
    ) -> Optional[Receivable]:
        self._require_loaded()
        if self._engine.get_receivable(receivable_id) is None:
            return self._missing("update_receivable", receivable_id)
        if debtor_name is not None:
            self._check(self._validator.validate_name(
                "update_receivable",
                "debtor_name",
                debtor_name,
            ))

        receivable = self._engine.update_receivable(
            receivable_id,
            debtor_name=debtor_name,
            due_date=due_date,
        )
        self._events.log_entity_changed(
            LedgerEventType.RECEIVABLE_UPDATED,
            "receivable",
            receivable_id,
            f"Receivable updated: {receivable.debtor_name}",
        )
        await self._persist()
        return receivable

    async def mark_receivable_as_paid(
        self,
        receivable_id: str,
        receiving_account_id: str,
    ) -> Optional[Transaction]:
        """
        Raises:
            ReceivableAlreadyPaidError: If it was settled before
        """
        self._require_loaded()
        if self._engine.get_receivable(receivable_id) is None:
            return self._missing("mark_receivable_as_paid", receivable_id)
        self._check(self._validator.validate_receiving_account(
            "mark_receivable_as_paid",
            receiving_account_id,
        ))

        payment = self._guard(
            "mark_receivable_as_paid",
            receivable_id,
            self._engine.mark_receivable_as_paid,
            receiving_account_id,
        )
        self._events.log_entity_changed(
            LedgerEventType.RECEIVABLE_PAID,
            "receivable",
            receivable_id,
            "Receivable settled",
            details={"payment_id": payment.id, "amount": payment.amount},
        )
        await self._persist()
        return payment

    async def delete_receivable(self, receivable_id: str) -> bool:
        """Remove the receivable and its transactions, then replay balances."""
        self._require_loaded()
        if not self._engine.delete_receivable(receivable_id):
            self._missing("delete_receivable", receivable_id)
            return False

        self._events.log_entity_changed(
            LedgerEventType.RECEIVABLE_DELETED,
            "receivable",
            receivable_id,
            "Receivable deleted with its transactions",
        )
        self._events.log_balances_recomputed(len(self._engine.accounts))
        await self._persist()
        return True

    # =========================================================================
    # CONSISTENCY
    # =========================================================================

    async def recompute_balances(self) -> dict[str, float]:
        """Rebuild every cached balance from the ledger and save."""
        self._require_loaded()
        balances = self._engine.recompute_balances()
        self._events.log_balances_recomputed(len(balances))
        await self._persist()
        return balances

    def find_inconsistencies(self) -> dict[str, tuple[float, float]]:
        return self._engine.find_inconsistencies()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise SessionNotLoadedError(
                f"Ledger for {self._user_key} has not finished loading"
            )

    @staticmethod
    def _coerce(model: type[DraftT], draft: Union[DraftT, dict]) -> DraftT:
        """Accept a draft model or its raw dict (schema errors raise here)."""
        if isinstance(draft, model):
            return draft
        return model.model_validate(draft)

    def _check(self, result: ValidationResult) -> None:
        if result.has_errors:
            self._events.log_validation_failed(
                result.operation,
                [issue.model_dump() for issue in result.issues],
            )
        self._validator.require_valid(result)

    def _guard(self, operation: str, entity_id: str, func, *args):
        """Run an engine call, logging (and re-raising) a refusal."""
        try:
            return func(entity_id, *args)
        except OperationBlockedError as e:
            self._events.log_blocked(operation, entity_id, str(e))
            raise

    def _missing(self, operation: str, entity_id: Optional[str]) -> None:
        self._events.log_referent_missing(operation, entity_id or "")
        return None


def create_session(
    user_key: str,
    settings: Optional[Settings] = None,
    fail_on_load_error: bool = False,
) -> LedgerSession:
    """
    Factory function to create a session on the configured backend.

    Args:
        user_key: Identity to load and save under
        settings: Settings root (get_settings() if None)
        fail_on_load_error: See LedgerSession

    Returns:
        An unloaded session; call `await session.load()` next.
    """
    settings = settings or get_settings()
    app = settings.app
    configure_logging(app.log_level, app.log_format)

    storage = settings.storage
    if storage.backend == "memory":
        store: SnapshotStoreInterface = InMemorySnapshotStore()
    elif storage.backend == "http":
        if not storage.base_url:
            raise ValueError("FINLEDGER_STORAGE_BASE_URL is required for the http backend")
        store = HttpSnapshotStore(
            storage.base_url,
            timeout=storage.timeout_seconds,
            retry_attempts=storage.retry_attempts,
        )
    elif storage.backend == "sheets":
        store = GoogleSheetsSnapshotStore(GoogleSheetsClient(settings.google_sheets))
    else:
        store = JsonFileSnapshotStore(storage.file_path)

    engine = LedgerEngine()
    return LedgerSession(
        user_key,
        store,
        engine=engine,
        validator=LedgerValidator(engine, settings=settings.ledger),
        event_logger=EventLogger(user_key=user_key),
        fail_on_load_error=fail_on_load_error,
    )
