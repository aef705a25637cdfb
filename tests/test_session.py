"""
Tests for LedgerSession (the orchestrator).

Sessions run on the in-memory store or a small failing store; the
engine is real.
"""

import asyncio
from datetime import date

import pytest
from pydantic import ValidationError

from finledger.config import LedgerSettings, Settings
from finledger.errors import (
    AccountInUseError,
    InvalidInputError,
    ReceivableAlreadyPaidError,
    SessionNotLoadedError,
)
from finledger.events import EventLogger
from finledger.ledger import LedgerEngine
from finledger.models.events import LedgerEventType
from finledger.models.ledger import (
    AccountDraft,
    AssetDraft,
    InvestmentDraft,
    LedgerSnapshot,
    ReceivableDraft,
    ReceivableStatus,
    TransactionDraft,
    TransactionType,
)
from finledger.orchestrator import LedgerSession, create_session
from finledger.services.storage import (
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotStoreInterface,
    StorageError,
)
from finledger.validation import LedgerValidator


TODAY = date(2024, 5, 15)
USER = "alice@example.com"


class FlakyStore(SnapshotStoreInterface):
    """Store whose load and save can be made to fail."""

    def __init__(self, fail_load=False, fail_save=False):
        self.inner = InMemorySnapshotStore()
        self.fail_load = fail_load
        self.fail_save = fail_save

    async def load(self, key):
        if self.fail_load:
            raise StorageError("server unreachable")
        return await self.inner.load(key)

    async def save(self, key, snapshot):
        if self.fail_save:
            raise StorageError("disk full")
        return await self.inner.save(key, snapshot)


class SlowFirstSaveStore(InMemorySnapshotStore):
    """In-memory store whose first save finishes after later ones start."""

    def __init__(self):
        super().__init__()
        self.slowed = False

    async def save(self, key, snapshot):
        if not self.slowed:
            self.slowed = True
            await asyncio.sleep(0.05)
        return await super().save(key, snapshot)


def make_session(store=None, **kwargs) -> LedgerSession:
    engine = LedgerEngine(clock=lambda: TODAY)
    return LedgerSession(
        USER,
        store if store is not None else InMemorySnapshotStore(),
        engine=engine,
        validator=LedgerValidator(engine, settings=LedgerSettings()),
        event_logger=EventLogger(user_key=USER),
        **kwargs,
    )


def event_types(session: LedgerSession) -> list[LedgerEventType]:
    return [e.event_type for e in session.events.recent_events]


async def loaded_session(store=None) -> LedgerSession:
    session = make_session(store)
    await session.load()
    return session


class TestLoadGate:
    """Tests for the 'not loaded yet' gate."""

    @pytest.mark.asyncio
    async def test_mutation_before_load_raises(self):
        """Test nothing can change (or be saved) before load."""
        store = InMemorySnapshotStore()
        session = make_session(store)

        with pytest.raises(SessionNotLoadedError):
            await session.add_account(AccountDraft(name="Cash", type="Tunai"))
        with pytest.raises(SessionNotLoadedError):
            await session.save()
        assert store.save_count == 0
        assert session.is_loaded is False

    @pytest.mark.asyncio
    async def test_load_replaces_engine_state(self):
        """Test the stored snapshot is what the session sees."""
        store = InMemorySnapshotStore({USER: {"accounts": [
            {"id": "a1", "name": "Cash", "type": "Tunai", "balance": 0},
        ]}})
        session = make_session(store)

        assert await session.load() is True
        assert session.is_loaded
        assert [a.id for a in session.accounts] == ["a1"]
        assert LedgerEventType.SNAPSHOT_LOADED in event_types(session)

    @pytest.mark.asyncio
    async def test_failed_load_still_opens_session(self):
        """Test a failed load leaves an empty, usable ledger."""
        session = make_session(FlakyStore(fail_load=True))

        assert await session.load() is False
        assert session.is_loaded
        assert session.accounts == []
        assert LedgerEventType.SNAPSHOT_LOAD_FAILED in event_types(session)

    @pytest.mark.asyncio
    async def test_failed_load_can_be_fatal(self):
        """Test fail_on_load_error keeps the session closed."""
        session = make_session(FlakyStore(fail_load=True), fail_on_load_error=True)

        with pytest.raises(StorageError):
            await session.load()
        assert session.is_loaded is False


class TestPersistence:
    """Tests for save-after-mutation."""

    @pytest.mark.asyncio
    async def test_every_mutation_saves(self):
        """Test the full snapshot is saved after each change."""
        store = InMemorySnapshotStore()
        session = await loaded_session(store)

        cash = await session.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=100000)
        )
        await session.post_transaction(TransactionDraft(
            date=TODAY,
            type=TransactionType.EXPENSE,
            account_id=cash.id,
            amount=20000,
            category="Makanan",
        ))

        assert store.save_count == 2
        assert session.last_save_ok is True
        stored = LedgerSnapshot.from_json_dict(store.raw(USER))
        assert stored.accounts[0].balance == 80000
        assert len(stored.transactions) == 2

    @pytest.mark.asyncio
    async def test_save_failure_keeps_mutation(self):
        """Test a failed save is logged, not raised, and not rolled back."""
        store = FlakyStore(fail_save=True)
        session = await loaded_session(store)

        cash = await session.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=5000)
        )

        assert session.engine.get_account(cash.id).balance == 5000
        assert session.last_save_ok is False
        assert LedgerEventType.SNAPSHOT_SAVE_FAILED in event_types(session)

        store.fail_save = False
        assert await session.save() is True
        assert session.last_save_ok is True

    @pytest.mark.asyncio
    async def test_noop_does_not_save(self):
        """Test that an operation on a stale ID changes and saves nothing."""
        store = InMemorySnapshotStore()
        session = await loaded_session(store)

        assert await session.delete_receivable("missing") is False
        assert await session.update_account("missing", name="x") is None
        assert store.save_count == 0
        assert LedgerEventType.REFERENT_MISSING in event_types(session)

    @pytest.mark.asyncio
    async def test_overlapping_saves_store_latest_state(self):
        """Test concurrent mutations leave the newest snapshot in the store."""
        store = SlowFirstSaveStore()
        session = await loaded_session(store)

        await asyncio.gather(
            session.add_platform("P1"),
            session.add_platform("P2"),
        )

        stored = LedgerSnapshot.from_json_dict(store.raw(USER))
        assert [p.name for p in session.platforms] == ["P1", "P2"]
        assert [p.name for p in stored.platforms] == ["P1", "P2"]
        assert store.save_count == 2

    @pytest.mark.asyncio
    async def test_reload_round_trip(self, tmp_path):
        """Test a second session sees what the first one saved."""
        path = tmp_path / "db.json"
        first = await loaded_session(JsonFileSnapshotStore(path))
        cash = await first.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=100000)
        )
        platform = await first.add_platform("Bibit")
        await first.add_investment(InvestmentDraft(
            date=TODAY,
            name="Fund X",
            platform_id=platform.id,
            account_id=cash.id,
            initial_value=50000,
        ))

        second = await loaded_session(JsonFileSnapshotStore(path))
        assert second.engine.to_snapshot() == first.engine.to_snapshot()
        assert second.find_inconsistencies() == {}


class TestBoundary:
    """Tests for validation and refusals at the session boundary."""

    @pytest.mark.asyncio
    async def test_invalid_input_rejected_before_engine(self):
        """Test semantic errors raise and leave state untouched."""
        store = InMemorySnapshotStore()
        session = await loaded_session(store)
        cash = await session.add_account(AccountDraft(name="Cash", type="Tunai"))

        with pytest.raises(InvalidInputError):
            await session.post_transaction(TransactionDraft(
                date=TODAY,
                type=TransactionType.EXPENSE,
                account_id=cash.id,
                amount=0,
                category="Makanan",
            ))
        assert session.transactions == []
        assert store.save_count == 1
        assert LedgerEventType.VALIDATION_FAILED in event_types(session)

    @pytest.mark.asyncio
    async def test_dict_drafts_are_parsed(self):
        """Test raw form data (camelCase) is accepted."""
        session = await loaded_session()
        cash = await session.add_account({"name": "Cash", "type": "Tunai", "initialBalance": 10})
        tx = await session.post_transaction({
            "date": "2024-05-15",
            "type": "Uang Keluar",
            "accountId": cash.id,
            "amount": 4,
            "category": "Parkir",
        })
        assert tx.amount == 4
        assert session.engine.get_account(cash.id).balance == 6

    @pytest.mark.asyncio
    async def test_schema_errors_raise_validation_error(self):
        """Test malformed raw input fails at the schema stage."""
        session = await loaded_session()
        with pytest.raises(ValidationError):
            await session.post_transaction({"type": "Transfer", "amount": 1})

    @pytest.mark.asyncio
    async def test_opening_balance_cannot_be_posted(self):
        """Test a posted opening balance is refused and the ledger stays consistent."""
        store = InMemorySnapshotStore()
        session = await loaded_session(store)
        cash = await session.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=100000)
        )

        with pytest.raises(InvalidInputError) as exc_info:
            await session.post_transaction({
                "date": "2024-05-15",
                "type": "Uang Masuk",
                "accountId": cash.id,
                "amount": 5000,
                "category": "Gaji",
                "isOpeningBalance": True,
            })

        assert [i.field for i in exc_info.value.issues] == ["is_opening_balance"]
        assert len([t for t in session.transactions if t.is_opening_balance]) == 1
        assert session.engine.get_account(cash.id).balance == 100000
        assert session.find_inconsistencies() == {}
        assert store.save_count == 1

    @pytest.mark.asyncio
    async def test_system_tags_do_not_skip_amount_checks(self):
        """Test a negative entry tagged as investment and balance-neutral is refused."""
        session = await loaded_session()
        cash = await session.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=100000)
        )

        with pytest.raises(InvalidInputError) as exc_info:
            await session.post_transaction({
                "date": "2024-05-15",
                "type": "Uang Keluar",
                "accountId": cash.id,
                "amount": -20000,
                "category": "Investasi",
                "origin": "investment",
                "affectsBalance": False,
            })

        issue_types = {i.issue_type for i in exc_info.value.issues}
        assert {"non_positive", "system_field"} <= issue_types
        assert len(session.transactions) == 1
        assert session.engine.get_account(cash.id).balance == 100000

    @pytest.mark.asyncio
    async def test_links_cannot_be_posted(self):
        """Test a manual entry cannot attach itself to a receivable."""
        session = await loaded_session()
        cash = await session.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=100000)
        )
        loan = await session.add_receivable(ReceivableDraft(
            debtor_name="Budi",
            amount=10000,
            due_date=date(2024, 6, 1),
            account_id=cash.id,
        ))

        with pytest.raises(InvalidInputError):
            await session.post_transaction(TransactionDraft(
                date=TODAY,
                type=TransactionType.INCOME,
                account_id=cash.id,
                amount=10000,
                category="Piutang",
                linked_receivable_id=loan.id,
            ))
        assert len(session.engine.linked_transactions(loan.id)) == 1

    @pytest.mark.asyncio
    async def test_blocked_delete_is_logged_and_raised(self):
        """Test an in-use account cannot be deleted through the session."""
        session = await loaded_session()
        cash = await session.add_account(AccountDraft(name="Cash", type="Tunai"))
        await session.post_transaction(TransactionDraft(
            date=TODAY,
            type=TransactionType.INCOME,
            account_id=cash.id,
            amount=1000,
            category="Gaji",
        ))

        with pytest.raises(AccountInUseError):
            await session.delete_account(cash.id)
        assert LedgerEventType.OPERATION_BLOCKED in event_types(session)
        assert session.engine.get_account(cash.id) is not None

    @pytest.mark.asyncio
    async def test_unknown_receiving_account_rejected(self):
        """Test a sale into a missing account is invalid input."""
        session = await loaded_session()
        asset = await session.add_asset(AssetDraft(
            name="Sepeda",
            purchase_date=TODAY,
            purchase_value=1000,
        ))
        with pytest.raises(InvalidInputError):
            await session.sell_asset(asset.id, "missing")
        assert session.engine.get_asset(asset.id) is not None


class TestLifecycles:
    """Session-level walk through every lifecycle."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self):
        """Test investments, assets and receivables through the session."""
        store = InMemorySnapshotStore()
        session = await loaded_session(store)

        cash = await session.add_account(
            AccountDraft(name="Cash", type="Tunai", initial_balance=100000)
        )
        bank = await session.add_account(
            AccountDraft(name="Bank", type="Bank", initial_balance=0)
        )
        await session.update_account(bank.id, name="BCA", initial_balance=50000)
        platform = await session.add_platform("Bibit")
        await session.update_platform(platform.id, "Bibit.id")

        investment = await session.add_investment(InvestmentDraft(
            date=TODAY,
            name="Fund X",
            platform_id=platform.id,
            account_id=cash.id,
            initial_value=30000,
        ))
        await session.update_investment(investment.id, name="Fund X (RD)")
        await session.update_investment_value(investment.id, 35000)

        asset = await session.add_asset(AssetDraft(
            name="Laptop",
            purchase_date=TODAY,
            account_id=bank.id,
            purchase_value=20000,
        ), is_new_purchase=True)
        await session.update_asset(asset.id, current_value=18000)
        await session.update_asset_value(asset.id, 15000)

        receivable = await session.add_receivable(ReceivableDraft(
            debtor_name="Budi",
            amount=10000,
            due_date=date(2024, 6, 1),
            account_id=cash.id,
        ))
        await session.update_receivable(receivable.id, due_date=date(2024, 7, 1))

        assert session.engine.get_account(cash.id).balance == 60000
        assert session.engine.get_account(bank.id).balance == 30000

        await session.sell_asset(asset.id, cash.id)
        await session.mark_receivable_as_paid(receivable.id, bank.id)
        with pytest.raises(ReceivableAlreadyPaidError):
            await session.mark_receivable_as_paid(receivable.id, bank.id)
        assert session.engine.get_receivable(receivable.id).status == ReceivableStatus.PAID

        refund = await session.delete_investment(investment.id)
        assert refund.amount == 30000
        assert await session.delete_receivable(receivable.id) is True

        assert session.engine.get_account(cash.id).balance == 115000
        assert session.engine.get_account(bank.id).balance == 30000
        assert session.find_inconsistencies() == {}
        assert await session.delete_platform(platform.id) is True

        stored = LedgerSnapshot.from_json_dict(store.raw(USER))
        assert stored == session.engine.to_snapshot()

    @pytest.mark.asyncio
    async def test_recompute_balances_saves(self):
        """Test the recovery path persists its result."""
        store = InMemorySnapshotStore()
        session = await loaded_session(store)
        await session.add_account(AccountDraft(name="Cash", type="Tunai", initial_balance=7))

        balances = await session.recompute_balances()
        assert list(balances.values()) == [7]
        assert store.save_count == 2


class TestCreateSession:
    """Tests for the session factory."""

    def test_memory_backend(self, monkeypatch):
        """Test the configured backend is used."""
        monkeypatch.setenv("FINLEDGER_STORAGE_BACKEND", "memory")
        session = create_session(USER, settings=Settings())
        assert session.user_key == USER
        assert session.is_loaded is False

    def test_file_backend(self, monkeypatch, tmp_path):
        """Test the file backend uses the configured path."""
        monkeypatch.setenv("FINLEDGER_STORAGE_BACKEND", "file")
        monkeypatch.setenv("FINLEDGER_STORAGE_FILE_PATH", str(tmp_path / "db.json"))
        session = create_session(USER, settings=Settings())
        assert isinstance(session.store, JsonFileSnapshotStore)
        assert session.store.path == tmp_path / "db.json"

    def test_http_backend_requires_url(self, monkeypatch):
        """Test the http backend refuses to start without a URL."""
        monkeypatch.setenv("FINLEDGER_STORAGE_BACKEND", "http")
        monkeypatch.delenv("FINLEDGER_STORAGE_BASE_URL", raising=False)
        with pytest.raises(ValueError):
            create_session(USER, settings=Settings())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
