"""
Ledger Consistency Engine

The engine owns every collection of one user's ledger and is the only
code allowed to change account balances. Callers submit operations;
they never see or mutate the internal lists (read views are copies).

INVARIANT: for every account,
    account.balance == fold(transactions touching it)
after every public method returns.

DESIGN DECISION: Two balance strategies are used on purpose.
- Incremental deltas for posting, account edits, investments and assets.
  Each of these knows exactly which transaction it adds or removes.
- Full recomputation for receivable deletion. A receivable has one or
  two linked transactions, possibly on different accounts, so replaying
  the ledger is simpler and safer than deriving the inverse delta.

Missing referents (an ID that no longer exists) make an operation a
no-op that returns None/False. Blocked operations raise
OperationBlockedError before anything is touched.
"""

import math
from collections.abc import Callable
from datetime import date
from typing import Optional

import structlog

from finledger.errors import (
    AccountInUseError,
    OpeningBalanceExistsError,
    PlatformInUseError,
    ReceivableAlreadyPaidError,
)
from finledger.ledger.balances import (
    balance_effects,
    recompute_balances,
    sort_ledger,
)
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
)


class LedgerEngine:
    """
    In-memory aggregate of accounts, platforms, investments, assets,
    receivables and transactions.

    Synchronous and single-writer: every public method is one atomic
    mutation. The transaction-list change and the balance change of an
    operation always happen together inside the same call.
    """

    def __init__(self, clock: Optional[Callable[[], date]] = None):
        """
        Args:
            clock: Returns "today" for synthesized transactions.
                   Defaults to date.today.
        """
        self._accounts: list[Account] = []
        self._platforms: list[Platform] = []
        self._investments: list[Investment] = []
        self._assets: list[Asset] = []
        self._receivables: list[Receivable] = []
        self._transactions: list[Transaction] = []
        self._next_sequence = 1
        self._clock = clock or date.today
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # READ VIEWS
    # =========================================================================

    @property
    def accounts(self) -> list[Account]:
        return [a.model_copy() for a in self._accounts]

    @property
    def platforms(self) -> list[Platform]:
        return [p.model_copy() for p in self._platforms]

    @property
    def investments(self) -> list[Investment]:
        return [i.model_copy() for i in self._investments]

    @property
    def assets(self) -> list[Asset]:
        return [a.model_copy() for a in self._assets]

    @property
    def receivables(self) -> list[Receivable]:
        return [r.model_copy() for r in self._receivables]

    @property
    def transactions(self) -> list[Transaction]:
        """Ledger, newest first."""
        return [t.model_copy() for t in self._transactions]

    def get_account(self, account_id: str) -> Optional[Account]:
        account = self._find(self._accounts, account_id)
        return account.model_copy() if account else None

    def get_platform(self, platform_id: str) -> Optional[Platform]:
        platform = self._find(self._platforms, platform_id)
        return platform.model_copy() if platform else None

    def get_investment(self, investment_id: str) -> Optional[Investment]:
        investment = self._find(self._investments, investment_id)
        return investment.model_copy() if investment else None

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        asset = self._find(self._assets, asset_id)
        return asset.model_copy() if asset else None

    def get_receivable(self, receivable_id: str) -> Optional[Receivable]:
        receivable = self._find(self._receivables, receivable_id)
        return receivable.model_copy() if receivable else None

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        tx = self._find(self._transactions, transaction_id)
        return tx.model_copy() if tx else None

    def linked_transactions(self, entity_id: str) -> list[Transaction]:
        """Every transaction back-referencing an investment, asset or receivable."""
        return [
            t.model_copy() for t in self._transactions
            if entity_id in (
                t.linked_investment_id,
                t.linked_receivable_id,
                t.linked_asset_id,
            )
        ]

    def opening_balance(self, account_id: str) -> float:
        """Current opening balance of an account (0 if it has none)."""
        opening = self._opening_transaction(account_id)
        return opening.amount if opening else 0.0

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def post_transaction(self, draft: TransactionDraft) -> Optional[Transaction]:
        """
        Record a transaction and apply its balance effects.

        The amount is not checked: zero and negative amounts are allowed
        for opening balances and corrections. Returns None if the source
        (or, for transfers, the destination) account does not exist.

        Raises:
            OpeningBalanceExistsError: If this is an opening balance for an
                                       account that already has one
        """
        if self._find(self._accounts, draft.account_id) is None:
            return self._missing("post_transaction", draft.account_id)
        if (
            draft.type == TransactionType.TRANSFER
            and self._find(self._accounts, draft.to_account_id) is None
        ):
            return self._missing("post_transaction", draft.to_account_id)
        if (
            draft.is_opening_balance
            and self._opening_transaction(draft.account_id) is not None
        ):
            raise OpeningBalanceExistsError(
                "Account already has an opening balance; edit the account instead",
                entity_id=draft.account_id,
            )

        tx = self._insert(draft)
        self._apply(tx)
        return tx.model_copy()

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def add_account(self, draft: AccountDraft) -> Account:
        """
        Create an account at balance 0.

        A non-zero initial balance (negative allowed) is seeded through one
        opening-balance transaction; nothing else sets a starting balance.
        """
        account = Account(name=draft.name, type=draft.type, balance=0.0)
        self._accounts.append(account)

        if draft.initial_balance != 0:
            self.post_transaction(self._opening_draft(account, draft.initial_balance))

        return account.model_copy()

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        type: Optional[AccountType] = None,
        initial_balance: Optional[float] = None,
    ) -> Optional[Account]:
        """
        Edit an account's identity fields and/or its opening balance.

        The opening-balance transaction is inserted, removed or edited in
        place, and only the difference between old and new opening balance
        is applied to the cached balance. Re-posting would double count.
        """
        account = self._find(self._accounts, account_id)
        if account is None:
            return self._missing("update_account", account_id)

        if name is not None:
            account.name = name
        if type is not None:
            account.type = AccountType(type)

        if initial_balance is not None:
            opening = self._opening_transaction(account_id)
            old_initial = opening.amount if opening else 0.0

            if opening is None:
                if initial_balance != 0:
                    self._insert(self._opening_draft(account, initial_balance))
            elif initial_balance == 0:
                self._transactions.remove(opening)
            else:
                opening.amount = initial_balance

            account.balance += initial_balance - old_initial

        return account.model_copy()

    def is_account_in_use(self, account_id: str) -> bool:
        """
        An account is in use if anything other than its own opening balance
        references it: a transaction (either side), an investment or an asset.
        """
        return (
            any(
                t.touches(account_id) and not t.is_opening_balance
                for t in self._transactions
            )
            or any(i.account_id == account_id for i in self._investments)
            or any(a.account_id == account_id for a in self._assets)
        )

    def delete_account(self, account_id: str) -> bool:
        """
        Delete an unused account together with its opening-balance entry.

        Raises:
            AccountInUseError: If the account is referenced anywhere
        """
        if self._find(self._accounts, account_id) is None:
            self._missing("delete_account", account_id)
            return False

        if self.is_account_in_use(account_id):
            raise AccountInUseError(
                "Account cannot be deleted because it is used by "
                "transactions, investments or assets.",
                entity_id=account_id,
            )

        self._accounts = [a for a in self._accounts if a.id != account_id]
        self._transactions = [
            t for t in self._transactions
            if not (t.is_opening_balance and t.account_id == account_id)
        ]
        return True

    # =========================================================================
    # PLATFORMS
    # =========================================================================

    def add_platform(self, name: str) -> Platform:
        platform = Platform(name=name)
        self._platforms.append(platform)
        return platform.model_copy()

    def update_platform(self, platform_id: str, name: str) -> Optional[Platform]:
        platform = self._find(self._platforms, platform_id)
        if platform is None:
            return self._missing("update_platform", platform_id)
        platform.name = name
        return platform.model_copy()

    def is_platform_in_use(self, platform_id: str) -> bool:
        return any(i.platform_id == platform_id for i in self._investments)

    def delete_platform(self, platform_id: str) -> bool:
        """
        Raises:
            PlatformInUseError: If any investment is held on the platform
        """
        if self._find(self._platforms, platform_id) is None:
            self._missing("delete_platform", platform_id)
            return False

        if self.is_platform_in_use(platform_id):
            raise PlatformInUseError(
                "Platform cannot be deleted because it is used by investments.",
                entity_id=platform_id,
            )

        self._platforms = [p for p in self._platforms if p.id != platform_id]
        return True

    # =========================================================================
    # INVESTMENTS
    # =========================================================================

    def add_investment(self, draft: InvestmentDraft) -> Optional[Investment]:
        """Store the investment and post its capital outflow."""
        if self._find(self._accounts, draft.account_id) is None:
            return self._missing("add_investment", draft.account_id)
        if self._find(self._platforms, draft.platform_id) is None:
            return self._missing("add_investment", draft.platform_id)

        investment = Investment(**draft.model_dump())
        self._investments.append(investment)

        self.post_transaction(TransactionDraft(
            date=investment.date,
            type=TransactionType.EXPENSE,
            account_id=investment.account_id,
            amount=investment.initial_value,
            category=SystemCategory.INVESTMENT.value,
            description=f"Modal awal investasi {investment.name}",
            origin=TransactionOrigin.INVESTMENT,
            linked_investment_id=investment.id,
        ))
        return investment.model_copy()

    def update_investment(
        self,
        investment_id: str,
        name: Optional[str] = None,
        date: Optional[date] = None,
        platform_id: Optional[str] = None,
    ) -> Optional[Investment]:
        """
        Edit descriptive fields only.

        Funding account and initial value are frozen once the capital
        outflow has been posted.
        """
        investment = self._find(self._investments, investment_id)
        if investment is None:
            return self._missing("update_investment", investment_id)
        if platform_id is not None and self._find(self._platforms, platform_id) is None:
            return self._missing("update_investment", platform_id)

        if name is not None:
            investment.name = name
        if date is not None:
            investment.date = date
        if platform_id is not None:
            investment.platform_id = platform_id
        return investment.model_copy()

    def update_investment_value(
        self,
        investment_id: str,
        current_value: float,
    ) -> Optional[Investment]:
        """Mark to market. Unrealized gains are never posted."""
        investment = self._find(self._investments, investment_id)
        if investment is None:
            return self._missing("update_investment_value", investment_id)
        investment.current_value = current_value
        return investment.model_copy()

    def delete_investment(self, investment_id: str) -> Optional[Transaction]:
        """
        Return the capital to the funding account and drop the investment.

        The refund is recorded as a history entry linked to the investment.
        The balance is restored by removing the original capital outflow,
        so the refund itself carries no balance effect (affects_balance is
        False). The ledger fold and the cached balance stay equal.

        Returns the refund transaction.
        """
        investment = self._find(self._investments, investment_id)
        if investment is None:
            return self._missing("delete_investment", investment_id)

        refund = self._insert(TransactionDraft(
            date=self._clock(),
            type=TransactionType.INCOME,
            account_id=investment.account_id,
            amount=investment.initial_value,
            category=SystemCategory.INVESTMENT_REFUND.value,
            description=f"Pengembalian modal investasi {investment.name}",
            origin=TransactionOrigin.INVESTMENT,
            linked_investment_id=investment_id,
            affects_balance=False,
        ))

        self._investments.remove(investment)

        outflows = [
            t for t in self._transactions
            if t.linked_investment_id == investment_id
            and t.origin == TransactionOrigin.INVESTMENT
            and t.type == TransactionType.EXPENSE
        ]
        for tx in outflows:
            self._transactions.remove(tx)
            self._apply(tx, reverse=True)

        return refund.model_copy()

    # =========================================================================
    # ASSETS
    # =========================================================================

    def add_asset(
        self,
        draft: AssetDraft,
        is_new_purchase: bool = False,
    ) -> Optional[Asset]:
        """
        Store an asset.

        A funded new purchase posts an Expense from the funding account.
        Anything else is an in-kind contribution: no funding account and
        no transaction.
        """
        funded = is_new_purchase and draft.account_id is not None
        if funded and self._find(self._accounts, draft.account_id) is None:
            return self._missing("add_asset", draft.account_id)

        asset = Asset(**draft.model_dump())
        if not funded:
            asset.account_id = None
        self._assets.append(asset)

        if funded:
            self.post_transaction(TransactionDraft(
                date=asset.purchase_date,
                type=TransactionType.EXPENSE,
                account_id=asset.account_id,
                amount=asset.purchase_value,
                category=SystemCategory.ASSET_PURCHASE.value,
                description=f"Beli aset: {asset.name}",
                origin=TransactionOrigin.ASSET,
                linked_asset_id=asset.id,
            ))
        return asset.model_copy()

    def update_asset(
        self,
        asset_id: str,
        name: Optional[str] = None,
        type: Optional[AssetType] = None,
        purchase_date: Optional[date] = None,
        current_value: Optional[float] = None,
    ) -> Optional[Asset]:
        """Purchase value and funding account are frozen after creation."""
        asset = self._find(self._assets, asset_id)
        if asset is None:
            return self._missing("update_asset", asset_id)

        if name is not None:
            asset.name = name
        if type is not None:
            asset.type = AssetType(type)
        if purchase_date is not None:
            asset.purchase_date = purchase_date
        if current_value is not None:
            asset.current_value = current_value
        return asset.model_copy()

    def update_asset_value(
        self,
        asset_id: str,
        current_value: float,
    ) -> Optional[Asset]:
        asset = self._find(self._assets, asset_id)
        if asset is None:
            return self._missing("update_asset_value", asset_id)
        asset.current_value = current_value
        return asset.model_copy()

    def sell_asset(
        self,
        asset_id: str,
        receiving_account_id: str,
    ) -> Optional[Transaction]:
        """
        Post the sale proceeds (current value) and drop the asset.

        The purchase transaction, if any, stays in the ledger as the
        historical record of buying it.
        """
        asset = self._find(self._assets, asset_id)
        if asset is None:
            return self._missing("sell_asset", asset_id)
        if self._find(self._accounts, receiving_account_id) is None:
            return self._missing("sell_asset", receiving_account_id)

        sale = self.post_transaction(TransactionDraft(
            date=self._clock(),
            type=TransactionType.INCOME,
            account_id=receiving_account_id,
            amount=asset.current_value,
            category=SystemCategory.ASSET_SALE.value,
            description=f"Jual aset: {asset.name}",
            origin=TransactionOrigin.ASSET,
            linked_asset_id=asset_id,
        ))
        self._assets.remove(asset)
        return sale

    # =========================================================================
    # RECEIVABLES
    # =========================================================================

    def add_receivable(self, draft: ReceivableDraft) -> Optional[Receivable]:
        """Lend money out: the funding account drops immediately."""
        if self._find(self._accounts, draft.account_id) is None:
            return self._missing("add_receivable", draft.account_id)

        receivable = Receivable(
            **draft.model_dump(),
            status=ReceivableStatus.UNPAID,
        )
        self._receivables.append(receivable)

        self.post_transaction(TransactionDraft(
            date=self._clock(),
            type=TransactionType.EXPENSE,
            account_id=receivable.account_id,
            amount=receivable.amount,
            category=SystemCategory.RECEIVABLE.value,
            description=f"Piutang kepada {receivable.debtor_name}",
            origin=TransactionOrigin.RECEIVABLE,
            linked_receivable_id=receivable.id,
        ))
        return receivable.model_copy()

    def update_receivable(
        self,
        receivable_id: str,
        debtor_name: Optional[str] = None,
        due_date: Optional[date] = None,
    ) -> Optional[Receivable]:
        """Amount and funding account are frozen to match the posted outflow."""
        receivable = self._find(self._receivables, receivable_id)
        if receivable is None:
            return self._missing("update_receivable", receivable_id)

        if debtor_name is not None:
            receivable.debtor_name = debtor_name
        if due_date is not None:
            receivable.due_date = due_date
        return receivable.model_copy()

    def mark_receivable_as_paid(
        self,
        receivable_id: str,
        receiving_account_id: str,
    ) -> Optional[Transaction]:
        """
        Settle a receivable into the chosen account.

        Raises:
            ReceivableAlreadyPaidError: If it was settled before
        """
        receivable = self._find(self._receivables, receivable_id)
        if receivable is None:
            return self._missing("mark_receivable_as_paid", receivable_id)
        if self._find(self._accounts, receiving_account_id) is None:
            return self._missing("mark_receivable_as_paid", receiving_account_id)
        if receivable.status == ReceivableStatus.PAID:
            raise ReceivableAlreadyPaidError(
                f"Receivable from {receivable.debtor_name} is already paid.",
                entity_id=receivable_id,
            )

        receivable.status = ReceivableStatus.PAID
        return self.post_transaction(TransactionDraft(
            date=self._clock(),
            type=TransactionType.INCOME,
            account_id=receiving_account_id,
            amount=receivable.amount,
            category=SystemCategory.RECEIVABLE.value,
            description=f"Pembayaran piutang dari {receivable.debtor_name}",
            origin=TransactionOrigin.RECEIVABLE,
            linked_receivable_id=receivable_id,
        ))

    def delete_receivable(self, receivable_id: str) -> bool:
        """
        Remove a receivable and every transaction linked to it, then
        recompute all balances by replaying the remaining ledger.
        """
        receivable = self._find(self._receivables, receivable_id)
        if receivable is None:
            self._missing("delete_receivable", receivable_id)
            return False

        self._receivables.remove(receivable)
        self._transactions = [
            t for t in self._transactions
            if t.linked_receivable_id != receivable_id
        ]
        self.recompute_balances()
        return True

    # =========================================================================
    # CONSISTENCY
    # =========================================================================

    def recompute_balances(self) -> dict[str, float]:
        """
        Rebuild every cached balance from the ledger alone.

        Returns the new balances by account ID.
        """
        balances = recompute_balances(
            [a.id for a in self._accounts],
            self._transactions,
        )
        for account in self._accounts:
            account.balance = balances[account.id]
        return balances

    def find_inconsistencies(
        self,
        tolerance: float = 1e-6,
    ) -> dict[str, tuple[float, float]]:
        """
        Compare cached balances with a replay of the ledger.

        Returns {account_id: (cached, derived)} for every mismatch.
        An empty dict means the invariant holds.
        """
        derived = recompute_balances(
            [a.id for a in self._accounts],
            self._transactions,
        )
        return {
            a.id: (a.balance, derived[a.id])
            for a in self._accounts
            if not math.isclose(a.balance, derived[a.id], abs_tol=tolerance)
        }

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def to_snapshot(self) -> LedgerSnapshot:
        """Deep copy of the full state, ready to persist."""
        return LedgerSnapshot(
            accounts=self.accounts,
            platforms=self.platforms,
            investments=self.investments,
            transactions=self.transactions,
            receivables=self.receivables,
            assets=self.assets,
        ).model_copy(deep=True)

    def load_snapshot(self, snapshot: LedgerSnapshot) -> None:
        """
        Replace the whole state with a snapshot.

        Snapshots written before sequence numbers existed are numbered in
        their stored order (newest first), so same-date ordering survives.
        """
        snapshot = snapshot.model_copy(deep=True)
        self._accounts = snapshot.accounts
        self._platforms = snapshot.platforms
        self._investments = snapshot.investments
        self._assets = snapshot.assets
        self._receivables = snapshot.receivables
        self._transactions = snapshot.transactions

        total = len(self._transactions)
        if total and all(t.sequence == 0 for t in self._transactions):
            for index, tx in enumerate(self._transactions):
                tx.sequence = total - index

        self._next_sequence = max(
            (t.sequence for t in self._transactions),
            default=0,
        ) + 1
        sort_ledger(self._transactions)

        mismatches = self.find_inconsistencies()
        if mismatches:
            self._logger.warning(
                "snapshot_balances_inconsistent",
                accounts=sorted(mismatches),
            )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _find(collection: list, entity_id: Optional[str]):
        if entity_id is None:
            return None
        for item in collection:
            if item.id == entity_id:
                return item
        return None

    def _missing(self, operation: str, entity_id: Optional[str]) -> None:
        self._logger.debug(
            "referent_missing",
            operation=operation,
            entity_id=entity_id,
        )
        return None

    def _opening_transaction(self, account_id: str) -> Optional[Transaction]:
        for tx in self._transactions:
            if tx.is_opening_balance and tx.account_id == account_id:
                return tx
        return None

    def _opening_draft(self, account: Account, amount: float) -> TransactionDraft:
        return TransactionDraft(
            date=self._clock(),
            type=TransactionType.INCOME,
            account_id=account.id,
            amount=amount,
            category=SystemCategory.OPENING_BALANCE.value,
            description=f"Saldo awal untuk rekening {account.name}",
            origin=TransactionOrigin.MANUAL,
            is_opening_balance=True,
        )

    def _insert(self, draft: TransactionDraft) -> Transaction:
        """Add a transaction to the ledger without touching balances."""
        tx = Transaction(**draft.model_dump(), sequence=self._next_sequence)
        self._next_sequence += 1
        self._transactions.append(tx)
        sort_ledger(self._transactions)
        return tx

    def _apply(self, tx: Transaction, reverse: bool = False) -> None:
        sign = -1.0 if reverse else 1.0
        for account_id, delta in balance_effects(tx):
            account = self._find(self._accounts, account_id)
            if account is not None:
                account.balance += sign * delta
