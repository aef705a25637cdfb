"""
Boundary Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Types, required fields, blank names
- Transfer must name a distinct destination account
- Done by the pydantic draft models, before anything reaches here

STAGE 2 - SEMANTIC VALIDATION (this module):
- Referenced accounts/platforms/entities exist
- Amounts are positive where a user typed them
- Suspicious values (insufficient funds, absurd amounts) as warnings

The engine assumes pre-validated input. It only defends itself against
missing referents, so everything a user can get wrong is caught here.

IMPORTANT: Validation NEVER silently fixes input, and it never blocks
on insufficient funds. Negative balances are allowed; the app does not
model overdraft protection.
"""

from typing import Optional

from finledger.config import LedgerSettings, get_settings
from finledger.errors import InvalidInputError
from finledger.ledger.engine import LedgerEngine
from finledger.models.ledger import (
    AccountDraft,
    AssetDraft,
    InvestmentDraft,
    ReceivableDraft,
    TransactionDraft,
    TransactionOrigin,
    TransactionType,
)
from finledger.models.validation import ValidationIssue, ValidationResult


class LedgerValidator:
    """
    Validates operation input against the current ledger state.

    Every validate_* method returns a ValidationResult; call
    require_valid() to turn errors into an InvalidInputError.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        settings: Optional[LedgerSettings] = None,
    ):
        """
        Initialize validator.

        Args:
            engine: Ledger whose state the input is checked against
            settings: Validation thresholds. Loaded from env if None.
        """
        self._engine = engine
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def validate_transaction(self, draft: TransactionDraft) -> ValidationResult:
        """
        Checks a manual transaction or transfer.

        - Only plain manual entries: opening balances, balance-neutral
          entries, system origins and entity links are set by the engine
        - Amount must be greater than zero
        - Source (and destination) accounts must exist
        - Outflow larger than the balance is only a warning
        """
        issues = self._check_manual_only(draft)
        issues.extend(self._check_positive("amount", draft.amount))
        issues.extend(self._check_account("account_id", draft.account_id))

        if draft.type == TransactionType.TRANSFER:
            issues.extend(self._check_account("to_account_id", draft.to_account_id))

        if not draft.category.strip():
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category cannot be empty",
                severity="error",
            ))

        if draft.type != TransactionType.INCOME:
            issues.extend(self._check_funds(draft.account_id, draft.amount))
        issues.extend(self._check_reasonable("amount", draft.amount))

        return ValidationResult(operation="post_transaction", issues=issues)

    # =========================================================================
    # ACCOUNTS & PLATFORMS
    # =========================================================================

    def validate_account(self, draft: AccountDraft) -> ValidationResult:
        """Initial balance may be negative; duplicate names only warn."""
        issues = self._check_duplicate_name(
            "name",
            draft.name,
            [a.name for a in self._engine.accounts],
            "account",
        )
        issues.extend(self._check_reasonable("initial_balance", draft.initial_balance))
        return ValidationResult(operation="add_account", issues=issues)

    def validate_account_update(
        self,
        account_id: str,
        name: Optional[str] = None,
    ) -> ValidationResult:
        issues = self._check_account("account_id", account_id)
        if name is not None:
            issues.extend(self._check_name("name", name))
            others = [a.name for a in self._engine.accounts if a.id != account_id]
            issues.extend(self._check_duplicate_name("name", name, others, "account"))
        return ValidationResult(operation="update_account", issues=issues)

    def validate_platform(
        self,
        name: str,
        platform_id: Optional[str] = None,
    ) -> ValidationResult:
        issues = self._check_name("name", name)
        if platform_id is not None and self._engine.get_platform(platform_id) is None:
            issues.append(self._unknown("platform_id", platform_id, "Platform"))
        others = [p.name for p in self._engine.platforms if p.id != platform_id]
        issues.extend(self._check_duplicate_name("name", name, others, "platform"))
        operation = "update_platform" if platform_id else "add_platform"
        return ValidationResult(operation=operation, issues=issues)

    # =========================================================================
    # INVESTMENTS, ASSETS, RECEIVABLES
    # =========================================================================

    def validate_investment(self, draft: InvestmentDraft) -> ValidationResult:
        issues = self._check_positive("initial_value", draft.initial_value)
        issues.extend(self._check_non_negative("current_value", draft.current_value))
        issues.extend(self._check_account("account_id", draft.account_id))
        if self._engine.get_platform(draft.platform_id) is None:
            issues.append(self._unknown("platform_id", draft.platform_id, "Platform"))
        issues.extend(self._check_funds(draft.account_id, draft.initial_value))
        return ValidationResult(operation="add_investment", issues=issues)

    def validate_asset(
        self,
        draft: AssetDraft,
        is_new_purchase: bool,
    ) -> ValidationResult:
        """
        A funded purchase needs an existing funding account and a positive
        price. In-kind contributions only need sane values.
        """
        issues = self._check_non_negative("current_value", draft.current_value)

        if is_new_purchase:
            issues.extend(self._check_positive("purchase_value", draft.purchase_value))
            if draft.account_id is None:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="missing",
                    message="A new purchase needs a funding account",
                    severity="error",
                    suggested_fix="Choose the account that paid for the asset",
                ))
            else:
                issues.extend(self._check_account("account_id", draft.account_id))
                issues.extend(self._check_funds(draft.account_id, draft.purchase_value))
        else:
            issues.extend(self._check_non_negative("purchase_value", draft.purchase_value))

        return ValidationResult(operation="add_asset", issues=issues)

    def validate_receivable(self, draft: ReceivableDraft) -> ValidationResult:
        issues = self._check_positive("amount", draft.amount)
        issues.extend(self._check_account("account_id", draft.account_id))
        issues.extend(self._check_funds(draft.account_id, draft.amount))
        return ValidationResult(operation="add_receivable", issues=issues)

    def validate_value_update(
        self,
        operation: str,
        current_value: float,
    ) -> ValidationResult:
        """Market value of an investment or asset cannot go below zero."""
        return ValidationResult(
            operation=operation,
            issues=self._check_non_negative("current_value", current_value),
        )

    def validate_receiving_account(
        self,
        operation: str,
        account_id: str,
    ) -> ValidationResult:
        """Used by asset sales and receivable settlement."""
        return ValidationResult(
            operation=operation,
            issues=self._check_account("account_id", account_id),
        )

    def validate_name(self, operation: str, field: str, name: str) -> ValidationResult:
        return ValidationResult(operation=operation, issues=self._check_name(field, name))

    # =========================================================================
    # RESULTS
    # =========================================================================

    @staticmethod
    def require_valid(result: ValidationResult) -> ValidationResult:
        """
        Raises:
            InvalidInputError: If the result contains error-level issues
        """
        if result.has_errors:
            messages = [i.message for i in result.issues if i.severity == "error"]
            raise InvalidInputError(
                f"Invalid input for {result.operation}: " + "; ".join(messages),
                issues=result.issues,
            )
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Plain-language summary for showing next to a form."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if result.has_errors:
            lines.append("Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"  - {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"    ({issue.suggested_fix})")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please double-check:")
            for warning in result.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines)

    # =========================================================================
    # CHECKS
    # =========================================================================

    def _check_account(
        self,
        field: str,
        account_id: Optional[str],
    ) -> list[ValidationIssue]:
        if not account_id:
            return [ValidationIssue(
                field=field,
                issue_type="missing",
                message="An account must be selected",
                severity="error",
            )]
        if self._engine.get_account(account_id) is None:
            return [self._unknown(field, account_id, "Account")]
        return []

    def _check_funds(
        self,
        account_id: Optional[str],
        amount: float,
    ) -> list[ValidationIssue]:
        if not self._settings.warn_insufficient_funds or not account_id:
            return []
        account = self._engine.get_account(account_id)
        if account is None or amount <= account.balance:
            return []
        return [ValidationIssue(
            field="amount",
            issue_type="insufficient_funds",
            message=(
                f"Amount ({amount:,.0f}) exceeds the balance of "
                f"{account.name} ({account.balance:,.0f}); it will go negative"
            ),
            severity="warning",
        )]

    def _check_reasonable(self, field: str, amount: float) -> list[ValidationIssue]:
        if abs(amount) <= self._settings.max_reasonable_amount:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="suspicious_value",
            message=f"Amount ({amount:,.0f}) seems unusually large",
            severity="warning",
            suggested_fix="Please verify this amount is correct",
        )]

    @staticmethod
    def _check_manual_only(draft: TransactionDraft) -> list[ValidationIssue]:
        engine_fields = [
            ("is_opening_balance", draft.is_opening_balance),
            ("affects_balance", not draft.affects_balance),
            ("origin", draft.origin != TransactionOrigin.MANUAL),
            ("linked_investment_id", draft.linked_investment_id is not None),
            ("linked_receivable_id", draft.linked_receivable_id is not None),
            ("linked_asset_id", draft.linked_asset_id is not None),
        ]
        return [
            ValidationIssue(
                field=field,
                issue_type="system_field",
                message=f"{field} is set by the ledger and cannot be posted manually",
                severity="error",
                suggested_fix="Use the account, investment, asset or receivable operation instead",
            )
            for field, is_set in engine_fields
            if is_set
        ]

    @staticmethod
    def _check_positive(field: str, value: float) -> list[ValidationIssue]:
        if value > 0:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="non_positive",
            message=f"{field.replace('_', ' ').capitalize()} must be greater than zero",
            severity="error",
        )]

    @staticmethod
    def _check_non_negative(
        field: str,
        value: Optional[float],
    ) -> list[ValidationIssue]:
        if value is None or value >= 0:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="negative",
            message=f"{field.replace('_', ' ').capitalize()} cannot be negative",
            severity="error",
        )]

    @staticmethod
    def _check_name(field: str, name: str) -> list[ValidationIssue]:
        if name and name.strip():
            return []
        return [ValidationIssue(
            field=field,
            issue_type="missing",
            message="Name cannot be empty",
            severity="error",
        )]

    @staticmethod
    def _check_duplicate_name(
        field: str,
        name: str,
        existing: list[str],
        kind: str,
    ) -> list[ValidationIssue]:
        wanted = name.strip().lower()
        if not wanted or wanted not in {n.strip().lower() for n in existing}:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="duplicate_name",
            message=f"Another {kind} is already named '{name.strip()}'",
            severity="warning",
        )]

    @staticmethod
    def _unknown(field: str, entity_id: str, kind: str) -> ValidationIssue:
        return ValidationIssue(
            field=field,
            issue_type="unknown_reference",
            message=f"{kind} {entity_id} does not exist",
            severity="error",
            suggested_fix="Reload and choose again",
        )
