"""
Ledger Event Models

Every mutation and every persistence attempt produces one structured
event. Events go to the local structured log only.

DESIGN DECISION: Events are observability, not history. They are never
written back to storage and nothing replays them. The transaction
ledger is the only record of what happened to money.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class LedgerEventType(str, Enum):
    """Types of events we log."""
    # Accounts & platforms
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    PLATFORM_CREATED = "platform_created"
    PLATFORM_UPDATED = "platform_updated"
    PLATFORM_DELETED = "platform_deleted"

    # Ledger
    TRANSACTION_POSTED = "transaction_posted"
    BALANCES_RECOMPUTED = "balances_recomputed"

    # Investments
    INVESTMENT_CREATED = "investment_created"
    INVESTMENT_UPDATED = "investment_updated"
    INVESTMENT_VALUE_UPDATED = "investment_value_updated"
    INVESTMENT_DELETED = "investment_deleted"

    # Assets
    ASSET_CREATED = "asset_created"
    ASSET_UPDATED = "asset_updated"
    ASSET_VALUE_UPDATED = "asset_value_updated"
    ASSET_SOLD = "asset_sold"

    # Receivables
    RECEIVABLE_CREATED = "receivable_created"
    RECEIVABLE_UPDATED = "receivable_updated"
    RECEIVABLE_PAID = "receivable_paid"
    RECEIVABLE_DELETED = "receivable_deleted"

    # Refusals
    OPERATION_BLOCKED = "operation_blocked"
    VALIDATION_FAILED = "validation_failed"
    REFERENT_MISSING = "referent_missing"

    # Persistence
    SNAPSHOT_LOADED = "snapshot_loaded"
    SNAPSHOT_LOAD_FAILED = "snapshot_load_failed"
    SNAPSHOT_SAVED = "snapshot_saved"
    SNAPSHOT_SAVE_FAILED = "snapshot_save_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class EventSeverity(str, Enum):
    """Severity level for ledger events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """A single structured event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: LedgerEventType
    severity: EventSeverity = EventSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'receivable', 'snapshot')"
    )
    entity_id: Optional[str] = None
    user_key: Optional[str] = Field(
        default=None,
        description="Identity whose ledger this event belongs to"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_key": self.user_key,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class LedgerEventBuilder:
    """
    Helper class to build events with common patterns.

    Usage:
        event = LedgerEventBuilder.transaction_posted(tx, user_key)
        event = LedgerEventBuilder.snapshot_save_failed(user_key, "timeout")
    """

    @staticmethod
    def entity_changed(
        event_type: LedgerEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        user_key: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_key=user_key,
            description=description,
            details=details or {},
        )

    @staticmethod
    def transaction_posted(
        transaction_id: str,
        transaction_type: str,
        amount: float,
        category: str,
        user_key: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_POSTED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_key=user_key,
            description=f"{transaction_type} posted: {category} {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
                "category": category,
            },
        )

    @staticmethod
    def balances_recomputed(
        account_count: int,
        user_key: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.BALANCES_RECOMPUTED,
            entity_type="ledger",
            user_key=user_key,
            description=f"Recomputed balances for {account_count} accounts",
            details={"account_count": account_count},
        )

    @staticmethod
    def operation_blocked(
        operation: str,
        entity_id: Optional[str],
        reason: str,
        user_key: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.OPERATION_BLOCKED,
            severity=EventSeverity.WARNING,
            entity_id=entity_id,
            user_key=user_key,
            description=f"Operation blocked: {operation}",
            details={"operation": operation},
            error_message=reason,
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        user_key: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.VALIDATION_FAILED,
            severity=EventSeverity.WARNING,
            user_key=user_key,
            description=f"Validation failed for {operation} with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def referent_missing(
        operation: str,
        entity_id: str,
        user_key: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.REFERENT_MISSING,
            severity=EventSeverity.DEBUG,
            entity_id=entity_id,
            user_key=user_key,
            description=f"{operation} ignored: {entity_id} not found",
            details={"operation": operation},
        )

    @staticmethod
    def snapshot_loaded(
        user_key: str,
        counts: dict[str, int],
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SNAPSHOT_LOADED,
            entity_type="snapshot",
            user_key=user_key,
            description="Snapshot loaded",
            details=counts,
        )

    @staticmethod
    def snapshot_load_failed(
        user_key: str,
        error_message: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SNAPSHOT_LOAD_FAILED,
            severity=EventSeverity.ERROR,
            entity_type="snapshot",
            user_key=user_key,
            description="Snapshot load failed",
            error_message=error_message,
        )

    @staticmethod
    def snapshot_saved(
        user_key: str,
        transaction_count: int,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SNAPSHOT_SAVED,
            severity=EventSeverity.DEBUG,
            entity_type="snapshot",
            user_key=user_key,
            description="Snapshot saved",
            details={"transaction_count": transaction_count},
        )

    @staticmethod
    def snapshot_save_failed(
        user_key: str,
        error_message: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SNAPSHOT_SAVE_FAILED,
            severity=EventSeverity.ERROR,
            entity_type="snapshot",
            user_key=user_key,
            description="Snapshot save failed; in-memory state kept",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_key: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SYSTEM_ERROR,
            severity=EventSeverity.ERROR,
            user_key=user_key,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
