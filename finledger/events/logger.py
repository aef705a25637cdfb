"""
Event Logger

DESIGN DECISION: Every mutation and every persistence attempt is logged
as a structured event. This provides:
1. Debugging capability (what happened right before a bad balance?)
2. Visibility of persistence failures, which never raise
3. A short in-memory tail of recent events for the UI to show

The logger:
- Never raises (logging must not break a ledger operation)
- Writes to the local structured log only; nothing is persisted
"""

import logging
from collections import deque
from typing import Optional

import structlog

from finledger.config import get_settings
from finledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)


def configure_logging(
    level: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Defaults come from AppSettings (LOG_LEVEL, LOG_FORMAT).
    """
    if level is None or log_format is None:
        app = get_settings().app
        level = level or app.log_level
        log_format = log_format or app.log_format

    logging.basicConfig(format="%(message)s", level=getattr(logging, level))

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class EventLogger:
    """
    Central event logging service for one ledger session.

    Keeps the last `history_size` events in memory.
    """

    def __init__(
        self,
        user_key: Optional[str] = None,
        history_size: int = 100,
    ):
        """
        Args:
            user_key: Identity stamped on every event
            history_size: How many recent events to keep in memory
        """
        self._user_key = user_key
        self._recent: deque[LedgerEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger("finledger.events")

    @property
    def recent_events(self) -> list[LedgerEvent]:
        """Recent events, oldest first."""
        return list(self._recent)

    def bind_user(self, user_key: str) -> None:
        self._user_key = user_key

    def log(self, event: LedgerEvent) -> LedgerEvent:
        """Log an event at the level matching its severity."""
        if event.user_key is None:
            event.user_key = self._user_key
        self._recent.append(event)

        log_dict = event.to_log_dict()
        try:
            if event.severity == EventSeverity.ERROR:
                self._logger.error("ledger_event", **log_dict)
            elif event.severity == EventSeverity.WARNING:
                self._logger.warning("ledger_event", **log_dict)
            elif event.severity == EventSeverity.DEBUG:
                self._logger.debug("ledger_event", **log_dict)
            else:
                self._logger.info("ledger_event", **log_dict)
        except Exception as e:
            # A broken handler must never fail the ledger operation
            logging.getLogger(__name__).warning("event logging failed: %s", e)
        return event

    def log_entity_changed(
        self,
        event_type: LedgerEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        self.log(LedgerEventBuilder.entity_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
        ))

    def log_transaction_posted(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: float,
        category: str,
    ) -> None:
        self.log(LedgerEventBuilder.transaction_posted(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            category=category,
        ))

    def log_balances_recomputed(self, account_count: int) -> None:
        self.log(LedgerEventBuilder.balances_recomputed(account_count=account_count))

    def log_blocked(
        self,
        operation: str,
        entity_id: Optional[str],
        reason: str,
    ) -> None:
        """Log a refused operation (e.g., deleting an account in use)."""
        self.log(LedgerEventBuilder.operation_blocked(
            operation=operation,
            entity_id=entity_id,
            reason=reason,
        ))

    def log_validation_failed(self, operation: str, issues: list[dict]) -> None:
        self.log(LedgerEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
        ))

    def log_referent_missing(self, operation: str, entity_id: str) -> None:
        self.log(LedgerEventBuilder.referent_missing(
            operation=operation,
            entity_id=entity_id,
        ))

    def log_snapshot_loaded(self, user_key: str, counts: dict[str, int]) -> None:
        self.log(LedgerEventBuilder.snapshot_loaded(user_key=user_key, counts=counts))

    def log_snapshot_load_failed(self, user_key: str, error_message: str) -> None:
        self.log(LedgerEventBuilder.snapshot_load_failed(
            user_key=user_key,
            error_message=error_message,
        ))

    def log_snapshot_saved(self, user_key: str, transaction_count: int) -> None:
        self.log(LedgerEventBuilder.snapshot_saved(
            user_key=user_key,
            transaction_count=transaction_count,
        ))

    def log_snapshot_save_failed(self, user_key: str, error_message: str) -> None:
        """Persistence failures are only ever reported here, never raised."""
        self.log(LedgerEventBuilder.snapshot_save_failed(
            user_key=user_key,
            error_message=error_message,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error."""
        self.log(LedgerEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
        ))
