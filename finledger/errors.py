"""
Ledger Exceptions

DESIGN DECISION: Only two kinds of failure ever reach the caller as
exceptions:
1. Blocked operations (deleting something that is still referenced)
2. Malformed input (rejected at the boundary, before the engine)

Operations on IDs that no longer exist are NOT errors. They are logged
and ignored so that a stale UI cannot crash the session.

Storage failures have their own hierarchy in
finledger.services.storage.interface.
"""

from typing import Optional


class FinLedgerError(Exception):
    """Base exception for all FinLedger errors."""
    pass


class OperationBlockedError(FinLedgerError):
    """
    The operation was refused before any state was touched.

    The message is user-facing and safe to show as-is.
    """

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_id = entity_id


class AccountInUseError(OperationBlockedError):
    """Account is referenced by transactions, investments or assets."""
    pass


class PlatformInUseError(OperationBlockedError):
    """Platform is referenced by at least one investment."""
    pass


class ReceivableAlreadyPaidError(OperationBlockedError):
    """Receivable was already settled."""
    pass


class InvalidInputError(FinLedgerError):
    """
    Semantic validation failed at the boundary.

    Carries the list of validation issues so the caller can show
    every problem at once instead of one at a time.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class SessionNotLoadedError(FinLedgerError):
    """A mutation was attempted before the snapshot finished loading."""
    pass


class NothingToExportError(FinLedgerError):
    """CSV export was requested for an empty collection."""
    pass


class OpeningBalanceExistsError(OperationBlockedError):
    """Account already has its opening-balance transaction."""
    pass
