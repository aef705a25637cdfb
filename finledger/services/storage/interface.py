"""
Abstract Snapshot Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the JSON file for an HTTP server or Google Sheets
2. Use in-memory storage for testing
3. Keep the ledger engine decoupled from persistence

The contract is deliberately tiny: the whole ledger of one identity is
loaded and saved as a single snapshot. There is no diff or patch, and
no locking: two sessions saving the same identity race, last write wins.
"""

from abc import ABC, abstractmethod

from finledger.models.ledger import LedgerSnapshot


class SnapshotStoreInterface(ABC):
    """
    Abstract interface for snapshot storage, keyed by user identity.

    Any storage implementation (file, HTTP, Google Sheets, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load(self, key: str) -> LedgerSnapshot:
        """
        Load the snapshot stored for an identity.

        Args:
            key: User identity (e.g., email address)

        Returns:
            The stored snapshot, or an empty one if nothing is stored yet.
            Missing arrays are returned as empty lists.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save(self, key: str, snapshot: LedgerSnapshot) -> bool:
        """
        Replace the snapshot stored for an identity.

        Args:
            key: User identity
            snapshot: Full ledger state (all six collections)

        Returns:
            True if saved successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    async def aclose(self) -> None:
        """Release connections. Stores without any keep the default no-op."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class SnapshotDecodeError(StorageError):
    """Stored data exists but is not a valid snapshot."""
    pass
