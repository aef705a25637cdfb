"""Services package."""

from finledger.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsSnapshotStore,
    HttpSnapshotStore,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotDecodeError,
    SnapshotStoreInterface,
    StorageError,
)

__all__ = [
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsSnapshotStore",
    "HttpSnapshotStore",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "SnapshotDecodeError",
    "SnapshotStoreInterface",
    "StorageError",
]
