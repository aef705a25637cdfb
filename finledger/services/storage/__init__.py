"""
Storage Services Package

Provides the snapshot store interface and its implementations.
The JSON file is the default backend; HTTP and Google Sheets are
drop-in alternatives selected through configuration.
"""

from finledger.services.storage.interface import (
    ConnectionError,
    SnapshotDecodeError,
    SnapshotStoreInterface,
    StorageError,
)
from finledger.services.storage.memory import InMemorySnapshotStore
from finledger.services.storage.json_file import JsonFileSnapshotStore
from finledger.services.storage.http import HttpSnapshotStore
from finledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsSnapshotStore,
)

__all__ = [
    # Interface
    "SnapshotStoreInterface",
    # Exceptions
    "ConnectionError",
    "SnapshotDecodeError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsSnapshotStore",
    "HttpSnapshotStore",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
]
