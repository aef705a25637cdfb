"""
In-Memory Snapshot Store

For tests and throwaway sessions. Snapshots are stored as serialized
JSON dicts, so a save followed by a load goes through the same wire
format as the real backends and never shares objects with the engine.
"""

from typing import Optional

from finledger.models.ledger import LedgerSnapshot
from finledger.services.storage.interface import SnapshotStoreInterface


class InMemorySnapshotStore(SnapshotStoreInterface):
    """Dictionary of identity -> serialized snapshot."""

    def __init__(self, initial: Optional[dict[str, dict]] = None):
        self._data: dict[str, dict] = dict(initial or {})
        self.save_count = 0

    async def load(self, key: str) -> LedgerSnapshot:
        return LedgerSnapshot.from_json_dict(self._data.get(key))

    async def save(self, key: str, snapshot: LedgerSnapshot) -> bool:
        self._data[key] = snapshot.to_json_dict()
        self.save_count += 1
        return True

    def raw(self, key: str) -> Optional[dict]:
        """Stored wire-format dict, for inspection in tests."""
        return self._data.get(key)
