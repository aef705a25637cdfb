"""
JSON File Snapshot Store

One JSON document holding every identity's snapshot:

    {"alice@example.com": {"accounts": [...], "transactions": [...], ...}}

This is the layout the web server keeps in db.json, so an
existing database file can be opened as-is.

TRADEOFFS:
- The whole file is rewritten on every save (fine for personal use)
- No cross-process locking; concurrent writers race, last write wins
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Union

from finledger.models.ledger import LedgerSnapshot
from finledger.services.storage.interface import (
    SnapshotDecodeError,
    SnapshotStoreInterface,
    StorageError,
)


class JsonFileSnapshotStore(SnapshotStoreInterface):
    """File-backed snapshot store."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_db(self) -> dict:
        """Read the whole database. A missing file is an empty database."""
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {self._path}: {e}")

        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            # Refuse to treat a corrupt file as empty: the next save
            # would overwrite every other user's data.
            raise SnapshotDecodeError(f"Corrupt database file {self._path}: {e}")
        if not isinstance(data, dict):
            raise SnapshotDecodeError(f"Database file {self._path} is not a JSON object")
        return data

    def _write_db(self, data: dict) -> None:
        """Write atomically: temp file in the same directory, then rename."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {self._path}: {e}")

    async def load(self, key: str) -> LedgerSnapshot:
        """Load one identity's snapshot (empty if unknown)."""
        entry = self._read_db().get(key)
        try:
            return LedgerSnapshot.from_json_dict(entry)
        except ValueError as e:
            raise SnapshotDecodeError(f"Invalid snapshot for {key}: {e}")

    async def save(self, key: str, snapshot: LedgerSnapshot) -> bool:
        """Replace one identity's snapshot, keeping everyone else's."""
        data = self._read_db()
        data[key] = snapshot.to_json_dict()
        self._write_db(data)
        return True
