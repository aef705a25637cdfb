"""
Google Sheets Snapshot Store

DESIGN DECISION: Google Sheets is offered as a snapshot backend because:
1. Non-technical users can see (and back up) their data directly in Sheets
2. No server or database setup required
3. Built-in history (Sheets keeps version history)

Layout: one worksheet, one row per identity:

    user_key | updated_at | snapshot_json

TRADEOFFS:
- A cell holds at most 50,000 characters, so very large ledgers outgrow it
- No locking; two sessions saving the same identity race, last write wins
- The snapshot is opaque JSON in the sheet, not one row per transaction
"""

import json
from datetime import datetime, timezone
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finledger.config import GoogleSheetsSettings, get_settings
from finledger.models.ledger import LedgerSnapshot
from finledger.services.storage.interface import (
    ConnectionError,
    SnapshotDecodeError,
    SnapshotStoreInterface,
    StorageError,
)


SNAPSHOT_COLUMNS = [
    "user_key",
    "updated_at",
    "snapshot_json",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        """Get or create the Snapshots worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.snapshots_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.snapshots_sheet_name,
                rows=100,
                cols=len(SNAPSHOT_COLUMNS),
            )
            sheet.append_row(SNAPSHOT_COLUMNS)
        return sheet


class GoogleSheetsSnapshotStore(SnapshotStoreInterface):
    """
    Google Sheets implementation of snapshot storage.

    The whole snapshot is JSON-serialized into a single cell, in the same
    camelCase wire format the file and HTTP backends use.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_row(self, sheet: gspread.Worksheet, key: str) -> tuple[Optional[int], Optional[list]]:
        """Locate an identity's row. Returns (1-based row index, row values)."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # row 1 is header
            if row and row[0] == key:
                return idx, row
        return None, None

    async def load(self, key: str) -> LedgerSnapshot:
        try:
            sheet = self._client.get_snapshots_sheet()
            _, row = self._find_row(sheet, key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load snapshot: {e}")

        if row is None or len(row) < 3 or not row[2]:
            return LedgerSnapshot()
        try:
            return LedgerSnapshot.from_json_dict(json.loads(row[2]))
        except ValueError as e:
            raise SnapshotDecodeError(f"Invalid snapshot for {key}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save(self, key: str, snapshot: LedgerSnapshot) -> bool:
        try:
            sheet = self._client.get_snapshots_sheet()
            new_row = [
                key,
                datetime.now(timezone.utc).isoformat(),
                json.dumps(snapshot.to_json_dict(), ensure_ascii=False),
            ]
            idx, _ = self._find_row(sheet, key)
            if idx is None:
                sheet.append_row(new_row, value_input_option="RAW")
            else:
                sheet.update(
                    range_name=f"A{idx}:C{idx}",
                    values=[new_row],
                    value_input_option="RAW",
                )
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save snapshot: {e}")
