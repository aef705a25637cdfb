"""
CSV Export

Spreadsheet-friendly exports of each collection, with the Indonesian
column headers and file names users already know from the web app.

Referenced accounts and platforms are shown by name. A reference that no
longer resolves is written as 'N/A' rather than failing the export.
"""

import csv
import io
from datetime import date
from typing import Iterable, Optional, Sequence

from finledger.errors import NothingToExportError
from finledger.models.ledger import (
    Account,
    Asset,
    Investment,
    Platform,
    Receivable,
    Transaction,
)
from finledger.reports.dashboard import filter_transactions_by_date


TRANSACTION_HEADERS = [
    "Tanggal", "Tipe", "Kategori", "Deskripsi",
    "Dari Rekening", "Ke Rekening", "Jumlah",
]
ACCOUNT_HEADERS = ["Nama Rekening", "Jenis", "Saldo"]
INVESTMENT_HEADERS = [
    "Tanggal", "Nama Investasi", "Platform",
    "Modal Awal", "Nilai Saat Ini", "P/L",
]
ASSET_HEADERS = [
    "Nama Aset", "Jenis", "Tanggal Beli",
    "Nilai Beli", "Nilai Saat Ini", "P/L",
]
RECEIVABLE_HEADERS = ["Peminjam", "Nominal", "Jatuh Tempo", "Status", "Sumber Dana"]

ACCOUNTS_FILENAME = "daftar-rekening.csv"
INVESTMENTS_FILENAME = "daftar-investasi.csv"
ASSETS_FILENAME = "daftar-aset.csv"
RECEIVABLES_FILENAME = "daftar-piutang.csv"

MISSING_NAME = "N/A"
NOTHING_TO_EXPORT = "Tidak ada data untuk diunduh."


def export_filename(stem: str) -> str:
    """Ensure the file name ends in .csv."""
    return stem if stem.endswith(".csv") else f"{stem}.csv"


def transactions_filename(today: Optional[date] = None) -> str:
    """Laporan-Transaksi-D-M-YYYY.csv (day and month without zero padding)."""
    today = today or date.today()
    return f"Laporan-Transaksi-{today.day}-{today.month}-{today.year}.csv"


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        # 1500000.0 -> "1500000", the way a spreadsheet expects it
        return str(int(value)) if value.is_integer() else repr(value)
    if hasattr(value, "value"):  # enums
        return str(value.value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def to_csv(headers: Sequence[str], rows: Sequence[Sequence]) -> str:
    """
    Render rows as CSV text.

    Cells containing a comma, a quote or a line break are quoted, with
    embedded quotes doubled. Rows are joined with '\\n'.

    Raises:
        NothingToExportError: If there are no rows
    """
    if not rows:
        raise NothingToExportError(NOTHING_TO_EXPORT)

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return buffer.getvalue().rstrip("\n")


def _names(entities: Iterable) -> dict[str, str]:
    return {e.id: e.name for e in entities}


def transactions_csv(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> str:
    """Transaction report, optionally limited to a date range (inclusive)."""
    names = _names(accounts)
    rows = []
    for tx in filter_transactions_by_date(transactions, start, end):
        to_account = ""
        if tx.to_account_id:
            to_account = names.get(tx.to_account_id, MISSING_NAME)
        rows.append([
            tx.date,
            tx.type,
            tx.category,
            tx.description,
            names.get(tx.account_id, MISSING_NAME),
            to_account,
            tx.amount,
        ])
    return to_csv(TRANSACTION_HEADERS, rows)


def accounts_csv(accounts: Iterable[Account]) -> str:
    return to_csv(
        ACCOUNT_HEADERS,
        [[a.name, a.type, a.balance] for a in accounts],
    )


def investments_csv(
    investments: Iterable[Investment],
    platforms: Iterable[Platform],
) -> str:
    names = _names(platforms)
    return to_csv(
        INVESTMENT_HEADERS,
        [
            [
                i.date,
                i.name,
                names.get(i.platform_id, MISSING_NAME),
                i.initial_value,
                i.current_value,
                i.profit_loss,
            ]
            for i in investments
        ],
    )


def assets_csv(assets: Iterable[Asset]) -> str:
    return to_csv(
        ASSET_HEADERS,
        [
            [
                a.name,
                a.type,
                a.purchase_date,
                a.purchase_value,
                a.current_value,
                a.profit_loss,
            ]
            for a in assets
        ],
    )


def receivables_csv(
    receivables: Iterable[Receivable],
    accounts: Iterable[Account],
) -> str:
    names = _names(accounts)
    return to_csv(
        RECEIVABLE_HEADERS,
        [
            [
                r.debtor_name,
                r.amount,
                r.due_date,
                r.status,
                names.get(r.account_id, MISSING_NAME),
            ]
            for r in receivables
        ],
    )
