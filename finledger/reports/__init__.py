"""Read-only reports: dashboard figures and CSV export."""

from finledger.reports.csv_export import (
    accounts_csv,
    assets_csv,
    export_filename,
    investments_csv,
    receivables_csv,
    to_csv,
    transactions_csv,
    transactions_filename,
)
from finledger.reports.dashboard import (
    CategoryTotal,
    DashboardSummary,
    build_dashboard_summary,
    filter_transactions_by_date,
)

__all__ = [
    "CategoryTotal",
    "DashboardSummary",
    "accounts_csv",
    "assets_csv",
    "build_dashboard_summary",
    "export_filename",
    "filter_transactions_by_date",
    "investments_csv",
    "receivables_csv",
    "to_csv",
    "transactions_csv",
    "transactions_filename",
]
