"""Ledger reports: table, PDF and share message."""

from cashbook.reports.report import (
    LedgerReport,
    build_report,
    build_share_message,
    describe_filter,
    render_report_pdf,
    report_csv,
    report_dataframe,
    whatsapp_share_url,
)

__all__ = [
    "LedgerReport",
    "build_report",
    "build_share_message",
    "describe_filter",
    "render_report_pdf",
    "report_csv",
    "report_dataframe",
    "whatsapp_share_url",
]
