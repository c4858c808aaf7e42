"""
Ledger Reports

Builds the filtered report and its three outputs:
- a pandas DataFrame for the on-screen table and CSV download
- a PDF rendered with fpdf2 (replaces printing the page)
- a share message for the messaging deep link

The share message keeps the wording the family already knows from the
old app, so it is in Indonesian.
"""

import datetime as dt
from typing import Iterable, Optional
from urllib.parse import quote

import pandas as pd
from fpdf import FPDF
from fpdf.enums import XPos, YPos
from pydantic import BaseModel, ConfigDict, Field

from cashbook.ledger.aggregator import filtered_stats, filtered_transactions
from cashbook.models.transaction import (
    LedgerStats,
    ReportFilter,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from cashbook.validation import format_rupiah


WHATSAPP_SHARE_BASE = "https://wa.me/?text="

REPORT_COLUMNS = ["Date", "Member", "Type", "Category", "Description", "Amount", "Status"]

TYPE_LABELS = {
    TransactionType.DEPOSIT: "Deposit",
    TransactionType.EXPENSE: "Expense",
}

STATUS_LABELS = {
    TransactionStatus.PENDING: "Pending",
    TransactionStatus.APPROVED: "Sah",
    TransactionStatus.REJECTED: "Batal",
}


class LedgerReport(BaseModel):
    """Approved records matching a filter, with their totals."""
    model_config = ConfigDict(frozen=True)

    report_filter: ReportFilter = Field(default_factory=ReportFilter)
    rows: tuple[Transaction, ...] = ()
    stats: LedgerStats = Field(default_factory=LedgerStats)
    generated_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )

    @property
    def row_count(self) -> int:
        return len(self.rows)


def build_report(
    records: Iterable[Transaction],
    report_filter: Optional[ReportFilter] = None,
) -> LedgerReport:
    report_filter = report_filter or ReportFilter()
    rows = filtered_transactions(records, report_filter)
    return LedgerReport(
        report_filter=report_filter,
        rows=tuple(rows),
        stats=filtered_stats(rows),
    )


def describe_filter(report_filter: ReportFilter) -> str:
    """`Ayah (2024-01-01 s/d Sekarang)`; unset parts use the old placeholders."""
    who = report_filter.member or "Semua"
    if report_filter.type is not None:
        who = f"{who} / {TYPE_LABELS[report_filter.type]}"
    start = report_filter.start_date.isoformat() if report_filter.start_date else "Awal"
    end = report_filter.end_date.isoformat() if report_filter.end_date else "Sekarang"
    return f"{who} ({start} s/d {end})"


def report_dataframe(report: LedgerReport) -> pd.DataFrame:
    data = [{
        "Date": r.date.isoformat(),
        "Member": r.member,
        "Type": TYPE_LABELS.get(r.type, str(r.type)),
        "Category": r.category,
        "Description": r.description,
        "Amount": float(r.signed_amount),
        "Status": STATUS_LABELS.get(r.status, str(r.status)),
    } for r in report.rows]
    return pd.DataFrame(data, columns=REPORT_COLUMNS)


def report_csv(report: LedgerReport) -> bytes:
    return report_dataframe(report).to_csv(index=False).encode("utf-8")


def _latin1(text: str) -> str:
    # Core PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


def render_report_pdf(report: LedgerReport, title: str = "E-Manekat") -> bytes:
    """The filtered table and totals as a single PDF document."""
    pdf = FPDF()
    pdf.add_page()

    pdf.set_font("Helvetica", style="B", size=14)
    pdf.cell(0, 10, _latin1(f"{title} - Laporan Kas"),
             new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
    pdf.set_font("Helvetica", size=10)
    pdf.cell(0, 6, _latin1(f"Filter: {describe_filter(report.report_filter)}"),
             new_x=XPos.LMARGIN, new_y=YPos.NEXT, align="C")
    pdf.ln(4)

    widths = [24, 24, 20, 30, 52, 30]
    headers = ["Date", "Member", "Type", "Category", "Description", "Amount"]
    pdf.set_font("Helvetica", style="B", size=9)
    for width, header in zip(widths, headers):
        pdf.cell(width, 7, header, border=1)
    pdf.ln()

    pdf.set_font("Helvetica", size=9)
    for r in report.rows:
        cells = [
            r.date.isoformat(),
            r.member,
            TYPE_LABELS.get(r.type, str(r.type)),
            r.category,
            r.description,
            format_rupiah(r.signed_amount),
        ]
        for width, value in zip(widths, cells):
            pdf.cell(width, 7, _latin1(_fit(pdf, value, width)), border=1)
        pdf.ln()

    if not report.rows:
        pdf.cell(0, 7, "No approved transactions match this filter.",
                 new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.ln(4)
    pdf.set_font("Helvetica", style="B", size=10)
    for label, amount in (
        ("Total deposits", report.stats.deposits),
        ("Total expenses", report.stats.expenses),
        ("Balance", report.stats.balance),
    ):
        pdf.cell(0, 7, f"{label}: {format_rupiah(amount)}",
                 new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    return bytes(pdf.output())


def _fit(pdf: FPDF, text: str, width: float) -> str:
    text = _latin1(text)
    if pdf.get_string_width(text) <= width - 2:
        return text
    while text and pdf.get_string_width(text + "...") > width - 2:
        text = text[:-1]
    return text + "..."


def build_share_message(report: LedgerReport) -> str:
    return (
        "*LAPORAN KAS E-MANEKAT*\n"
        f"Filter: {describe_filter(report.report_filter)}\n\n"
        f"💰 *Total Saldo Filter:* {format_rupiah(report.stats.balance)}\n\n"
        "_Dibuat via Sistem E-Manekat Pro_"
    )


def whatsapp_share_url(text: str) -> str:
    """Deep link that opens the messaging app with `text` prefilled."""
    return WHATSAPP_SHARE_BASE + quote(text, safe="")
