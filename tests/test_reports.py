"""
Tests for report building, export and the share message.
"""

from datetime import date
from decimal import Decimal
from urllib.parse import unquote

import pytest

from cashbook.models import ReportFilter, TransactionStatus, TransactionType
from cashbook.reports import (
    build_report,
    build_share_message,
    describe_filter,
    render_report_pdf,
    report_csv,
    report_dataframe,
    whatsapp_share_url,
)


@pytest.fixture
def records(make_transaction):
    return [
        make_transaction(amount=Decimal("50000"), date=date(2024, 1, 10)),
        make_transaction(
            type=TransactionType.EXPENSE,
            amount=Decimal("20000"),
            member="Ibu",
            category="Rumah Tangga",
            description="Beli beras 🍚 dan minyak",
            date=date(2024, 1, 12),
        ),
        make_transaction(amount=Decimal("100000"), status=TransactionStatus.PENDING),
    ]


class TestBuildReport:

    def test_unfiltered_report(self, records):
        report = build_report(records)
        assert report.row_count == 2
        assert report.stats.balance == Decimal("30000")

    def test_filtered_report(self, records):
        report = build_report(records, ReportFilter(member="Ibu"))
        assert report.row_count == 1
        assert report.stats.balance == Decimal("-20000")

    def test_describe_filter_placeholders(self):
        assert describe_filter(ReportFilter()) == "Semua (Awal s/d Sekarang)"

    def test_describe_filter_with_values(self):
        report_filter = ReportFilter(
            member="Ayah",
            start_date=date(2024, 1, 1),
            type=TransactionType.DEPOSIT,
        )
        assert describe_filter(report_filter) == "Ayah / Deposit (2024-01-01 s/d Sekarang)"


class TestShareMessage:

    def test_message_text(self, records):
        message = build_share_message(build_report(records))
        assert message == (
            "*LAPORAN KAS E-MANEKAT*\n"
            "Filter: Semua (Awal s/d Sekarang)\n\n"
            "💰 *Total Saldo Filter:* Rp 30,000\n\n"
            "_Dibuat via Sistem E-Manekat Pro_"
        )

    def test_whatsapp_url_encodes_everything(self, records):
        message = build_share_message(build_report(records))
        url = whatsapp_share_url(message)

        assert url.startswith("https://wa.me/?text=")
        assert "\n" not in url and " " not in url
        assert "%0A" in url
        assert unquote(url[len("https://wa.me/?text="):]) == message


class TestExports:

    def test_dataframe(self, records):
        df = report_dataframe(build_report(records))
        assert list(df.columns) == [
            "Date", "Member", "Type", "Category", "Description", "Amount", "Status"
        ]
        assert len(df) == 2
        # Newest first, expenses negative
        assert df.iloc[0]["Amount"] == -20000.0
        assert df.iloc[1]["Status"] == "Sah"

    def test_empty_dataframe_keeps_columns(self):
        df = report_dataframe(build_report([]))
        assert df.empty
        assert "Amount" in df.columns

    def test_csv(self, records):
        csv_text = report_csv(build_report(records)).decode("utf-8")
        assert csv_text.splitlines()[0] == "Date,Member,Type,Category,Description,Amount,Status"

    def test_pdf(self, records):
        """Non latin-1 text (the emoji) must not break the export."""
        pdf = render_report_pdf(build_report(records))
        assert pdf.startswith(b"%PDF")

    def test_pdf_for_empty_report(self):
        assert render_report_pdf(build_report([]), title="Kas Keluarga").startswith(b"%PDF")
