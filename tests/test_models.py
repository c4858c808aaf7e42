"""
Tests for the Family Cash Ledger models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (against the in-memory store)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from cashbook.config import MasterDefaultsSettings
from cashbook.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    LedgerStats,
    MasterConfig,
    MasterSetField,
    ReportFilter,
    Transaction,
    TransactionDraft,
    TransactionStatus,
    TransactionType,
)


class TestTransactionModels:
    """Tests for transaction Pydantic models."""

    def test_transaction_defaults_to_pending(self, make_transaction):
        """A record built without a status is pending and has no id."""
        tx = make_transaction(status=TransactionStatus.PENDING)
        assert tx.status == TransactionStatus.PENDING
        assert tx.id is None
        assert tx.created_at.tzinfo is not None

    def test_transaction_rejects_zero_amount(self, make_transaction):
        """Amounts must be strictly positive."""
        with pytest.raises(ValidationError):
            make_transaction(amount=Decimal("0"))

    def test_transaction_rejects_more_than_two_decimals(self, make_transaction):
        """Money has at most two decimal places."""
        with pytest.raises(ValidationError):
            make_transaction(amount=Decimal("10.005"))

    def test_transaction_is_frozen(self, make_transaction):
        """Stored records can't be edited in place."""
        tx = make_transaction()
        with pytest.raises(ValidationError):
            tx.amount = Decimal("1")

    def test_with_status_changes_only_status(self, make_transaction):
        """Status changes copy the record and touch nothing else."""
        tx = make_transaction(status=TransactionStatus.PENDING).with_id("abc")
        approved = tx.with_status(TransactionStatus.APPROVED)

        assert approved.status == TransactionStatus.APPROVED
        assert tx.status == TransactionStatus.PENDING
        assert approved.model_dump(exclude={"status"}) == tx.model_dump(exclude={"status"})

    def test_signed_amount(self, make_transaction):
        """Expenses are negative when signed."""
        assert make_transaction().signed_amount == Decimal("50000")
        expense = make_transaction(type=TransactionType.EXPENSE, amount=Decimal("20000"))
        assert expense.signed_amount == Decimal("-20000")

    def test_only_approved_records_are_counted(self, make_transaction):
        assert make_transaction().is_counted
        assert not make_transaction(status=TransactionStatus.PENDING).is_counted
        assert not make_transaction(status=TransactionStatus.REJECTED).is_counted


class TestTransactionDraft:
    """The submission form model accepts anything and normalizes it."""

    def test_blank_amount_is_missing(self):
        assert TransactionDraft(amount="").amount is None
        assert TransactionDraft(amount="   ").amount is None

    def test_garbage_amount_is_missing(self):
        """Unparseable input is left for the validator to report."""
        assert TransactionDraft(amount="lima puluh").amount is None

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-inf", Decimal("NaN"), float("inf")])
    def test_non_finite_amount_is_missing(self, amount):
        """These parse as numbers but must reach the validator as 'no amount'."""
        assert TransactionDraft(amount=amount).amount is None

    def test_thousands_separators_are_accepted(self):
        assert TransactionDraft(amount="50,000").amount == Decimal("50000")

    def test_float_amount_is_converted_exactly(self):
        assert TransactionDraft(amount=12.5).amount == Decimal("12.5")

    def test_defaults(self):
        """Type defaults to deposit and date to today."""
        draft = TransactionDraft()
        assert draft.type == TransactionType.DEPOSIT
        assert draft.date == date.today()
        assert draft.proof_image is None

    def test_description_is_trimmed(self):
        assert TransactionDraft(description="  Beli buku  ").description == "Beli buku"


class TestDerivedViews:
    """Tests for stats and report filters."""

    def test_balance_is_deposits_minus_expenses(self):
        stats = LedgerStats(deposits=Decimal("50000"), expenses=Decimal("20000"))
        assert stats.balance == Decimal("30000")

    def test_empty_stats_are_zero(self):
        stats = LedgerStats()
        assert stats.deposits == stats.expenses == stats.balance == Decimal("0")

    def test_blank_filter_parts_are_unset(self):
        """Empty form fields mean 'no filter'."""
        report_filter = ReportFilter(start_date="", end_date="", member="  ", type="")
        assert report_filter.is_empty

    def test_filter_parses_iso_dates(self):
        report_filter = ReportFilter(start_date="2024-01-01", member="Ayah")
        assert report_filter.start_date == date(2024, 1, 1)
        assert not report_filter.is_empty


class TestMasterConfig:
    """Tests for the master configuration document."""

    def test_duplicates_and_blanks_are_dropped(self):
        config = MasterConfig(
            categories=["Umum", " Umum ", "", "Kesehatan"],
            members=["Ayah"],
        )
        assert config.categories == ("Umum", "Kesehatan")

    def test_with_added_is_a_set_union(self, master):
        added = master.with_added(MasterSetField.MEMBERS, "Kakak")
        assert added.members == ("Ayah", "Ibu", "Kakak")
        assert added.with_added(MasterSetField.MEMBERS, "Kakak") == added

    def test_with_removed_ignores_absent_values(self, master):
        removed = master.with_removed(MasterSetField.CATEGORIES, "Umum")
        assert "Umum" not in removed.categories
        assert removed.with_removed(MasterSetField.CATEGORIES, "Umum") == removed

    def test_negative_minimum_is_rejected(self):
        with pytest.raises(ValidationError):
            MasterConfig(categories=["Umum"], members=["Ayah"], min_transfer=Decimal("-1"))

    def test_defaults_from_settings(self):
        """Bootstrap values match the original family setup."""
        config = MasterConfig.defaults(MasterDefaultsSettings())
        assert config.categories == ("Umum", "Pendidikan", "Kesehatan", "Rumah Tangga")
        assert config.members == ("Ayah", "Ibu")
        assert config.min_transfer == Decimal("50000")

    def test_to_document(self, master):
        document = master.to_document()
        assert document["members"] == ["Ayah", "Ibu"]
        assert document["min_transfer"] == "50000"


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Test event",
        )
        assert event.event_type == AuditEventType.TRANSACTION_SAVED
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo == timezone.utc

    def test_audit_event_to_sheets_row(self):
        """Rows have one value per AuditLog column."""
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_decided(
            transaction_id="tx-1",
            decision="approved",
            admin="admin",
            correlation_id=correlation_id,
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "transaction_approved"
        assert row[5] == "tx-1"
        assert row[6] == str(correlation_id)
        assert row[10] == "admin"

    def test_decision_builder_maps_rejection(self):
        event = AuditEventBuilder.transaction_decided("tx-1", "rejected", "admin", uuid4())
        assert event.event_type == AuditEventType.TRANSACTION_REJECTED
        assert event.is_user_action

    def test_failed_login_is_a_warning(self):
        event = AuditEventBuilder.admin_login("admin", succeeded=False)
        assert event.event_type == AuditEventType.ADMIN_LOGIN_FAILED
        assert event.severity == AuditSeverity.WARNING

    def test_to_log_dict_is_json_friendly(self):
        event = AuditEventBuilder.report_event("shared", "Semua (Awal s/d Sekarang)", 3, "30000")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "report_shared"
        assert isinstance(log_dict["timestamp"], str)
        assert datetime.fromisoformat(log_dict["timestamp"]) == event.timestamp


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
