"""
Tests for the Google Sheets store against fake worksheets.

The fakes implement only the gspread calls the store makes.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from tenacity import wait_none

from cashbook.config import AppSettings
from cashbook.models import (
    AuditEventBuilder,
    AuditEventType,
    MasterSetField,
    TransactionDraft,
    TransactionStatus,
)
from cashbook.orchestrator import SubmissionFlow
from cashbook.services.storage import (
    ConfigBootstrapRace,
    ConflictError,
    GoogleSheetsAuditStorage,
    GoogleSheetsDocumentStore,
    NotFoundError,
    PersistenceError,
)
from cashbook.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    CONFIG_COLUMNS,
    PROOF_CHUNK_SIZE,
    PROOF_COLUMNS,
    TRANSACTION_COLUMNS,
    split_proof,
)

PROOF = "data:image/png;base64,iVBORw0KGgo="


class FakeWorksheet:
    """In-memory stand-in for gspread.Worksheet."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def append_rows(self, values, value_input_option=None):
        for row in values:
            self.append_row(row)

    def update_cell(self, row: int, col: int, value):
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = str(value)

    def delete_rows(self, index: int):
        del self.rows[index - 1]


class DoubleAppendWorksheet(FakeWorksheet):
    """Config sheet where another client appended the same defaults concurrently."""

    def append_rows(self, values, value_input_option=None):
        super().append_rows(values)
        super().append_rows(values)


class FlakyWorksheet(FakeWorksheet):
    """Transactions sheet whose first row append fails."""

    def __init__(self, header: list[str]):
        super().__init__(header)
        self.failures = 1

    def append_row(self, values, value_input_option=None):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("connection reset")
        super().append_row(values, value_input_option)


class StalledWorksheet(FakeWorksheet):
    """Transactions sheet whose reads hang."""

    def get_all_values(self) -> list[list[str]]:
        time.sleep(1)
        return super().get_all_values()


class FakeSheetsClient:
    def __init__(self, config_sheet: FakeWorksheet = None, transactions_sheet: FakeWorksheet = None):
        self.transactions = transactions_sheet or FakeWorksheet(TRANSACTION_COLUMNS)
        self.config = config_sheet or FakeWorksheet(CONFIG_COLUMNS)
        self.proofs = FakeWorksheet(PROOF_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_transactions_sheet(self):
        return self.transactions

    def get_config_sheet(self):
        return self.config

    def get_proofs_sheet(self):
        return self.proofs

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client() -> FakeSheetsClient:
    return FakeSheetsClient()


@pytest.fixture
def sheets_store(client, master) -> GoogleSheetsDocumentStore:
    store = GoogleSheetsDocumentStore(client)
    asyncio.run(store.create_if_absent(master))
    return store


class TestTransactionRows:

    def test_round_trip(self, sheets_store, client, make_transaction):
        tx = make_transaction(status=TransactionStatus.PENDING, amount=Decimal("12500.50"))
        stored = asyncio.run(sheets_store.create_transaction(tx))

        assert len(client.transactions.rows) == 2
        loaded = asyncio.run(sheets_store.get_transaction(stored.id))
        assert loaded == stored

    def test_large_proof_is_chunked(self, sheets_store, client, make_transaction):
        """A proof longer than one cell is split over the Proofs sheet."""
        proof = "data:image/png;base64," + "A" * (PROOF_CHUNK_SIZE * 2 + 10)
        stored = asyncio.run(sheets_store.create_transaction(make_transaction(proof_image=proof)))

        assert len(client.proofs.rows) == 1 + 3
        row = client.transactions.rows[1]
        assert row[TRANSACTION_COLUMNS.index("proof_image")] == ""
        assert row[TRANSACTION_COLUMNS.index("proof_chunks")] == "3"

        loaded = asyncio.run(sheets_store.get_transaction(stored.id))
        assert loaded.proof_image == proof

    def test_split_proof(self):
        assert split_proof("abcdefg", chunk_size=3) == ["abc", "def", "g"]

    def test_retried_write_does_not_duplicate(self, sheets_store, client, make_transaction):
        tx = make_transaction().with_id("fixed-id")
        sheets_store._write_transaction(tx)
        sheets_store._write_transaction(tx)
        assert len(client.transactions.rows) == 2

    def test_retry_after_failed_row_keeps_one_proof(self, master, make_transaction):
        """Chunks written before a failed row append are not doubled by the retry."""
        client = FakeSheetsClient(transactions_sheet=FlakyWorksheet(TRANSACTION_COLUMNS))
        store = GoogleSheetsDocumentStore(client)
        proof = "data:image/png;base64," + "C" * (PROOF_CHUNK_SIZE + 10)
        tx = make_transaction(proof_image=proof).with_id("retried-id")

        write = GoogleSheetsDocumentStore._write_transaction.retry_with(wait=wait_none())
        write(store, tx)

        assert len(client.transactions.rows) == 2
        assert len(client.proofs.rows) == 1 + 2
        assert asyncio.run(store.get_transaction("retried-id")).proof_image == proof

    def test_duplicate_chunks_are_read_once(self, sheets_store, client, make_transaction):
        proof = "data:image/png;base64," + "D" * (PROOF_CHUNK_SIZE + 10)
        stored = asyncio.run(sheets_store.create_transaction(make_transaction(proof_image=proof)))
        client.proofs.append_row(list(client.proofs.rows[1]))

        assert asyncio.run(sheets_store.get_transaction(stored.id)).proof_image == proof

    def test_malformed_rows_are_skipped(self, sheets_store, client, make_transaction):
        asyncio.run(sheets_store.create_transaction(make_transaction()))
        client.transactions.append_row(["broken", "deposit", "lots", "x"])
        client.transactions.append_row([""])

        assert len(asyncio.run(sheets_store.list_transactions())) == 1


class TestStatusUpdates:

    def test_update_writes_status_cell(self, sheets_store, client, make_transaction):
        tx = asyncio.run(sheets_store.create_transaction(
            make_transaction(status=TransactionStatus.PENDING)
        ))
        updated = asyncio.run(sheets_store.update_transaction_status(
            tx.id, TransactionStatus.APPROVED, expected_status=TransactionStatus.PENDING
        ))

        assert updated.status == TransactionStatus.APPROVED
        assert client.transactions.rows[1][TRANSACTION_COLUMNS.index("status")] == "approved"
        assert updated.model_dump(exclude={"status"}) == tx.model_dump(exclude={"status"})

    def test_conflict(self, sheets_store, make_transaction):
        tx = asyncio.run(sheets_store.create_transaction(make_transaction()))
        with pytest.raises(ConflictError):
            asyncio.run(sheets_store.update_transaction_status(
                tx.id, TransactionStatus.REJECTED, expected_status=TransactionStatus.PENDING
            ))

    def test_not_found(self, sheets_store):
        with pytest.raises(NotFoundError):
            asyncio.run(sheets_store.update_transaction_status("nope", TransactionStatus.APPROVED))

    def test_subscribers_see_the_change(self, sheets_store, make_transaction):
        snapshots = []
        asyncio.run(sheets_store.subscribe_collection(snapshots.append))
        tx = asyncio.run(sheets_store.create_transaction(
            make_transaction(status=TransactionStatus.PENDING)
        ))
        asyncio.run(sheets_store.update_transaction_status(tx.id, TransactionStatus.APPROVED))
        assert snapshots[-1][0].status == TransactionStatus.APPROVED

    def test_purge_removes_rows_and_proof_chunks(self, sheets_store, client, make_transaction):
        old = datetime.now(timezone.utc) - timedelta(days=60)
        big_proof = "data:image/png;base64," + "B" * (PROOF_CHUNK_SIZE + 1)
        asyncio.run(sheets_store.create_transaction(make_transaction(
            status=TransactionStatus.REJECTED, created_at=old, proof_image=big_proof
        )))
        kept = asyncio.run(sheets_store.create_transaction(make_transaction(created_at=old)))

        purged = asyncio.run(sheets_store.purge_rejected(datetime.now(timezone.utc)))

        assert purged == 1
        assert [tx.id for tx in asyncio.run(sheets_store.list_transactions())] == [kept.id]
        assert len(client.proofs.rows) == 1


class TestConfigDocument:

    def test_create_and_read(self, sheets_store, master):
        assert asyncio.run(sheets_store.document_exists())
        assert asyncio.run(sheets_store.get_master_config()) == master
        assert asyncio.run(sheets_store.create_if_absent(master)) is False

    def test_missing_document(self, client):
        store = GoogleSheetsDocumentStore(client)
        assert asyncio.run(store.get_master_config()) is None
        assert not asyncio.run(store.document_exists())

    def test_set_and_scalar_updates(self, sheets_store, client):
        asyncio.run(sheets_store.add_to_config_set(MasterSetField.MEMBERS, "Kakak"))
        asyncio.run(sheets_store.remove_from_config_set(MasterSetField.CATEGORIES, "Umum"))
        config = asyncio.run(sheets_store.update_config_scalar("min_transfer", Decimal("75000")))

        assert config.members == ("Ayah", "Ibu", "Kakak")
        assert "Umum" not in config.categories
        assert config.min_transfer == Decimal("75000")
        assert asyncio.run(sheets_store.get_master_config()) == config
        # Still one row per key
        assert len(client.config.rows) == 1 + 3

    def test_concurrent_bootstrap_is_reported(self, master):
        client = FakeSheetsClient(config_sheet=DoubleAppendWorksheet(CONFIG_COLUMNS))
        store = GoogleSheetsDocumentStore(client)

        with pytest.raises(ConfigBootstrapRace):
            asyncio.run(store.create_if_absent(master))
        assert asyncio.run(store.get_master_config()) == master

    def test_refresh_republishes(self, sheets_store, client, master):
        received = []
        asyncio.run(sheets_store.subscribe_document(received.append))
        # Another device changed the sheet directly
        client.config.update_cell(3, 2, '["Ayah", "Ibu", "Nenek"]')

        asyncio.run(sheets_store.refresh())
        assert received[-1].members == ("Ayah", "Ibu", "Nenek")


class TestAuditStorage:

    def test_append_and_read_back(self, client):
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.master_config_updated("members", "add", "Kakak", "admin")

        assert asyncio.run(storage.append_event(event))
        events = asyncio.run(storage.get_events_by_entity("master_config", "master"))

        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].actor == "admin"
        assert events[0].details["value"] == "Kakak"


class TestTimeouts:

    def test_stalled_save_times_out(self, master, family_session, audit_logger, audit_storage):
        """Sheet calls run off the event loop, so the request timeout can fire."""
        client = FakeSheetsClient(transactions_sheet=StalledWorksheet(TRANSACTION_COLUMNS))
        store = GoogleSheetsDocumentStore(client)
        asyncio.run(store.create_if_absent(master))
        flow = SubmissionFlow(
            store,
            audit_logger=audit_logger,
            settings=AppSettings(request_timeout_seconds=0.2),
        )
        draft = TransactionDraft(
            amount="50000",
            description="Iuran bulanan",
            category="Umum",
            member="Ayah",
            proof_image=PROOF,
        )

        with pytest.raises(PersistenceError, match="timed out"):
            asyncio.run(flow.submit(family_session, draft))

        events = asyncio.run(audit_storage.get_recent_events())
        assert AuditEventType.SAVE_FAILED in [e.event_type for e in events]
