"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the shared family backend because:
1. The administrator can look at the raw ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- No push notifications (we publish after our own writes and `refresh()`
  picks up other clients' writes)
- No transactions (we handle this with careful write ordering)
- A cell holds at most 50,000 characters, so proof images are split into
  chunks on a separate worksheet
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to a real document database later without changing business logic.
"""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cashbook.config import GoogleSheetsSettings, get_settings
from cashbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from cashbook.models.master import MasterConfig, MasterScalarField, MasterSetField
from cashbook.models.transaction import Transaction, TransactionStatus, TransactionType
from cashbook.services.storage.interface import (
    AuditStorageInterface,
    ConfigBootstrapRace,
    ConflictError,
    DocumentStoreInterface,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
)


logger = structlog.get_logger(__name__)

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "type",
    "amount",
    "description",
    "category",
    "member",
    "submitted_by",
    "date",
    "created_at",
    "status",
    "proof_image",
    "proof_chunks",
]
STATUS_COLUMN = TRANSACTION_COLUMNS.index("status") + 1  # 1-based for gspread

CONFIG_COLUMNS = ["key", "value_json"]
CONFIG_KEYS = ["categories", "members", "min_transfer"]

PROOF_COLUMNS = ["transaction_id", "chunk_index", "data"]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "actor",
    "is_user_action",
]

# Stay clear of the 50,000 character cell limit
PROOF_CHUNK_SIZE = 45_000

sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFoundError, ConflictError, ConfigBootstrapRace)),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and lazily creates the worksheets it needs.
    """

    def __init__(
        self,
        settings: Optional[GoogleSheetsSettings] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self._timeout_seconds = timeout_seconds

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
                client = gspread.authorize(credentials)
                if self._timeout_seconds:
                    # Without it a stalled HTTP request blocks its thread forever
                    client.set_timeout(self._timeout_seconds)
                self._client = client
            except FileNotFoundError:
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 1000
        )

    def get_config_sheet(self) -> gspread.Worksheet:
        """Get or create the Config worksheet."""
        return self._get_or_create(
            self._settings.config_sheet_name, CONFIG_COLUMNS, 20
        )

    def get_proofs_sheet(self) -> gspread.Worksheet:
        """Get or create the Proofs worksheet."""
        return self._get_or_create(
            self._settings.proofs_sheet_name, PROOF_COLUMNS, 5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


def split_proof(proof_image: str, chunk_size: int = PROOF_CHUNK_SIZE) -> list[str]:
    """Split an encoded proof image into cell-sized pieces."""
    return [
        proof_image[i:i + chunk_size]
        for i in range(0, len(proof_image), chunk_size)
    ]


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the ledger document store.

    Transactions are stored one per row. Proofs that don't fit in a cell
    live on the Proofs sheet, written BEFORE the transaction row so that a
    visible record always has its complete proof.
    The master configuration is a key/JSON-value table on the Config sheet.

    gspread blocks, so all sheet work runs in a worker thread. That keeps
    the event loop free for `with_timeout` to give up on a stalled call.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()

    async def _call(self, func: Callable, *args, failure: str):
        """Run blocking sheet work in a thread; wrap anything unexpected."""
        try:
            return await asyncio.to_thread(func, *args)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"{failure}: {e}")

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _transaction_to_row(self, tx: Transaction, chunk_count: int) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            tx.id,
            tx.type.value,
            str(tx.amount),
            tx.description,
            tx.category,
            tx.member,
            tx.submitted_by,
            tx.date.isoformat(),
            tx.created_at.isoformat(),
            tx.status.value,
            "" if chunk_count else tx.proof_image,
            str(chunk_count) if chunk_count else "",
        ]

    def _row_to_transaction(self, row: list, proofs: dict[str, str]) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        tx_id = safe_get(0)
        proof = safe_get(10)
        if safe_get(11):
            proof = proofs.get(tx_id, "")

        return Transaction(
            id=tx_id,
            type=TransactionType(safe_get(1)),
            amount=Decimal(safe_get(2)),
            description=safe_get(3),
            category=safe_get(4),
            member=safe_get(5),
            submitted_by=safe_get(6) or safe_get(5),
            date=date.fromisoformat(safe_get(7)),
            created_at=datetime.fromisoformat(safe_get(8)),
            status=TransactionStatus(safe_get(9)),
            proof_image=proof,
        )

    def _load_proofs(self) -> dict[str, str]:
        """Reassemble chunked proofs, keyed by transaction id."""
        rows = self._client.get_proofs_sheet().get_all_values()[1:]
        pieces: dict[str, dict[int, str]] = {}
        for row in rows:
            if len(row) < 3 or not row[0]:
                continue
            try:
                index = int(row[1])
            except ValueError:
                continue
            # One chunk per index, even if a retried save wrote it twice
            pieces.setdefault(row[0], {})[index] = row[2]
        return {
            tx_id: "".join(chunks[i] for i in sorted(chunks))
            for tx_id, chunks in pieces.items()
        }

    def _delete_proof_chunks(self, transaction_ids: set[str]) -> None:
        proofs = self._client.get_proofs_sheet()
        rows = proofs.get_all_values()
        # Bottom-up so earlier indices stay valid
        for idx in range(len(rows), 1, -1):
            if rows[idx - 1] and rows[idx - 1][0] in transaction_ids:
                proofs.delete_rows(idx)

    def _find_row(self, all_rows: list[list], transaction_id: str) -> Optional[int]:
        """1-based sheet row index of a transaction, or None."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row and row[0] == transaction_id:
                return idx
        return None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @sheets_retry
    def _write_transaction(self, tx: Transaction) -> None:
        sheet = self._client.get_transactions_sheet()
        if self._find_row(sheet.get_all_values(), tx.id) is not None:
            # A previous attempt got through before failing to report back
            return

        chunks = split_proof(tx.proof_image)
        chunk_count = len(chunks) if len(chunks) > 1 else 0
        if chunk_count:
            # Chunks left behind by an attempt that failed before its row
            self._delete_proof_chunks({tx.id})
            self._client.get_proofs_sheet().append_rows(
                [[tx.id, str(i), chunk] for i, chunk in enumerate(chunks)],
                value_input_option="RAW",
            )
        sheet.append_row(
            self._transaction_to_row(tx, chunk_count),
            value_input_option="RAW",
        )

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """Save a new transaction to Google Sheets."""
        if transaction.id is not None:
            raise PersistenceError("New transactions must not carry an id")
        # The id is fixed before retries so a repeated attempt can't duplicate
        stored = transaction.with_id(uuid4().hex)
        await self._call(
            self._write_transaction, stored, failure="Failed to save transaction"
        )
        await self._publish_collection()
        return stored

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Retrieve a transaction by its ID."""
        for tx in await self.list_transactions():
            if tx.id == transaction_id:
                return tx
        return None

    @sheets_retry
    def _read_transactions(self) -> list[Transaction]:
        all_rows = self._client.get_transactions_sheet().get_all_values()[1:]
        proofs = self._load_proofs()

        transactions = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                transactions.append(self._row_to_transaction(row, proofs))
            except Exception as e:
                logger.warning("skipped_malformed_row", row_id=row[0], error=str(e))
        return transactions

    async def list_transactions(self) -> list[Transaction]:
        """Every parseable transaction row, in sheet order."""
        return await self._call(
            self._read_transactions, failure="Failed to list transactions"
        )

    @sheets_retry
    def _write_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: Optional[TransactionStatus],
    ) -> None:
        sheet = self._client.get_transactions_sheet()
        all_rows = sheet.get_all_values()
        idx = self._find_row(all_rows, transaction_id)
        if idx is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        current = all_rows[idx - 1][STATUS_COLUMN - 1]
        if expected_status is not None and current != expected_status.value:
            raise ConflictError(
                f"Transaction {transaction_id} is {current}, "
                f"expected {expected_status.value}"
            )
        sheet.update_cell(idx, STATUS_COLUMN, status.value)

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: Optional[TransactionStatus] = None,
    ) -> Transaction:
        """
        Update the status cell of one transaction row.

        Sheets has no conditional write, so the `expected_status` check is
        a read followed by a separate write. It is best-effort here: two
        administrators deciding the same row at the same moment can both
        pass it, and the later write wins.
        """
        await self._call(
            self._write_status, transaction_id, status, expected_status,
            failure="Failed to update transaction",
        )
        await self._publish_collection()
        updated = await self.get_transaction(transaction_id)
        if updated is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return updated

    def _purge_rows(self, older_than: datetime) -> int:
        sheet = self._client.get_transactions_sheet()
        all_rows = sheet.get_all_values()
        expired_rows = []
        expired_ids = set()
        for idx, row in enumerate(all_rows[1:], start=2):
            if len(row) < STATUS_COLUMN or row[STATUS_COLUMN - 1] != TransactionStatus.REJECTED.value:
                continue
            try:
                created_at = datetime.fromisoformat(row[8])
            except ValueError:
                continue
            if created_at < older_than:
                expired_rows.append(idx)
                expired_ids.add(row[0])

        for idx in reversed(expired_rows):
            sheet.delete_rows(idx)
        if expired_ids:
            self._delete_proof_chunks(expired_ids)
        return len(expired_rows)

    async def purge_rejected(self, older_than: datetime) -> int:
        """Delete expired rejected rows and their proof chunks."""
        purged = await self._call(
            self._purge_rows, older_than,
            failure="Failed to purge rejected transactions",
        )
        if purged:
            await self._publish_collection()
        return purged

    # ------------------------------------------------------------------
    # Master configuration
    # ------------------------------------------------------------------

    def _read_config_rows(self) -> tuple[dict[str, tuple[int, str]], bool]:
        """
        Map of key -> (row index, raw JSON) using the first row for each key,
        plus a flag telling whether any key appears more than once.
        """
        rows = self._client.get_config_sheet().get_all_values()
        found: dict[str, tuple[int, str]] = {}
        duplicated = False
        for idx, row in enumerate(rows[1:], start=2):
            if len(row) < 2 or not row[0]:
                continue
            if row[0] in found:
                duplicated = True
                continue
            found[row[0]] = (idx, row[1])
        return found, duplicated

    @staticmethod
    def _config_from_rows(found: dict[str, tuple[int, str]]) -> MasterConfig:
        return MasterConfig(
            categories=json.loads(found["categories"][1]),
            members=json.loads(found["members"][1]),
            min_transfer=Decimal(json.loads(found["min_transfer"][1])),
        )

    async def document_exists(self) -> bool:
        found, _ = await self._call(
            self._read_config_rows, failure="Failed to read configuration"
        )
        return all(key in found for key in CONFIG_KEYS)

    def _append_config(self, document: dict) -> bool:
        """Write the default rows; True if another client wrote them too."""
        self._client.get_config_sheet().append_rows(
            [[key, json.dumps(document[key])] for key in CONFIG_KEYS],
            value_input_option="RAW",
        )
        _, duplicated = self._read_config_rows()
        return duplicated

    async def create_if_absent(self, defaults: MasterConfig) -> bool:
        if await self.document_exists():
            return False
        duplicated = await self._call(
            self._append_config, defaults.to_document(),
            failure="Failed to create configuration",
        )

        await self._publish_document()
        if duplicated:
            raise ConfigBootstrapRace(
                "Master configuration was created by another client at the same time"
            )
        return True

    @sheets_retry
    def _read_config(self) -> Optional[MasterConfig]:
        found, _ = self._read_config_rows()
        if not all(key in found for key in CONFIG_KEYS):
            return None
        return self._config_from_rows(found)

    async def get_master_config(self) -> Optional[MasterConfig]:
        return await self._call(self._read_config, failure="Failed to read configuration")

    @sheets_retry
    def _write_config_value(self, key: str, value) -> MasterConfig:
        found, _ = self._read_config_rows()
        if key not in found:
            raise NotFoundError("Master configuration has not been created")
        self._client.get_config_sheet().update_cell(found[key][0], 2, json.dumps(value))
        found[key] = (found[key][0], json.dumps(value))
        return self._config_from_rows(found)

    async def _update_config(self, key: str, value) -> MasterConfig:
        config = await self._call(
            self._write_config_value, key, value,
            failure="Failed to update configuration",
        )
        await self._publish_document()
        return config

    async def add_to_config_set(self, field: MasterSetField, value: str) -> MasterConfig:
        # Read-modify-write: Sheets has no array union
        config = await self.get_master_config()
        if config is None:
            raise NotFoundError("Master configuration has not been created")
        field = MasterSetField(field)
        updated = config.with_added(field, value)
        return await self._update_config(field.value, list(updated.values(field)))

    async def remove_from_config_set(self, field: MasterSetField, value: str) -> MasterConfig:
        config = await self.get_master_config()
        if config is None:
            raise NotFoundError("Master configuration has not been created")
        field = MasterSetField(field)
        updated = config.with_removed(field, value)
        return await self._update_config(field.value, list(updated.values(field)))

    async def update_config_scalar(
        self,
        field: MasterScalarField,
        value: Decimal,
    ) -> MasterConfig:
        field = MasterScalarField(field)
        return await self._update_config(field.value, str(Decimal(value)))


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            actor=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, event: AuditEvent) -> None:
        self._client.get_audit_sheet().append_row(
            event.to_sheets_row(), value_input_option="RAW"
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await asyncio.to_thread(self._append_row, event)
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e))
            return False

    def _all_events(self) -> list[AuditEvent]:
        rows = self._client.get_audit_sheet().get_all_values()[1:]
        events = []
        for row in rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def _load_events(self) -> list[AuditEvent]:
        try:
            return await asyncio.to_thread(self._all_events)
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in await self._load_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = await self._load_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
