"""
In-Memory Storage Implementation

Process-local store used by the test-suite and by the app's demo mode
(when Google Sheets is not configured). It behaves like the hosted
backend: ids are assigned on create, writes are all-or-nothing, and every
change is pushed to subscribers as a full snapshot.
"""

import threading
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from cashbook.models.audit import AuditEvent
from cashbook.models.master import MasterConfig, MasterScalarField, MasterSetField
from cashbook.models.transaction import Transaction, TransactionStatus
from cashbook.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DocumentStoreInterface,
    NotFoundError,
    PersistenceError,
)


class InMemoryDocumentStore(DocumentStoreInterface):
    """Dictionary-backed document store."""

    def __init__(self):
        super().__init__()
        # Dicts keep insertion order, which is the tie-break for history views
        self._transactions: dict[str, Transaction] = {}
        self._config: Optional[MasterConfig] = None
        self._lock = threading.Lock()

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id is not None:
            raise PersistenceError("New transactions must not carry an id")
        stored = transaction.with_id(uuid4().hex)
        with self._lock:
            self._transactions[stored.id] = stored
        await self._publish_collection()
        return stored

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(transaction_id)

    async def list_transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions.values())

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: Optional[TransactionStatus] = None,
    ) -> Transaction:
        with self._lock:
            current = self._transactions.get(transaction_id)
            if current is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            if expected_status is not None and current.status != expected_status:
                raise ConflictError(
                    f"Transaction {transaction_id} is {current.status.value}, "
                    f"expected {expected_status.value}"
                )
            updated = current.with_status(status)
            self._transactions[transaction_id] = updated
        await self._publish_collection()
        return updated

    async def purge_rejected(self, older_than: datetime) -> int:
        with self._lock:
            expired = [
                tx_id for tx_id, tx in self._transactions.items()
                if tx.status == TransactionStatus.REJECTED
                and tx.created_at < older_than
            ]
            for tx_id in expired:
                del self._transactions[tx_id]
        if expired:
            await self._publish_collection()
        return len(expired)

    async def document_exists(self) -> bool:
        with self._lock:
            return self._config is not None

    async def create_if_absent(self, defaults: MasterConfig) -> bool:
        with self._lock:
            if self._config is not None:
                return False
            self._config = defaults
        await self._publish_document()
        return True

    async def get_master_config(self) -> Optional[MasterConfig]:
        with self._lock:
            return self._config

    def _require_config(self) -> MasterConfig:
        if self._config is None:
            raise NotFoundError("Master configuration has not been created")
        return self._config

    async def add_to_config_set(self, field: MasterSetField, value: str) -> MasterConfig:
        with self._lock:
            self._config = self._require_config().with_added(field, value)
            config = self._config
        await self._publish_document()
        return config

    async def remove_from_config_set(self, field: MasterSetField, value: str) -> MasterConfig:
        with self._lock:
            self._config = self._require_config().with_removed(field, value)
            config = self._config
        await self._publish_document()
        return config

    async def update_config_scalar(
        self,
        field: MasterScalarField,
        value: Decimal,
    ) -> MasterConfig:
        field = MasterScalarField(field)
        with self._lock:
            self._config = self._require_config().model_copy(
                update={field.value: Decimal(value)}
            )
            config = self._config
        await self._publish_document()
        return config


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._lock:
            events = list(self._events)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
