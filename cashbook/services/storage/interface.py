"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Use Google Sheets as the shared family backend
2. Use in-memory storage for testing and demo mode
3. Swap in a real document database later
4. Keep business logic decoupled from storage implementation

The store holds exactly two things: the transaction collection and the
single master configuration document.

REALTIME SYNC: consumers do not poll the store directly. They subscribe and
receive a full snapshot immediately and again after every change. The base
class owns the listener registry; implementations only call
`_publish_collection()` / `_publish_document()` after they write.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

import structlog

from cashbook.models.audit import AuditEvent
from cashbook.models.master import MasterConfig, MasterScalarField, MasterSetField
from cashbook.models.transaction import Transaction, TransactionStatus


CollectionListener = Callable[[tuple[Transaction, ...]], None]
DocumentListener = Callable[[MasterConfig], None]
Unsubscribe = Callable[[], None]

logger = structlog.get_logger(__name__)


class PersistenceError(Exception):
    """Base exception for storage operations (network, permission, backend)."""
    pass


class NotFoundError(PersistenceError):
    """Entity not found in storage."""
    pass


class ConflictError(PersistenceError):
    """The stored state changed underneath a conditional write."""
    pass


class StoreConnectionError(PersistenceError):
    """Could not connect to storage backend."""
    pass


class ConfigBootstrapRace(PersistenceError):
    """
    Two clients created the default configuration at the same time.

    Benign: both wrote the same defaults and readers use the first document.
    """
    pass


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the ledger's document store.

    Any storage implementation (Google Sheets, Firestore, SQLite, etc.)
    must implement the abstract methods. Subscriptions are provided here.
    """

    def __init__(self):
        self._collection_listeners: list[CollectionListener] = []
        self._document_listeners: list[DocumentListener] = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe_collection(self, callback: CollectionListener) -> Unsubscribe:
        """
        Subscribe to transaction collection snapshots.

        The callback receives the current snapshot immediately and a fresh
        full snapshot after every change.

        Returns:
            A function that removes the subscription
        """
        self._collection_listeners.append(callback)
        self._deliver(callback, tuple(await self.list_transactions()))

        def unsubscribe() -> None:
            if callback in self._collection_listeners:
                self._collection_listeners.remove(callback)

        return unsubscribe

    async def subscribe_document(self, callback: DocumentListener) -> Unsubscribe:
        """
        Subscribe to master configuration snapshots.

        Nothing is delivered until the document exists.
        """
        self._document_listeners.append(callback)
        config = await self.get_master_config()
        if config is not None:
            self._deliver(callback, config)

        def unsubscribe() -> None:
            if callback in self._document_listeners:
                self._document_listeners.remove(callback)

        return unsubscribe

    async def refresh(self) -> None:
        """
        Re-read both the collection and the document and push them to
        every subscriber. Used after reconnecting and to pick up changes
        made by other clients.
        """
        await self._publish_collection()
        await self._publish_document()

    async def _publish_collection(self) -> None:
        if not self._collection_listeners:
            return
        snapshot = tuple(await self.list_transactions())
        for callback in list(self._collection_listeners):
            self._deliver(callback, snapshot)

    async def _publish_document(self) -> None:
        if not self._document_listeners:
            return
        config = await self.get_master_config()
        if config is None:
            return
        for callback in list(self._document_listeners):
            self._deliver(callback, config)

    @staticmethod
    def _deliver(callback: Callable, snapshot) -> None:
        # A broken subscriber must not fail the write that triggered it
        try:
            callback(snapshot)
        except Exception as e:
            logger.error("snapshot_listener_failed", error=str(e))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction record.

        The whole record is written or nothing is.

        Args:
            transaction: Validated record without an id

        Returns:
            The stored record carrying its store-assigned id

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """
        Retrieve a transaction by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """
        Return every stored transaction (all statuses), in insertion order.
        """
        pass

    @abstractmethod
    async def update_transaction_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        expected_status: Optional[TransactionStatus] = None,
    ) -> Transaction:
        """
        Change the status of a record. No other field is touched.

        Args:
            transaction_id: Record to update
            status: New status
            expected_status: If given, only write when the stored status
                             still equals this value (compare-and-set)

        Returns:
            The updated record

        Raises:
            NotFoundError: If the record doesn't exist
            ConflictError: If expected_status doesn't match
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    async def purge_rejected(self, older_than: datetime) -> int:
        """
        Delete rejected records created before `older_than`.

        Approved and pending records are never deleted.

        Returns:
            Number of records removed
        """
        pass

    # ------------------------------------------------------------------
    # Master configuration document
    # ------------------------------------------------------------------

    @abstractmethod
    async def document_exists(self) -> bool:
        """Does the master configuration document exist?"""
        pass

    @abstractmethod
    async def create_if_absent(self, defaults: MasterConfig) -> bool:
        """
        Create the master configuration document if it does not exist.

        Returns:
            True if this call created it

        Raises:
            ConfigBootstrapRace: If another client created it concurrently
        """
        pass

    @abstractmethod
    async def get_master_config(self) -> Optional[MasterConfig]:
        """Current master configuration, or None before bootstrap."""
        pass

    @abstractmethod
    async def add_to_config_set(self, field: MasterSetField, value: str) -> MasterConfig:
        """Add a value to a set field (no duplicates). Returns the new document."""
        pass

    @abstractmethod
    async def remove_from_config_set(self, field: MasterSetField, value: str) -> MasterConfig:
        """Remove a value from a set field (no-op if absent). Returns the new document."""
        pass

    @abstractmethod
    async def update_config_scalar(
        self,
        field: MasterScalarField,
        value: Decimal,
    ) -> MasterConfig:
        """Overwrite a scalar field. Returns the new document."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


async def with_timeout(coro, timeout_seconds: float, operation: str):
    """
    Await a store call, turning a hang into a PersistenceError.

    A request that never resolves would otherwise leave the caller
    waiting forever.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise PersistenceError(
            f"{operation} timed out after {timeout_seconds:g} seconds"
        )
