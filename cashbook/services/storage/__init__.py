"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the shared backend; the in-memory store serves tests and
demo mode.
"""

from cashbook.services.storage.interface import (
    AuditStorageInterface,
    ConfigBootstrapRace,
    ConflictError,
    DocumentStoreInterface,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
    with_timeout,
)
from cashbook.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStore,
)
from cashbook.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStoreInterface",
    "with_timeout",
    # Exceptions
    "ConfigBootstrapRace",
    "ConflictError",
    "NotFoundError",
    "PersistenceError",
    "StoreConnectionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
]
