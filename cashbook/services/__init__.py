"""Services package."""

from cashbook.services.image import (
    ProofImageError,
    ProofImageService,
    ProofImageTooLargeError,
    UnsupportedImageError,
    decode_data_uri,
)
from cashbook.services.storage import (
    AuditStorageInterface,
    ConfigBootstrapRace,
    ConflictError,
    DocumentStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryAuditStorage,
    InMemoryDocumentStore,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
)

__all__ = [
    # Image services
    "ProofImageError",
    "ProofImageService",
    "ProofImageTooLargeError",
    "UnsupportedImageError",
    "decode_data_uri",
    # Storage services
    "AuditStorageInterface",
    "ConfigBootstrapRace",
    "ConflictError",
    "DocumentStoreInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryAuditStorage",
    "InMemoryDocumentStore",
    "NotFoundError",
    "PersistenceError",
    "StoreConnectionError",
]
