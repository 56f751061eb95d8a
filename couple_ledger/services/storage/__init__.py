"""Storage layer - abstract interfaces and backends."""

from couple_ledger.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from couple_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCollectionStorage,
)
from couple_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCollectionStorage,
)

__all__ = [
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsCollectionStorage",
    "InMemoryAuditStorage",
    "InMemoryCollectionStorage",
]
