"""
Abstract Storage Interface

The app only needs generic document primitives from its backend:
add, get, set, update, delete and equality queries on one collection.
Keeping them behind an interface lets us:
1. Run on Google Sheets without changing business logic
2. Use in-memory storage for tests and offline runs
3. Swap in another document database later

Documents are plain dicts. Typed models live one layer up, in the
collection services.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from couple_ledger.models.audit import AuditEvent


class CollectionStorageInterface(ABC):
    """
    Abstract interface for one collection of documents.

    Implementations stamp `created_at` on add and `updated_at` on
    update (ISO-8601 strings) and return list results newest first
    by `created_at`.
    """

    def __init__(self, collection: str):
        self.collection = collection

    @abstractmethod
    async def add(self, data: dict[str, Any]) -> str:
        """
        Store a new document and return its generated ID.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def set(self, doc_id: str, data: dict[str, Any]) -> None:
        """
        Create or replace the document with a caller-chosen ID.

        Used for documents keyed by an external identity (user UIDs).
        """
        pass

    @abstractmethod
    async def get(self, doc_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a document by ID.

        Returns:
            The document (with its "id") if found, None otherwise
        """
        pass

    @abstractmethod
    async def update(self, doc_id: str, data: dict[str, Any]) -> None:
        """
        Merge `data` into an existing document. Last write wins.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""
        pass

    @abstractmethod
    async def list_where(self, field: str, value: Any) -> list[dict[str, Any]]:
        """
        Documents whose `field` equals `value`, newest first.
        """
        pass

    @abstractmethod
    async def list_where_contains(self, field: str, value: Any) -> list[dict[str, Any]]:
        """
        Documents whose list-valued `field` contains `value`, newest first.
        """
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
        Get all events for one record, in chronological order.
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


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
