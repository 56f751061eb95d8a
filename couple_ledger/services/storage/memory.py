"""
In-memory storage

Dict-backed implementation of the storage interfaces. Used by the test
suite and when no external document store is configured, in which case
data lives for the lifetime of the process.
"""

import copy
import itertools
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from couple_ledger.models.audit import AuditEvent
from couple_ledger.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    NotFoundError,
)


class InMemoryCollectionStorage(CollectionStorageInterface):
    """One collection held in a dict keyed by document ID."""

    def __init__(self, collection: str):
        super().__init__(collection)
        self._docs: dict[str, dict[str, Any]] = {}
        # Insertion sequence breaks created_at ties
        self._seq: dict[str, int] = {}
        self._counter = itertools.count()

    def _snapshot(self, doc_id: str) -> dict[str, Any]:
        return {**copy.deepcopy(self._docs[doc_id]), "id": doc_id}

    def _sorted(self, doc_ids: list[str]) -> list[dict[str, Any]]:
        doc_ids.sort(
            key=lambda i: (self._docs[i].get("created_at") or "", self._seq[i]),
            reverse=True,
        )
        return [self._snapshot(i) for i in doc_ids]

    async def add(self, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        await self.set(doc_id, data)
        return doc_id

    async def set(self, doc_id: str, data: dict[str, Any]) -> None:
        doc = copy.deepcopy(data)
        doc.pop("id", None)
        doc.setdefault("created_at", datetime.utcnow().isoformat())
        self._docs[doc_id] = doc
        if doc_id not in self._seq:
            self._seq[doc_id] = next(self._counter)

    async def get(self, doc_id: str) -> Optional[dict[str, Any]]:
        if doc_id not in self._docs:
            return None
        return self._snapshot(doc_id)

    async def update(self, doc_id: str, data: dict[str, Any]) -> None:
        if doc_id not in self._docs:
            raise NotFoundError(f"{self.collection} document not found: {doc_id}")
        changes = copy.deepcopy(data)
        changes.pop("id", None)
        self._docs[doc_id].update(changes)
        self._docs[doc_id]["updated_at"] = datetime.utcnow().isoformat()

    async def delete(self, doc_id: str) -> None:
        self._docs.pop(doc_id, None)
        self._seq.pop(doc_id, None)

    async def list_where(self, field: str, value: Any) -> list[dict[str, Any]]:
        return self._sorted(
            [i for i, doc in self._docs.items() if doc.get(field) == value]
        )

    async def list_where_contains(self, field: str, value: Any) -> list[dict[str, Any]]:
        return self._sorted(
            [i for i, doc in self._docs.items() if value in (doc.get(field) or [])]
        )


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
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
        return list(reversed(self._events))[:limit]
