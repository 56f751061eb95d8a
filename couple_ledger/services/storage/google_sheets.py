"""
Google Sheets Storage Implementation

Google Sheets acts as the document store: one worksheet per collection,
one document per row. The document body is JSON-serialized in a single
column so entities can gain fields without a sheet migration.

TRADEOFFS:
- Not suitable for high-volume data (a household ledger is small)
- No transactions; concurrent writers get last-write-wins
- No server-side queries; we read the sheet and filter in Python

Only the connection handshake is retried. Document writes are not,
since an append that timed out may still have landed.
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from couple_ledger.config import get_settings
from couple_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from couple_ledger.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    NotFoundError,
    StorageError,
)


# Column layout shared by every collection sheet
DOCUMENT_COLUMNS = [
    "id",
    "created_at",
    "updated_at",
    "data_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "group_id",
    "actor_id",
    "description",
    "details_json",
    "error_message",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and hands out worksheets, creating them with
    a header row on first use.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.sheet_name_for(collection),
            DOCUMENT_COLUMNS,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsCollectionStorage(CollectionStorageInterface):
    """
    Google Sheets implementation of one document collection.

    Row layout: id | created_at | updated_at | data_json
    """

    def __init__(self, collection: str, client: Optional[GoogleSheetsClient] = None):
        super().__init__(collection)
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_collection_sheet(self.collection)

    @staticmethod
    def _doc_to_row(doc_id: str, data: dict[str, Any]) -> list:
        body = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
        return [
            doc_id,
            data.get("created_at") or "",
            data.get("updated_at") or "",
            json.dumps(body, default=str),
        ]

    @staticmethod
    def _row_to_doc(row: list) -> dict[str, Any]:
        def safe_get(index: int) -> str:
            try:
                return row[index] or ""
            except IndexError:
                return ""

        doc = json.loads(safe_get(3)) if safe_get(3) else {}
        doc["id"] = safe_get(0)
        doc["created_at"] = safe_get(1) or None
        doc["updated_at"] = safe_get(2) or None
        return doc

    def _read_all(self) -> list[tuple[int, dict[str, Any]]]:
        """(sheet row number, document) for every non-empty data row."""
        rows = self._sheet().get_all_values()
        docs = []
        for idx, row in enumerate(rows[1:], start=2):  # Row 1 is header
            if not row or not row[0]:
                continue
            try:
                docs.append((idx, self._row_to_doc(row)))
            except ValueError:
                continue  # Skip malformed rows
        return docs

    def _find_row(self, doc_id: str) -> Optional[tuple[int, dict[str, Any]]]:
        for idx, doc in self._read_all():
            if doc["id"] == doc_id:
                return idx, doc
        return None

    @staticmethod
    def _newest_first(rows: list[tuple[int, dict[str, Any]]]) -> list[dict[str, Any]]:
        # Later rows were appended later, so row number breaks created_at ties
        ordered = sorted(
            rows,
            key=lambda r: (r[1].get("created_at") or "", r[0]),
            reverse=True,
        )
        return [doc for _, doc in ordered]

    async def add(self, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        await self.set(doc_id, data)
        return doc_id

    async def set(self, doc_id: str, data: dict[str, Any]) -> None:
        try:
            doc = {**data, "created_at": data.get("created_at") or datetime.utcnow().isoformat()}
            row = self._doc_to_row(doc_id, doc)
            existing = self._find_row(doc_id)
            if existing:
                self._sheet().update(
                    range_name=f"A{existing[0]}:D{existing[0]}",
                    values=[row],
                )
            else:
                self._sheet().append_row(row, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {self.collection} document: {e}")

    async def get(self, doc_id: str) -> Optional[dict[str, Any]]:
        try:
            found = self._find_row(doc_id)
            return found[1] if found else None
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {self.collection} document: {e}")

    async def update(self, doc_id: str, data: dict[str, Any]) -> None:
        try:
            found = self._find_row(doc_id)
            if found is None:
                raise NotFoundError(f"{self.collection} document not found: {doc_id}")
            idx, doc = found
            doc.update({k: v for k, v in data.items() if k != "id"})
            doc["updated_at"] = datetime.utcnow().isoformat()
            self._sheet().update(
                range_name=f"A{idx}:D{idx}",
                values=[self._doc_to_row(doc_id, doc)],
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {self.collection} document: {e}")

    async def delete(self, doc_id: str) -> None:
        try:
            found = self._find_row(doc_id)
            if found:
                self._sheet().delete_rows(found[0])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {self.collection} document: {e}")

    async def list_where(self, field: str, value: Any) -> list[dict[str, Any]]:
        try:
            rows = [r for r in self._read_all() if r[1].get(field) == value]
            return self._newest_first(rows)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {self.collection}: {e}")

    async def list_where_contains(self, field: str, value: Any) -> list[dict[str, Any]]:
        try:
            rows = [
                r for r in self._read_all()
                if value in (r[1].get(field) or [])
            ]
            return self._newest_first(rows)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {self.collection}: {e}")


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
            group_id=safe_get(6) or None,
            actor_id=safe_get(7) or None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    def _read_events(self) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. The caller decides what a failure means."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
