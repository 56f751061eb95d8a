"""
Tests for the Google Sheets storage backend.

A list-of-rows fake stands in for gspread worksheets; nothing here
talks to Google.
"""

import asyncio
import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import gspread
import pytest

from couple_ledger.models.audit import AuditEventBuilder
from couple_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCollectionStorage,
    NotFoundError,
    StorageError,
)
from couple_ledger.services.storage.google_sheets import AUDIT_COLUMNS, DOCUMENT_COLUMNS


class FakeWorksheet:
    """The slice of gspread.Worksheet the storage classes use."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, range_name, values):
        # Only whole-row ranges like "A5:D5" are written
        idx = int(range_name.split(":")[0][1:])
        self.rows[idx - 1] = list(values[0])

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeClient:
    def __init__(self):
        self.sheets = {}
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_collection_sheet(self, collection):
        return self.sheets.setdefault(collection, FakeWorksheet(DOCUMENT_COLUMNS))

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def storage(client):
    return GoogleSheetsCollectionStorage("goals", client)


class TestCollectionStorage:

    def test_add_writes_json_row(self, storage, client):
        doc_id = asyncio.run(storage.add({"name": "Holiday", "group_id": "g", "tags": ["a"]}))

        row = client.sheets["goals"].rows[1]
        assert row[0] == doc_id
        assert row[1]
        assert row[2] == ""
        assert json.loads(row[3]) == {"name": "Holiday", "group_id": "g", "tags": ["a"]}

    def test_get_round_trips_document(self, storage):
        async def scenario():
            doc_id = await storage.add({"name": "Holiday", "group_id": "g"})
            return doc_id, await storage.get(doc_id)

        doc_id, doc = asyncio.run(scenario())
        assert doc["id"] == doc_id
        assert doc["name"] == "Holiday"
        assert doc["updated_at"] is None

    def test_get_missing(self, storage):
        assert asyncio.run(storage.get("nope")) is None

    def test_set_overwrites_in_place(self, storage, client):
        async def scenario():
            await storage.set("alice", {"email": "a@example.com"})
            await storage.set("alice", {"email": "b@example.com"})
            return await storage.get("alice")

        doc = asyncio.run(scenario())
        assert doc["email"] == "b@example.com"
        assert len(client.sheets["goals"].rows) == 2

    def test_update_merges_and_stamps(self, storage):
        async def scenario():
            doc_id = await storage.add({"name": "Holiday", "current_amount": "0"})
            await storage.update(doc_id, {"current_amount": "50"})
            return await storage.get(doc_id)

        doc = asyncio.run(scenario())
        assert doc["name"] == "Holiday"
        assert doc["current_amount"] == "50"
        assert doc["updated_at"] is not None

    def test_update_missing(self, storage):
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update("nope", {"a": 1}))

    def test_delete(self, storage, client):
        async def scenario():
            keep = await storage.add({"n": 1})
            gone = await storage.add({"n": 2})
            await storage.delete(gone)
            await storage.delete("never-existed")
            return keep

        keep = asyncio.run(scenario())
        assert [row[0] for row in client.sheets["goals"].rows[1:]] == [keep]

    def test_list_where_newest_first(self, storage):
        async def scenario():
            await storage.add({"group_id": "g", "n": 1, "created_at": "2024-01-01T00:00:00"})
            await storage.add({"group_id": "other", "n": 2})
            await storage.add({"group_id": "g", "n": 3, "created_at": "2024-03-01T00:00:00"})
            return await storage.list_where("group_id", "g")

        assert [d["n"] for d in asyncio.run(scenario())] == [3, 1]

    def test_created_at_ties_newest_row_first(self, storage):
        async def scenario():
            for n in (1, 2, 3):
                await storage.add({"group_id": "g", "n": n, "created_at": "2024-01-01T00:00:00"})
            return await storage.list_where("group_id", "g")

        assert [d["n"] for d in asyncio.run(scenario())] == [3, 2, 1]

    def test_list_where_contains(self, client):
        couples = GoogleSheetsCollectionStorage("couples", client)

        async def scenario():
            await couples.add({"members": ["alice", "bob"]})
            return (
                await couples.list_where_contains("members", "bob"),
                await couples.list_where_contains("members", "carol"),
            )

        found, missing = asyncio.run(scenario())
        assert found[0]["members"] == ["alice", "bob"]
        assert missing == []

    def test_blank_and_malformed_rows_skipped(self, storage, client):
        sheet = client.get_collection_sheet("goals")
        sheet.rows.append(["", "", "", ""])
        sheet.rows.append(["bad", "", "", "{not json"])
        sheet.rows.append(["ok", "2024-01-01T00:00:00", "", '{"group_id": "g"}'])

        docs = asyncio.run(storage.list_where("group_id", "g"))
        assert [d["id"] for d in docs] == ["ok"]

    def test_sheet_errors_become_storage_errors(self):
        broken = MagicMock()
        broken.get_collection_sheet.side_effect = RuntimeError("quota exceeded")
        storage = GoogleSheetsCollectionStorage("goals", broken)

        with pytest.raises(StorageError):
            asyncio.run(storage.list_where("group_id", "g"))
        with pytest.raises(StorageError):
            asyncio.run(storage.add({"n": 1}))


class TestAuditStorage:

    def test_append_and_read_back(self, client):
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.record_created(
            "goals", "goal-1", "g", "alice", {"name": "Holiday"}
        )

        assert asyncio.run(storage.append_event(event)) is True
        assert len(client.audit.rows[1]) == len(AUDIT_COLUMNS)

        events = asyncio.run(storage.get_events_by_entity("goals", "goal-1"))
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].details == {"name": "Holiday"}
        assert events[0].group_id == "g"

    def test_recent_events_newest_first(self, client):
        storage = GoogleSheetsAuditStorage(client)
        older = AuditEventBuilder.user_signed_in("alice", "password")
        newer = AuditEventBuilder.user_signed_out("alice")
        older.timestamp = datetime.utcnow() - timedelta(minutes=5)

        async def scenario():
            await storage.append_event(newer)
            await storage.append_event(older)
            return await storage.get_recent_events(limit=1)

        events = asyncio.run(scenario())
        assert [e.event_id for e in events] == [newer.event_id]

    def test_append_failure_raises(self):
        broken = MagicMock()
        broken.get_audit_sheet.side_effect = RuntimeError("quota")
        storage = GoogleSheetsAuditStorage(broken)

        with pytest.raises(StorageError):
            asyncio.run(storage.append_event(AuditEventBuilder.user_signed_out("alice")))


class TestClient:

    @pytest.fixture(autouse=True)
    def sheets_env(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", "credentials.json")
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "test-spreadsheet")

    def test_missing_worksheet_created_with_header(self):
        spreadsheet = MagicMock()
        spreadsheet.worksheet.side_effect = gspread.WorksheetNotFound("Goals")
        created = FakeWorksheet([])
        created.rows = []
        spreadsheet.add_worksheet.return_value = created

        client = GoogleSheetsClient()
        client._spreadsheet = spreadsheet

        sheet = client.get_collection_sheet("goals")

        assert sheet is created
        assert created.rows == [DOCUMENT_COLUMNS]
        assert spreadsheet.add_worksheet.call_args.kwargs["cols"] == len(DOCUMENT_COLUMNS)

    def test_existing_worksheet_reused(self):
        spreadsheet = MagicMock()
        client = GoogleSheetsClient()
        client._spreadsheet = spreadsheet

        client.get_audit_sheet()

        spreadsheet.add_worksheet.assert_not_called()
