# tests/test_mcp_server.py
"""Tests for the MCP server tools."""
import json
from unittest.mock import MagicMock, patch

import pytest

from custom_notes.exceptions import NoteNotFoundError, StorageError
from custom_notes.observability import metrics
from custom_notes.server.mcp_server import NotesMcpServer

EXPECTED_TOOLS = {
    "notes_create_local",
    "notes_get_local",
    "notes_update_local",
    "notes_delete_local",
    "notes_list_local",
    "notes_clear_local",
    "notes_upload",
    "notes_send_many",
    "notes_fetch_cloud",
    "notes_update_cloud",
    "notes_delete_cloud",
    "notes_list_cloud",
    "notes_clear_cloud",
    "notes_create_bucket",
    "notes_delete_bucket",
    "notes_list_buckets",
    "notes_search",
    "notes_execute",
    "notes_status",
}


class TestMcpServer:
    """Tests for the NotesMcpServer class against real stores and a fake S3."""

    @pytest.fixture(autouse=True)
    def server(self, note_service):
        # Capture the tool functions as they are registered
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        with patch("custom_notes.server.mcp_server.FastMCP", return_value=self.mock_mcp):
            self.server = NotesMcpServer(service=note_service)
        self.service = note_service
        yield self.server

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == EXPECTED_TOOLS

    def test_create_and_get(self):
        result = self.registered_tools["notes_create_local"](title="Todo", content="buy milk")
        assert "Note created successfully with ID:" in result

        note_id = self.service.get_local_notes()[0].id
        shown = self.registered_tools["notes_get_local"](note_id=note_id)
        assert "# Todo" in shown
        assert "buy milk" in shown

    def test_create_too_long(self):
        result = self.registered_tools["notes_create_local"](title="t" * 101, content="x")
        assert result == "Error: Title too long"

    def test_get_missing(self):
        result = self.registered_tools["notes_get_local"](note_id=321)
        assert result == "Error: Note '321' not found"

    def test_update_and_list(self):
        created = self.service.create_local_note("a", "old")
        result = self.registered_tools["notes_update_local"](
            note_id=created.id, title="a", content="new text"
        )
        assert "updated successfully" in result
        listing = self.registered_tools["notes_list_local"]()
        assert "Found 1 local notes" in listing
        assert "new text" in listing

    def test_delete_and_clear(self):
        created = self.service.create_local_note("a", "x")
        self.service.create_local_note("b", "y")
        assert "deleted" in self.registered_tools["notes_delete_local"](note_id=created.id)
        assert self.registered_tools["notes_clear_local"]() == "All local notes deleted"
        assert self.registered_tools["notes_list_local"]() == "No local notes."

    def test_cloud_tools(self, bucket):
        created = self.service.create_local_note("Todo", "buy milk")
        note_uuid = created.uuid

        assert "uploaded" in self.registered_tools["notes_upload"](
            bucket=bucket, note_id=created.id
        )
        fetched = self.registered_tools["notes_fetch_cloud"](bucket=bucket, note_uuid=note_uuid)
        assert "buy milk" in fetched

        self.registered_tools["notes_update_cloud"](
            bucket=bucket, note_uuid=note_uuid, title="Todo", content="buy bread"
        )
        listing = self.registered_tools["notes_list_cloud"](bucket=bucket)
        assert "Todo.txt" in listing
        assert "buy bread" in listing

        assert "deleted" in self.registered_tools["notes_delete_cloud"](
            bucket=bucket, note_uuid=note_uuid
        )
        assert self.registered_tools["notes_list_cloud"](bucket=bucket) == f"No notes in {bucket}."

    def test_clear_cloud(self, bucket):
        for title in ("a", "b"):
            created = self.service.create_local_note(title, "x")
            self.service.upload_note_to_bucket(bucket, self.service.get_local_note(created.id))
        result = self.registered_tools["notes_clear_cloud"](bucket=bucket)
        assert result == f"Deleted 2 notes from {bucket}"

    def test_send_many(self, bucket):
        ids = [self.service.create_local_note(f"n{i}", "x").id for i in range(2)]
        result = self.registered_tools["notes_send_many"](
            bucket=bucket, note_ids=f"{ids[0]}, {ids[1]}"
        )
        assert result == f"Sent 2 notes to {bucket}"

    def test_send_many_partial(self, bucket):
        note_id = self.service.create_local_note("n", "x").id
        result = self.registered_tools["notes_send_many"](
            bucket=bucket, note_ids=f"{note_id},999"
        )
        assert result.startswith("Error: Failed to send 1 of 2 notes")
        assert "999" in result

    def test_send_many_bad_ids(self, bucket):
        result = self.registered_tools["notes_send_many"](bucket=bucket, note_ids="1,abc")
        assert result == "Error: Invalid note id: abc"

    def test_bucket_tools(self):
        assert "created" in self.registered_tools["notes_create_bucket"](bucket="tool-bucket")
        assert "tool-bucket" in self.registered_tools["notes_list_buckets"]()
        assert "deleted" in self.registered_tools["notes_delete_bucket"](bucket="tool-bucket")
        assert self.registered_tools["notes_list_buckets"]() == "No note buckets."

    def test_create_existing_bucket(self, bucket):
        result = self.registered_tools["notes_create_bucket"](bucket=bucket)
        assert result == "Error: Bucket already exists"

    def test_search(self, bucket):
        created = self.service.create_local_note("Pie", "apple pie recipe")
        self.service.create_local_note("Bread", "banana bread recipe")

        result = self.registered_tools["notes_search"](query="apple")
        assert "Found 1 matching notes" in result
        assert f"ID: {created.id}" in result

        assert self.registered_tools["notes_search"](query="mango") == "No notes match 'mango'."

        self.service.upload_note_to_bucket(bucket, self.service.get_local_note(created.id))
        cloud = self.registered_tools["notes_search"](query="apple", bucket=bucket)
        assert f"UUID: {created.uuid}" in cloud

    def test_execute(self):
        raw = self.registered_tools["notes_execute"](
            command="create_local_note", args='{"title": "a", "content": "b"}'
        )
        result = json.loads(raw)
        assert result["ok"] is True
        assert result["data"]["title"] == "a"

        raw = self.registered_tools["notes_execute"](command="get_local_note", args='{"id": 999}')
        result = json.loads(raw)
        assert result == {"ok": False, "data": None, "error": "Note '999' not found"}

    def test_status(self):
        metrics.reset()
        self.registered_tools["notes_list_local"]()
        status = self.registered_tools["notes_status"]()
        assert "# Custom Notes Status" in status
        assert "notes_list_local" in status


class TestFormatErrorResponse:
    @pytest.fixture
    def server(self):
        with patch("custom_notes.server.mcp_server.FastMCP"):
            yield NotesMcpServer(service=MagicMock())

    def test_domain_error(self, server):
        assert server.format_error_response(NoteNotFoundError(7)) == "Error: Note '7' not found"

    def test_storage_error_message(self, server):
        error = StorageError("Cloud put_object failed", operation="put_object")
        assert server.format_error_response(error) == "Error: Cloud put_object failed"

    def test_value_error_is_generic(self, server):
        result = server.format_error_response(ValueError("secret detail"))
        assert result.startswith("Error: Invalid input (ref: ")
        assert "secret" not in result

    def test_os_error_is_generic(self, server):
        result = server.format_error_response(OSError("/home/user/notes.db"))
        assert "file system error" in result
        assert "/home" not in result

    def test_unexpected_error(self, server):
        result = server.format_error_response(RuntimeError("boom"))
        assert result.startswith("Error: An unexpected error occurred (ref: ")
