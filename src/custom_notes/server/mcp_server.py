"""MCP server exposing the note stores as tools."""

import atexit
import json
import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from custom_notes.commands import CommandDispatcher
from custom_notes.config import config
from custom_notes.exceptions import NotesError, ValidationError
from custom_notes.models.schema import Note
from custom_notes.observability import metrics, timed_operation
from custom_notes.services.note_service import NoteService

logger = logging.getLogger(__name__)

# Longest content excerpt shown in listings
PREVIEW_LENGTH = 80


def _preview(content: str) -> str:
    text = " ".join(content.split())
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


def _parse_ids(note_ids: str) -> List[int]:
    """Parse a comma-separated list of local note ids."""
    ids = []
    for part in note_ids.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ValidationError(
                f"Invalid note id: {part}", field="note_ids", value=note_ids
            ) from None
    return ids


def _format_note(note: Note) -> str:
    result = f"# {note.title}\n"
    if note.id:
        result += f"ID: {note.id}\n"
    result += f"UUID: {note.uuid}\n"
    result += f"Created: {note.created_at}\n"
    if note.updated_at:
        result += f"Updated: {note.updated_at}\n"
    if note.timestamp:
        result += f"Timestamp: {note.timestamp}\n"
    result += f"\n{note.content}\n"
    return result


class NotesMcpServer:
    """MCP server for local and cloud notes."""

    def __init__(self, service: Optional[NoteService] = None, engine=None):
        """Initialize the MCP server.

        Args:
            service: Note service to expose. Created if None.
            engine: Pre-configured SQLAlchemy engine for the local store,
                used when `service` is None.
        """
        self.mcp = FastMCP(config.server_name)
        self.service = service or NoteService(engine=engine)
        self.dispatcher = CommandDispatcher(self.service)
        self.initialize()
        atexit.register(self._shutdown)
        self._register_tools()

    def initialize(self) -> None:
        """Initialize services."""
        logger.info("Custom notes MCP server initialized")

    def _shutdown(self) -> None:
        """Clean up resources on server exit."""
        self.service.shutdown()

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Domain errors are reported with their message. Anything else is
        logged with a short reference id and reported generically.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NotesError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # ========== Local notes ==========

        @self.mcp.tool(name="notes_create_local")
        def notes_create_local(title: str, content: str) -> str:
            """Create an encrypted note in the local database.
            Args:
                title: Note title (up to 100 characters)
                content: Note body
            """
            with timed_operation("notes_create_local", title=title[:30]) as op:
                try:
                    note = self.service.create_local_note(title, content)
                    op["note_id"] = note.id
                    return f"Note created successfully with ID: {note.id} (uuid: {note.uuid})"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_get_local")
        def notes_get_local(note_id: int) -> str:
            """Retrieve and decrypt a local note.
            Args:
                note_id: Local id of the note
            """
            with timed_operation("notes_get_local", note_id=note_id):
                try:
                    return _format_note(self.service.get_local_note(note_id))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_update_local")
        def notes_update_local(note_id: int, title: str, content: str) -> str:
            """Replace the title and content of a local note.
            Args:
                note_id: Local id of the note
                title: New title
                content: New content
            """
            with timed_operation("notes_update_local", note_id=note_id):
                try:
                    self.service.update_local_note(
                        Note(id=note_id, title=title, content=content)
                    )
                    return f"Note {note_id} updated successfully"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_delete_local")
        def notes_delete_local(note_id: int) -> str:
            """Delete a local note. Deleting a missing note is not an error.
            Args:
                note_id: Local id of the note
            """
            with timed_operation("notes_delete_local", note_id=note_id):
                try:
                    self.service.delete_local_note(note_id)
                    return f"Note {note_id} deleted successfully"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_list_local")
        def notes_list_local() -> str:
            """List every local note with a content preview."""
            with timed_operation("notes_list_local") as op:
                try:
                    notes = self.service.get_local_notes()
                    op["result_count"] = len(notes)
                    if not notes:
                        return "No local notes."
                    output = f"Found {len(notes)} local notes:\n\n"
                    for note in notes:
                        output += f"- [{note.id}] {note.title}: {_preview(note.content)}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_clear_local")
        def notes_clear_local() -> str:
            """Delete every local note."""
            with timed_operation("notes_clear_local"):
                try:
                    self.service.delete_all_local_notes()
                    return "All local notes deleted"
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Cloud notes ==========

        @self.mcp.tool(name="notes_upload")
        def notes_upload(bucket: str, note_id: int) -> str:
            """Upload a local note to a bucket, encrypted.
            Args:
                bucket: Target bucket name
                note_id: Local id of the note to upload
            """
            with timed_operation("notes_upload", bucket=bucket, note_id=note_id):
                try:
                    note = self.service.get_local_note(note_id)
                    self.service.upload_note_to_bucket(bucket, note)
                    return f"Note {note_id} uploaded to {bucket}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_send_many")
        def notes_send_many(bucket: str, note_ids: str) -> str:
            """Upload several local notes to a bucket.

            Every note is attempted; failures are listed at the end.

            Args:
                bucket: Target bucket name
                note_ids: Comma-separated local note ids
            """
            with timed_operation("notes_send_many", bucket=bucket) as op:
                try:
                    sent = self.service.send_notes_to_bucket(bucket, _parse_ids(note_ids))
                    op["sent"] = sent
                    return f"Sent {sent} notes to {bucket}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_fetch_cloud")
        def notes_fetch_cloud(bucket: str, note_uuid: str) -> str:
            """Fetch and decrypt a note from a bucket by uuid.
            Args:
                bucket: Bucket name
                note_uuid: The note's uuid
            """
            with timed_operation("notes_fetch_cloud", bucket=bucket):
                try:
                    return _format_note(self.service.fetch_bucket_note(bucket, note_uuid))
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_update_cloud")
        def notes_update_cloud(
            bucket: str, note_uuid: str, title: str, content: str
        ) -> str:
            """Overwrite the content of a note stored in a bucket.
            Args:
                bucket: Bucket name
                note_uuid: The note's uuid
                title: Note title (the object keeps its original name)
                content: New content
            """
            with timed_operation("notes_update_cloud", bucket=bucket):
                try:
                    self.service.update_bucket_note(
                        bucket, Note(uuid=note_uuid, title=title, content=content)
                    )
                    return f"Cloud note {note_uuid} updated"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_delete_cloud")
        def notes_delete_cloud(bucket: str, note_uuid: str) -> str:
            """Delete a note from a bucket by uuid.
            Args:
                bucket: Bucket name
                note_uuid: The note's uuid
            """
            with timed_operation("notes_delete_cloud", bucket=bucket):
                try:
                    self.service.delete_bucket_note(bucket, note_uuid)
                    return f"Cloud note {note_uuid} deleted"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_list_cloud")
        def notes_list_cloud(bucket: str) -> str:
            """List and decrypt every note in a bucket.
            Args:
                bucket: Bucket name
            """
            with timed_operation("notes_list_cloud", bucket=bucket) as op:
                try:
                    objects = self.service.fetch_bucket_notes(bucket)
                    op["result_count"] = len(objects)
                    if not objects:
                        return f"No notes in {bucket}."
                    output = f"Found {len(objects)} notes in {bucket}:\n\n"
                    for obj in objects:
                        note_uuid = (obj.metadata or {}).get("uuid", "-")
                        output += f"- {obj.key} [{note_uuid}]: {_preview(obj.content)}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_clear_cloud")
        def notes_clear_cloud(bucket: str) -> str:
            """Delete every note in a bucket. Objects without a uuid are kept.
            Args:
                bucket: Bucket name
            """
            with timed_operation("notes_clear_cloud", bucket=bucket):
                try:
                    deleted = self.service.delete_bucket_notes(bucket)
                    return f"Deleted {deleted} notes from {bucket}"
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Buckets ==========

        @self.mcp.tool(name="notes_create_bucket")
        def notes_create_bucket(bucket: str) -> str:
            """Create a tagged bucket for notes.
            Args:
                bucket: Bucket name
            """
            with timed_operation("notes_create_bucket", bucket=bucket):
                try:
                    self.service.create_bucket(bucket)
                    return f"Bucket {bucket} created"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_delete_bucket")
        def notes_delete_bucket(bucket: str) -> str:
            """Delete an empty bucket.
            Args:
                bucket: Bucket name
            """
            with timed_operation("notes_delete_bucket", bucket=bucket):
                try:
                    self.service.delete_bucket(bucket)
                    return f"Bucket {bucket} deleted"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="notes_list_buckets")
        def notes_list_buckets() -> str:
            """List the buckets created for notes."""
            with timed_operation("notes_list_buckets") as op:
                try:
                    names = self.service.fetch_buckets()
                    op["result_count"] = len(names)
                    if not names:
                        return "No note buckets."
                    return "Note buckets:\n" + "\n".join(f"- {n}" for n in names)
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Search ==========

        @self.mcp.tool(name="notes_search")
        def notes_search(
            query: str,
            bucket: Optional[str] = None,
            limit: int = 10,
        ) -> str:
            """Full-text search over note content.
            Args:
                query: Search terms; FTS5 syntax (AND, OR, NOT, "phrases", prefix*) also works
                bucket: Search this bucket instead of the local notes (optional)
                limit: Maximum number of results (default: 10)
            """
            with timed_operation("notes_search", query=query[:30]) as op:
                try:
                    results = self.service.search_notes(
                        query, local=bucket is None, bucket=bucket, limit=limit
                    )
                    op["result_count"] = len(results)
                    if not results:
                        return f"No notes match '{query}'."
                    output = f"Found {len(results)} matching notes:\n\n"
                    for i, note in enumerate(results, 1):
                        label = f"ID: {note.id}" if note.id else f"UUID: {note.uuid}"
                        output += f"{i}. {note.title} ({label})\n"
                        output += f"   {_preview(note.content)}\n"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        # ========== Commands and status ==========

        @self.mcp.tool(name="notes_execute")
        def notes_execute(command: str, args: str = "") -> str:
            """Run a named note command with JSON arguments.
            Args:
                command: Command name, e.g. create_local_note, fetch_bucket_note
                args: JSON object with the command's arguments
            Returns:
                JSON with "ok", "data" and "error" fields.
            """
            with timed_operation("notes_execute", command=command) as op:
                result = self.dispatcher.execute(command, args)
                op["ok"] = result.ok
                return json.dumps(result.model_dump(), default=str)

        @self.mcp.tool(name="notes_status")
        def notes_status() -> str:
            """Show server metrics: uptime, operation counts and error rates."""
            summary = metrics.get_summary()
            output = "# Custom Notes Status\n\n"
            output += f"**Uptime:** {summary['uptime_seconds']:.0f} seconds\n"
            output += f"**Operations:** {summary['total_operations']}\n"
            output += f"**Success rate:** {summary['overall_success_rate']:.1%}\n"
            op_metrics = metrics.get_metrics()
            if op_metrics:
                output += "\n| Operation | Count | Errors | Avg ms |\n"
                output += "|---|---|---|---|\n"
                for name, m in sorted(op_metrics.items()):
                    output += (
                        f"| {name} | {m['count']} | {m['error_count']} "
                        f"| {m['avg_duration_ms']} |\n"
                    )
            return output

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
