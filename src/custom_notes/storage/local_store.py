"""Local note store backed by a single SQLite file."""

import logging
import threading
import uuid as uuid_lib
from typing import Any, Callable, List, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from custom_notes.envelope import CipherEnvelope, cipher
from custom_notes.exceptions import (
    ErrorCode,
    NoteNotFoundError,
    NoteValidationError,
    StorageError,
)
from custom_notes.models.db_models import DBNote, get_session_factory, init_db
from custom_notes.models.schema import (
    Note,
    rfc3339_now,
    unix_now,
    validate_note_lengths,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalStore:
    """CRUD over the local `notes` table.

    Content is sealed on the way in and opened on the way out. Every
    operation runs under one lock around the engine's single connection,
    so at most one local operation is in flight per store.

    Args:
        engine: Engine returned by init_db(). When None, the database at
            `database_url` (or the configured path) is opened.
        database_url: SQLAlchemy URL used when no engine is given.
        envelope: Cipher used to seal and open content.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        database_url: Optional[str] = None,
        envelope: Optional[CipherEnvelope] = None,
    ):
        self.engine = engine if engine is not None else init_db(database_url)
        self.session_factory = get_session_factory(self.engine)
        self.envelope = envelope or cipher
        self._lock = threading.Lock()

    def _run(self, operation: str, code: ErrorCode, work: Callable[[Session], T]) -> T:
        """Run `work` in a session under the store lock, wrapping DB errors."""
        with self._lock:
            try:
                with self.session_factory() as session:
                    return work(session)
            except SQLAlchemyError as e:
                logger.error(f"Local store {operation} failed: {e}")
                raise StorageError(
                    f"Local store {operation} failed",
                    operation=operation,
                    code=code,
                    original_error=e,
                ) from e

    def _open_row(self, row: DBNote) -> Note:
        """Convert a row to a Note with plaintext content."""
        plaintext = self.envelope.open_encoded(row.content, row.nonce)
        return Note(
            id=row.id,
            uuid=row.uuid,
            title=row.title,
            content=plaintext,
            nonce=row.nonce,
            created_at=row.created_at,
            updated_at=row.updated_at,
            timestamp=row.timestamp,
        )

    @staticmethod
    def _stored_form(row: DBNote) -> Note:
        """Convert a row to a Note carrying the stored ciphertext."""
        return Note(
            id=row.id,
            uuid=row.uuid,
            title=row.title,
            content=row.content,
            nonce=row.nonce,
            created_at=row.created_at,
            updated_at=row.updated_at,
            timestamp=row.timestamp,
        )

    def create(self, title: str, content: str) -> Note:
        """Seal and insert a new note.

        Returns:
            The stored note: assigned id and uuid, base64 ciphertext in
            `content` and its nonce. Use read() to get plaintext back.

        Raises:
            NoteValidationError: If the title or content is too long.
        """
        validate_note_lengths(title, content)
        sealed = self.envelope.seal_encoded(content)
        row = DBNote(
            uuid=str(uuid_lib.uuid4()),
            title=title,
            content=sealed.ciphertext,
            nonce=sealed.nonce,
            created_at=unix_now(),
            updated_at=None,
            timestamp=rfc3339_now(),
        )

        def work(session: Session) -> Note:
            session.add(row)
            session.commit()
            return self._stored_form(row)

        note = self._run("create", ErrorCode.STORAGE_WRITE_FAILED, work)
        logger.debug(f"Created local note {note.id} ({note.uuid})")
        return note

    def read(self, id: int) -> Note:
        """Get a note by id with its content decrypted.

        Raises:
            NoteNotFoundError: If no row has this id.
            EnvelopeError: If the stored nonce or ciphertext is unusable.
        """
        row = self._run(
            "read",
            ErrorCode.STORAGE_READ_FAILED,
            lambda session: session.get(DBNote, id),
        )
        if row is None:
            raise NoteNotFoundError(id)
        return self._open_row(row)

    def get_uuid(self, id: int) -> str:
        """Get the uuid of a local note without decrypting it."""
        note_uuid = self._run(
            "read",
            ErrorCode.STORAGE_READ_FAILED,
            lambda session: session.scalar(select(DBNote.uuid).where(DBNote.id == id)),
        )
        if note_uuid is None:
            raise NoteNotFoundError(id)
        return note_uuid

    def update(self, note: Note) -> Note:
        """Re-seal a note's content under a new nonce and overwrite its row.

        `uuid` and `created_at` are never changed.

        Returns:
            The stored note (ciphertext and new nonce).

        Raises:
            NoteValidationError: If the note has no id or is too long.
            NoteNotFoundError: If no row has the note's id.
        """
        validate_note_lengths(note.title, note.content)
        if note.id is None:
            raise NoteValidationError("Note id is required for update", field="id")
        sealed = self.envelope.seal_encoded(note.content)

        def work(session: Session) -> Optional[Note]:
            row = session.get(DBNote, note.id)
            if row is None:
                return None
            row.title = note.title
            row.content = sealed.ciphertext
            row.nonce = sealed.nonce
            row.updated_at = unix_now()
            row.timestamp = rfc3339_now()
            session.commit()
            return self._stored_form(row)

        updated = self._run("update", ErrorCode.STORAGE_WRITE_FAILED, work)
        if updated is None:
            raise NoteNotFoundError(note.id)
        return updated

    def delete(self, id: int) -> None:
        """Delete a note. Deleting an id that does not exist is not an error."""

        def work(session: Session) -> Any:
            result = session.execute(delete(DBNote).where(DBNote.id == id))
            session.commit()
            return result.rowcount

        removed = self._run("delete", ErrorCode.STORAGE_DELETE_FAILED, work)
        if not removed:
            logger.debug(f"Delete of local note {id}: no such row")

    def list(self) -> List[Note]:
        """Get every note, decrypted, in id order.

        The first row that cannot be opened aborts the whole listing.
        """
        rows = self._run(
            "list",
            ErrorCode.STORAGE_READ_FAILED,
            lambda session: session.scalars(select(DBNote).order_by(DBNote.id)).all(),
        )
        return [self._open_row(row) for row in rows]

    def clear(self) -> None:
        """Delete every note."""

        def work(session: Session) -> None:
            session.execute(delete(DBNote))
            session.commit()

        self._run("clear", ErrorCode.STORAGE_DELETE_FAILED, work)
        logger.info("Cleared all local notes")

    def close(self) -> None:
        """Release the database connection."""
        self.engine.dispose()
