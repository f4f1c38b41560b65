"""Full-text search across either note store.

Every search takes a fresh snapshot of one store, loads it into an
in-memory SQLite FTS5 table, runs the query against the `content` column
and throws the index away. Nothing is cached between calls.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.exc import OperationalError as SQLAlchemyOperationalError
from sqlalchemy.pool import StaticPool

from custom_notes.config import config
from custom_notes.exceptions import ErrorCode, SearchError, ValidationError
from custom_notes.models.schema import Note
from custom_notes.storage.cloud_store import CloudStore, cloud_object_to_note
from custom_notes.storage.local_store import LocalStore
from custom_notes.utils import escape_like_pattern

logger = logging.getLogger(__name__)

_FTS_KEYWORDS = {"AND", "OR", "NOT", "NEAR"}

_CREATE_FTS_TABLE = """
    CREATE VIRTUAL TABLE notes_fts USING fts5(
        title,
        content,
        note_id UNINDEXED,
        uuid UNINDEXED,
        created_at UNINDEXED,
        updated_at UNINDEXED,
        timestamp UNINDEXED
    )
"""

_CREATE_PLAIN_TABLE = """
    CREATE TABLE notes_fts (
        title TEXT,
        content TEXT,
        note_id INTEGER,
        uuid TEXT,
        created_at INTEGER,
        updated_at INTEGER,
        timestamp TEXT
    )
"""

_INSERT_ROW = text("""
    INSERT INTO notes_fts (title, content, note_id, uuid, created_at, updated_at, timestamp)
    VALUES (:title, :content, :note_id, :uuid, :created_at, :updated_at, :timestamp)
""")


def _should_escape(query: str) -> bool:
    """Auto-detect whether a query is plain terms or uses FTS5 syntax.

    Operators only count in upper case, and `word:` only counts as a column
    filter when `word` is an indexed column.
    """
    words = query.split()
    if any(kw in words for kw in _FTS_KEYWORDS):
        return False
    if query.count('"') >= 2:
        return False
    if re.search(r"\b\w+\*", query):
        return False
    if re.search(r"\b(?:title|content)\s*:", query):
        return False
    return True


def _query_terms(query: str) -> List[str]:
    return re.findall(r"\w+", query)


def build_match_expression(query: str) -> Optional[str]:
    """Turn a user query into an FTS5 expression scoped to `content`.

    Plain queries match any of their terms. Queries already written in
    FTS5 syntax (AND/OR/NOT/NEAR, phrases, prefixes) are used as given.

    Returns:
        The MATCH expression, or None if the query has no terms.
    """
    if not query.strip():
        return None
    if _should_escape(query):
        terms = _query_terms(query)
        if not terms:
            return None
        expression = " OR ".join(f'"{term}"' for term in terms)
    else:
        expression = query
    return f"content : ({expression})"


class NoteIndex:
    """In-memory full-text index over a snapshot of notes.

    `title` and `content` are indexed; id, uuid and the timestamps are only
    stored, so hits can be rebuilt into notes without going back to a store.
    Falls back to LIKE matching when SQLite was built without FTS5.
    """

    def __init__(self, notes: Iterable[Note]):
        self.engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        self.fts_available = True
        self.size = 0
        rows = [self._to_row(note) for note in notes]
        try:
            with self.engine.begin() as conn:
                self._create_table(conn)
                if rows:
                    conn.execute(_INSERT_ROW, rows)
        except SQLAlchemyDatabaseError as e:
            self.engine.dispose()
            raise SearchError(
                f"Failed to build search index: {e}",
                code=ErrorCode.SEARCH_FAILED,
            ) from e
        self.size = len(rows)

    def _create_table(self, conn: Connection) -> None:
        try:
            conn.execute(text(_CREATE_FTS_TABLE))
        except SQLAlchemyOperationalError as e:
            logger.warning(f"FTS5 unavailable ({e}). Using fallback search.")
            self.fts_available = False
            conn.execute(text(_CREATE_PLAIN_TABLE))

    @staticmethod
    def _to_row(note: Note) -> Dict[str, Any]:
        return {
            "title": note.title,
            "content": note.content,
            "note_id": note.id,
            "uuid": note.uuid,
            "created_at": note.created_at,
            "updated_at": note.updated_at,
            "timestamp": note.timestamp,
        }

    @staticmethod
    def _to_note(row: Any) -> Note:
        """Rebuild a note from stored index fields, defaulting what is absent."""
        return Note(
            id=int(row.note_id or 0),
            uuid=row.uuid or "",
            title=row.title or "",
            content=row.content or "",
            created_at=int(row.created_at or 0),
            updated_at=int(row.updated_at) if row.updated_at is not None else None,
            timestamp=row.timestamp,
        )

    def search(self, query: str, limit: int = 10) -> List[Note]:
        """Rank notes against the query and return the best `limit` hits."""
        if not self.fts_available:
            return self._fallback_text_search(query, limit)

        expression = build_match_expression(query)
        if expression is None:
            return []

        sql = text("""
            SELECT note_id, uuid, title, content, created_at, updated_at, timestamp,
                   bm25(notes_fts) AS rank
            FROM notes_fts
            WHERE notes_fts MATCH :query
            ORDER BY rank
            LIMIT :limit
        """)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(sql, {"query": expression, "limit": limit}).fetchall()
        except (SQLAlchemyOperationalError, SQLAlchemyDatabaseError) as e:
            raise SearchError(
                f"Invalid search query: {e.orig if hasattr(e, 'orig') else e}",
                query=query,
                code=ErrorCode.SEARCH_INVALID_QUERY,
            ) from e
        return [self._to_note(row) for row in rows]

    def _fallback_text_search(self, query: str, limit: int) -> List[Note]:
        """LIKE-based matching on content, ranked by number of matching terms."""
        terms = _query_terms(query)
        terms = [t for t in terms if t.upper() not in _FTS_KEYWORDS]
        if not terms:
            return []

        clauses = []
        params: Dict[str, Any] = {"limit": limit}
        for i, term in enumerate(terms):
            params[f"term{i}"] = f"%{escape_like_pattern(term)}%"
            clauses.append(f"(content LIKE :term{i} ESCAPE '\\')")
        score = " + ".join(clauses)
        sql = text(f"""
            SELECT note_id, uuid, title, content, created_at, updated_at, timestamp,
                   ({score}) AS matches
            FROM notes_fts
            WHERE {" OR ".join(clauses)}
            ORDER BY matches DESC, rowid
            LIMIT :limit
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        logger.debug(f"Fallback search returned {len(rows)} results for query '{query}'")
        return [self._to_note(row) for row in rows]

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "NoteIndex":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SearchService:
    """Search notes held in the local store or in one bucket.

    Args:
        local_store: Source for local searches.
        cloud_store: Source for bucket searches. Optional when only local
            searches are made.
    """

    def __init__(
        self,
        local_store: LocalStore,
        cloud_store: Optional[CloudStore] = None,
    ):
        self.local_store = local_store
        self.cloud_store = cloud_store

    def initialize(self) -> None:
        """Initialize the service (no persistent state to prepare)."""
        logger.debug("SearchService ready")

    def snapshot(self, local: bool = True, bucket: Optional[str] = None) -> List[Note]:
        """Materialize every note of the chosen backend."""
        if local:
            return self.local_store.list()
        if not bucket:
            raise ValidationError(
                "A bucket name is required for cloud searches", field="bucket"
            )
        if self.cloud_store is None:
            raise ValidationError(
                "Cloud search requested but no cloud store is configured",
                field="bucket",
                value=bucket,
            )
        return [cloud_object_to_note(obj) for obj in self.cloud_store.list(bucket)]

    def search(
        self,
        query: str,
        local: bool = True,
        bucket: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Note]:
        """Search one backend's note content.

        Args:
            query: Terms, or FTS5 boolean/phrase syntax.
            local: Search the local store when True, else `bucket`.
            bucket: Bucket to search; required when `local` is False.
            limit: Maximum hits (defaults to config.search_limit).

        Returns:
            Matching notes, best first, rebuilt from the index.

        Raises:
            ValidationError: If a cloud search has no bucket.
            SearchError: If the query syntax is invalid.
        """
        if not local and not bucket:
            raise ValidationError(
                "A bucket name is required for cloud searches", field="bucket"
            )
        notes = self.snapshot(local=local, bucket=bucket)
        with NoteIndex(notes) as index:
            results = index.search(query, limit or config.search_limit)
        logger.debug(
            f"Search '{query[:50]}' over {len(notes)} "
            f"{'local' if local else bucket} notes: {len(results)} hits"
        )
        return results
