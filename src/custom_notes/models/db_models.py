"""SQLAlchemy database models for the local note store."""
import logging
from typing import Optional

from sqlalchemy import Column, Integer, Text, create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from custom_notes.config import config
from custom_notes.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note.

    `content` holds base64 ciphertext and `nonce` the base64 nonce it was
    sealed with.
    """
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True)
    uuid = Column(Text, nullable=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    nonce = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=True)
    timestamp = Column(Text, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, uuid='{self.uuid}', title='{self.title}')>"


def init_db(database_url: Optional[str] = None) -> Engine:
    """Open the local database and make sure the schema is current.

    The engine holds exactly one connection (StaticPool); the local store
    serializes access to it.

    Raises:
        StorageError: If the database cannot be opened or initialized.
    """
    url = database_url or config.get_db_url()
    try:
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

        Base.metadata.create_all(engine)

        # Run migrations for schema updates
        _migrate_add_nonce_column(engine)
    except SQLAlchemyError as e:
        raise StorageError(
            "Failed to open local database",
            operation="init_db",
            path=url,
            code=ErrorCode.STORAGE_CONNECTION_FAILED,
            original_error=e,
        ) from e

    logger.info(f"Local database ready: {url}")
    return engine


def _migrate_add_nonce_column(engine: Engine) -> None:
    """Migration: add the nonce column to databases created before encryption.

    SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
    the schema first. This is idempotent and safe to run multiple times.
    """
    inspector = inspect(engine)
    columns = [col["name"] for col in inspector.get_columns("notes")]

    if "nonce" not in columns:
        logger.info("Adding nonce column to notes table")
        with engine.connect() as conn:
            conn.execute(text("ALTER TABLE notes ADD COLUMN nonce TEXT"))
            conn.commit()


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
