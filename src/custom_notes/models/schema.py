"""Data models for Custom Notes."""

import datetime
from datetime import timezone
from typing import Dict, NamedTuple, Optional

from pydantic import BaseModel, Field

from custom_notes.config import config
from custom_notes.exceptions import ErrorCode, NoteValidationError

# Sentinel written to cloud metadata when a note was never updated
NO_UPDATE_SENTINEL = "0"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def unix_now() -> int:
    """Current time as an integer Unix timestamp."""
    return int(utc_now().timestamp())


def rfc3339_now() -> str:
    """Current time as an RFC 3339 string, e.g. 2024-05-05T02:51:00.732617+00:00."""
    return utc_now().isoformat()


def parse_unix(value: Optional[str], default: int = 0) -> int:
    """Parse a decimal timestamp string from object metadata."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def validate_note_lengths(title: str, content: str) -> None:
    """Check note size limits before any write.

    Raises:
        NoteValidationError: If the title or content is too long.
    """
    if len(title) > config.max_title_length:
        raise NoteValidationError(
            "Title too long",
            field="title",
            value=len(title),
            code=ErrorCode.NOTE_TITLE_TOO_LONG,
        )
    if len(content) > config.max_content_length:
        raise NoteValidationError(
            "Content too long",
            field="content",
            value=len(content),
            code=ErrorCode.NOTE_CONTENT_TOO_LONG,
        )


class Note(BaseModel):
    """A note, from either store.

    `content` holds plaintext when the note was read back through a store,
    and the stored base64 ciphertext on the values returned by local
    create/update.
    """

    id: Optional[int] = Field(default=None, description="Local row id")
    uuid: Optional[str] = Field(default=None, description="Cross-store identity")
    title: str = Field(..., description="Title, also the cloud object name")
    content: str = Field(..., description="Note body")
    nonce: Optional[str] = Field(
        default=None, description="Base64 nonce of the stored ciphertext"
    )
    created_at: int = Field(default=0, description="Unix creation time")
    updated_at: Optional[int] = Field(
        default=None, description="Unix time of the last update"
    )
    timestamp: Optional[str] = Field(
        default=None, description="RFC 3339 time of the last write"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    def validate_lengths(self) -> None:
        """Apply the write-time size limits to this note."""
        validate_note_lengths(self.title, self.content)


class CloudObject(NamedTuple):
    """One entry of a bucket listing, with its content already decrypted."""

    key: str
    last_modified: Optional[str]
    metadata: Optional[Dict[str, str]]
    content: str
