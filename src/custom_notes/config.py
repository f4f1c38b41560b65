"""Configuration module for Custom Notes."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from custom_notes import __version__
from custom_notes.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives next to the logs
_USER_ENV = Path.home() / ".custom_notes" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class NotesConfig(BaseModel):
    """Configuration for the notes stores and server."""

    # Local store
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("CUSTOM_NOTES_DATABASE_PATH", str(Path.home() / "notes.db"))
        )
    )
    # Cloud store
    aws_region: str = Field(
        default_factory=lambda: os.getenv("CUSTOM_NOTES_AWS_REGION", "eu-west-3")
    )
    # Custom endpoint for S3-compatible services (MinIO, R2, ...)
    s3_endpoint_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("CUSTOM_NOTES_S3_ENDPOINT_URL") or None
    )
    cloud_page_size: int = Field(
        default_factory=lambda: int(os.getenv("CUSTOM_NOTES_CLOUD_PAGE_SIZE", "10"))
    )
    bucket_tag_key: str = Field(default="App")
    bucket_tag_value: str = Field(
        default_factory=lambda: os.getenv("CUSTOM_NOTES_BUCKET_TAG", "RustCustomNotes")
    )
    # Search
    search_limit: int = Field(
        default_factory=lambda: int(os.getenv("CUSTOM_NOTES_SEARCH_LIMIT", "10"))
    )
    # Note limits
    max_title_length: int = Field(default=100)
    max_content_length: int = Field(default=1_000_000)
    # Server configuration
    server_name: str = Field(
        default_factory=lambda: os.getenv("CUSTOM_NOTES_SERVER_NAME", "custom-notes")
    )
    server_version: str = Field(default=__version__)
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("CUSTOM_NOTES_LOG_DIR"))
            if os.getenv("CUSTOM_NOTES_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "NotesConfig":
        """Reject page sizes and result limits that cannot work."""
        if self.cloud_page_size < 1:
            raise ValueError("cloud_page_size must be >= 1")
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        if self.cloud_page_size > 1000:
            logger.warning(
                "cloud_page_size=%d exceeds the S3 maximum of 1000 keys per page",
                self.cloud_page_size,
            )
        return self

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.database_path.expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


def load_config(**overrides) -> NotesConfig:
    """Build the configuration from the environment plus any overrides.

    Raises:
        ConfigurationError: If a value (usually a CUSTOM_NOTES_* variable)
            cannot be used.
    """
    try:
        return NotesConfig(**overrides)
    except PydanticValidationError as e:
        first = e.errors()[0]
        config_key = str(first["loc"][0]) if first["loc"] else None
        raise ConfigurationError(
            f"Invalid configuration: {first['msg']}", config_key=config_key
        ) from e
    except ValueError as e:
        # Raised by a default_factory, e.g. a non-numeric page size
        raise ConfigurationError(f"Invalid configuration: {e}") from e


# Create a global config instance
config = load_config()
