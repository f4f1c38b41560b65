"""Custom exceptions for Custom Notes.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_TITLE_TOO_LONG = 1003
    NOTE_CONTENT_TOO_LONG = 1004

    # Envelope errors (2xxx)
    ENVELOPE_CORRUPT = 2001
    ENVELOPE_INVALID_NONCE = 2002
    ENVELOPE_DECRYPTION_FAILED = 2003

    # Bucket errors (3xxx)
    BUCKET_ALREADY_EXISTS = 3001
    BUCKET_REQUEST_FAILED = 3002
    BUCKET_TAGGING_FAILED = 3003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004
    CLOUD_REQUEST_FAILED = 4010

    # Bulk operation errors (45xx)
    BULK_OPERATION_FAILED = 4501
    BULK_OPERATION_PARTIAL = 4502

    # Search errors (5xxx)
    SEARCH_FAILED = 5001
    SEARCH_INVALID_QUERY = 5002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    UNKNOWN_COMMAND = 7002
    INVALID_BUCKET_NAME = 7003


class NotesError(Exception):
    """Base exception for all Custom Notes errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoteNotFoundError(NotesError):
    """Raised when no local row or cloud object matches an id or uuid."""

    def __init__(
        self,
        note_id: Any,
        message: Optional[str] = None,
        bucket: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"note_id": note_id}
        if bucket:
            details["bucket"] = bucket
        super().__init__(
            message or f"Note '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details=details
        )
        self.note_id = note_id
        self.bucket = bucket


class ValidationError(NotesError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class NoteValidationError(ValidationError):
    """Raised when note data fails validation before a write."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.NOTE_VALIDATION_FAILED
    ):
        super().__init__(message, field=field, value=value, code=code)


class EnvelopeError(NotesError):
    """Base class for failures opening a stored (nonce, ciphertext) pair."""


class CorruptEnvelopeError(EnvelopeError):
    """Raised when a stored nonce or ciphertext cannot be decoded."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code=ErrorCode.ENVELOPE_CORRUPT, details=details)
        self.field = field


class InvalidNonceError(EnvelopeError):
    """Raised when a nonce is not exactly 12 bytes long."""

    def __init__(self, length: int):
        super().__init__(
            f"Nonce must be 12 bytes, got {length}",
            code=ErrorCode.ENVELOPE_INVALID_NONCE,
            details={"length": length},
        )
        self.length = length


class DecryptionFailedError(EnvelopeError):
    """Raised when ciphertext fails authentication or does not decode."""

    def __init__(self, message: str = "Decryption failed"):
        super().__init__(message, code=ErrorCode.ENVELOPE_DECRYPTION_FAILED)


class StorageError(NotesError):
    """Raised for database or network failures in either store."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages for security
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class BucketError(NotesError):
    """Raised for bucket administration failures."""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUCKET_REQUEST_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if bucket:
            details["bucket"] = bucket
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.bucket = bucket
        self.original_error = original_error


class BucketAlreadyExistsError(BucketError):
    """Raised when creating a bucket that already exists."""

    def __init__(self, bucket: str):
        super().__init__(
            "Bucket already exists",
            bucket=bucket,
            code=ErrorCode.BUCKET_ALREADY_EXISTS,
        )


class SearchError(NotesError):
    """Raised for search-related errors."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        code: ErrorCode = ErrorCode.SEARCH_FAILED
    ):
        details = {}
        if query:
            details["query"] = query[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.query = query


class ConfigurationError(NotesError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class BulkOperationError(NotesError):
    """Raised when some items of a bulk operation failed.

    Every item is attempted before this is raised.

    Attributes:
        operation: Name of the bulk operation (e.g., "send_notes_to_bucket")
        total_count: Total number of items attempted
        success_count: Number of items that succeeded
        failed_ids: List of IDs that failed (full list, not truncated)
        errors: Mapping of failed ID to its error message

    Note:
        The `details` dict contains `failed_ids` truncated to 10 items for
        safe serialization. Access `self.failed_ids` for the complete list.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        total_count: int = 0,
        success_count: int = 0,
        failed_ids: Optional[List[Any]] = None,
        errors: Optional[Dict[Any, str]] = None,
        code: ErrorCode = ErrorCode.BULK_OPERATION_FAILED,
    ):
        if total_count < 0:
            raise ValueError("total_count must be non-negative")
        if success_count < 0:
            raise ValueError("success_count must be non-negative")
        if success_count > total_count:
            raise ValueError("success_count cannot exceed total_count")

        details: Dict[str, Any] = {
            "operation": operation,
            "total_count": total_count,
            "success_count": success_count,
            "failed_count": total_count - success_count
        }
        if failed_ids:
            details["failed_ids"] = failed_ids[:10]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.total_count = total_count
        self.success_count = success_count
        self.failed_ids: List[Any] = list(failed_ids) if failed_ids else []
        self.errors: Dict[Any, str] = dict(errors) if errors else {}

    @property
    def failed_count(self) -> int:
        """Number of items that failed (computed from total - success)."""
        return self.total_count - self.success_count
