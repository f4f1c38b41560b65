"""Typed command boundary.

A caller names an operation and passes its arguments as a JSON object (or
a JSON string holding one). Arguments are validated into one request model
per operation before anything reaches the stores, and results come back as
JSON-ready values.
"""
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from custom_notes.exceptions import ErrorCode, NotesError, ValidationError
from custom_notes.models.schema import CloudObject, Note
from custom_notes.services.note_service import NoteService
from custom_notes.utils import strip_quotes

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Every command the boundary accepts."""
    CREATE_LOCAL_NOTE = "create_local_note"
    GET_LOCAL_NOTE = "get_local_note"
    UPDATE_LOCAL_NOTE = "update_local_note"
    DELETE_LOCAL_NOTE = "delete_local_note"
    GET_LOCAL_NOTES = "get_local_notes"
    DELETE_ALL_LOCAL_NOTES = "delete_all_local_notes"
    CREATE_BUCKET = "create_bucket"
    FETCH_BUCKETS = "fetch_buckets"
    DELETE_BUCKET = "delete_bucket"
    UPLOAD_NOTE_TO_BUCKET = "upload_note_to_bucket"
    FETCH_BUCKET_NOTE = "fetch_bucket_note"
    UPDATE_BUCKET_NOTE = "update_bucket_note"
    DELETE_BUCKET_NOTE = "delete_bucket_note"
    FETCH_BUCKET_NOTES = "fetch_bucket_notes"
    DELETE_BUCKET_NOTES = "delete_bucket_notes"
    SEARCH_NOTES = "search_notes"
    SEND_NOTES_TO_BUCKET = "send_notes_to_bucket"


class Request(BaseModel):
    """Base for request models; unknown arguments are rejected."""

    model_config = {"extra": "forbid"}


class BucketRequest(Request):
    bucket_name: str = Field(..., min_length=1)

    @field_validator("bucket_name")
    @classmethod
    def _strip_quotes(cls, v: str) -> str:
        stripped = strip_quotes(v)
        if not stripped:
            raise ValueError("bucket_name must not be empty")
        return stripped


class CreateLocalNote(Request):
    title: str
    content: str


class GetLocalNote(Request):
    id: int


class UpdateLocalNote(Request):
    note: Note


class DeleteLocalNote(Request):
    id: int


class GetLocalNotes(Request):
    pass


class DeleteAllLocalNotes(Request):
    pass


class CreateBucket(BucketRequest):
    pass


class FetchBuckets(Request):
    pass


class DeleteBucket(BucketRequest):
    pass


class UploadNoteToBucket(BucketRequest):
    note: Note


class FetchBucketNote(BucketRequest):
    uuid: str


class UpdateBucketNote(BucketRequest):
    note: Note


class DeleteBucketNote(BucketRequest):
    uuid: str


class FetchBucketNotes(BucketRequest):
    pass


class DeleteBucketNotes(BucketRequest):
    pass


class SearchNotes(Request):
    query: str
    local: bool = True
    bucket_name: Optional[str] = None

    @field_validator("bucket_name")
    @classmethod
    def _strip_quotes(cls, v: Optional[str]) -> Optional[str]:
        return strip_quotes(v) if v is not None else None


class SendNotesToBucket(BucketRequest):
    note_ids: List[int] = Field(..., min_length=1)


REQUEST_MODELS: Dict[Operation, Type[Request]] = {
    Operation.CREATE_LOCAL_NOTE: CreateLocalNote,
    Operation.GET_LOCAL_NOTE: GetLocalNote,
    Operation.UPDATE_LOCAL_NOTE: UpdateLocalNote,
    Operation.DELETE_LOCAL_NOTE: DeleteLocalNote,
    Operation.GET_LOCAL_NOTES: GetLocalNotes,
    Operation.DELETE_ALL_LOCAL_NOTES: DeleteAllLocalNotes,
    Operation.CREATE_BUCKET: CreateBucket,
    Operation.FETCH_BUCKETS: FetchBuckets,
    Operation.DELETE_BUCKET: DeleteBucket,
    Operation.UPLOAD_NOTE_TO_BUCKET: UploadNoteToBucket,
    Operation.FETCH_BUCKET_NOTE: FetchBucketNote,
    Operation.UPDATE_BUCKET_NOTE: UpdateBucketNote,
    Operation.DELETE_BUCKET_NOTE: DeleteBucketNote,
    Operation.FETCH_BUCKET_NOTES: FetchBucketNotes,
    Operation.DELETE_BUCKET_NOTES: DeleteBucketNotes,
    Operation.SEARCH_NOTES: SearchNotes,
    Operation.SEND_NOTES_TO_BUCKET: SendNotesToBucket,
}

OPERATION_FOR_MODEL: Dict[Type[Request], Operation] = {
    model: op for op, model in REQUEST_MODELS.items()
}


def _load_args(args: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Accept arguments as a dict, a JSON object string or nothing."""
    if args is None:
        return {}
    if isinstance(args, str):
        if not args.strip():
            return {}
        try:
            args = json.loads(args)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Arguments are not valid JSON: {e.msg}", field="args"
            ) from e
    if not isinstance(args, dict):
        raise ValidationError("Arguments must be a JSON object", field="args")
    return args


def parse_command(
    command: str, args: Union[str, Dict[str, Any], None] = None
) -> Request:
    """Validate a named command and its arguments into a typed request.

    Raises:
        ValidationError: If the command is unknown or the arguments do not
            fit its request model.
    """
    try:
        operation = Operation(command)
    except ValueError:
        raise ValidationError(
            f"Unknown command: {command}",
            field="command",
            value=command,
            code=ErrorCode.UNKNOWN_COMMAND,
        ) from None

    model = REQUEST_MODELS[operation]
    try:
        return model.model_validate(_load_args(args))
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(
            f"Invalid arguments for {operation.value}: {problems}",
            field="args",
        ) from e


def _note_out(note: Note) -> Dict[str, Any]:
    return note.model_dump()


def _cloud_object_out(obj: CloudObject) -> Dict[str, Any]:
    return obj._asdict()


class CommandResult(BaseModel):
    """Outcome of execute(): `data` on success, `error` otherwise."""

    ok: bool
    data: Any = None
    error: Optional[str] = None


class CommandDispatcher:
    """Route typed requests to the note service."""

    def __init__(self, service: NoteService):
        self.service = service
        self._handlers: Dict[Operation, Callable[[Any], Any]] = {
            Operation.CREATE_LOCAL_NOTE: self._create_local_note,
            Operation.GET_LOCAL_NOTE: lambda r: _note_out(
                self.service.get_local_note(r.id)
            ),
            Operation.UPDATE_LOCAL_NOTE: lambda r: _note_out(
                self.service.update_local_note(r.note)
            ),
            Operation.DELETE_LOCAL_NOTE: lambda r: self.service.delete_local_note(r.id),
            Operation.GET_LOCAL_NOTES: lambda r: [
                _note_out(n) for n in self.service.get_local_notes()
            ],
            Operation.DELETE_ALL_LOCAL_NOTES: lambda r: self.service.delete_all_local_notes(),
            Operation.CREATE_BUCKET: lambda r: self.service.create_bucket(r.bucket_name),
            Operation.FETCH_BUCKETS: lambda r: self.service.fetch_buckets(),
            Operation.DELETE_BUCKET: lambda r: self.service.delete_bucket(r.bucket_name),
            Operation.UPLOAD_NOTE_TO_BUCKET: lambda r: self.service.upload_note_to_bucket(
                r.bucket_name, r.note
            ),
            Operation.FETCH_BUCKET_NOTE: lambda r: _note_out(
                self.service.fetch_bucket_note(r.bucket_name, r.uuid)
            ),
            Operation.UPDATE_BUCKET_NOTE: lambda r: self.service.update_bucket_note(
                r.bucket_name, r.note
            ),
            Operation.DELETE_BUCKET_NOTE: lambda r: self.service.delete_bucket_note(
                r.bucket_name, r.uuid
            ),
            Operation.FETCH_BUCKET_NOTES: lambda r: [
                _cloud_object_out(o)
                for o in self.service.fetch_bucket_notes(r.bucket_name)
            ],
            Operation.DELETE_BUCKET_NOTES: lambda r: self.service.delete_bucket_notes(
                r.bucket_name
            ),
            Operation.SEARCH_NOTES: lambda r: [
                _note_out(n)
                for n in self.service.search_notes(
                    r.query, local=r.local, bucket=r.bucket_name
                )
            ],
            Operation.SEND_NOTES_TO_BUCKET: lambda r: self.service.send_notes_to_bucket(
                r.bucket_name, r.note_ids
            ),
        }

    def _create_local_note(self, request: CreateLocalNote) -> Dict[str, Any]:
        note = self.service.create_local_note(request.title, request.content)
        return _note_out(note)

    def dispatch(self, request: Request) -> Any:
        """Run a validated request and return its JSON-ready result.

        Domain errors propagate as NotesError subclasses.
        """
        operation = OPERATION_FOR_MODEL[type(request)]
        logger.debug(f"Dispatching {operation.value}")
        return self._handlers[operation](request)

    def execute(
        self, command: str, args: Union[str, Dict[str, Any], None] = None
    ) -> CommandResult:
        """Parse and run a named command, turning domain errors into messages."""
        try:
            data = self.dispatch(parse_command(command, args))
        except NotesError as e:
            logger.info(f"Command {command} failed: {e}")
            return CommandResult(ok=False, error=e.message)
        return CommandResult(ok=True, data=data)
