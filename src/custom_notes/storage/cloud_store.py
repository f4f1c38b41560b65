"""Cloud note store backed by an S3 bucket.

Each note is one object named "{title}.txt". Its body is the raw
ciphertext (tag appended) and its identity and timing travel as user
metadata: uuid, timestamp, created_at, updated_at and nonce.

Because keys are derived from titles, the uuid metadata is the only way to
find a note by identity. Lookups enumerate the bucket and compare metadata
one object at a time.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Protocol

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from custom_notes.config import config
from custom_notes.envelope import CipherEnvelope, cipher, decode_field, encode_field
from custom_notes.exceptions import (
    CorruptEnvelopeError,
    ErrorCode,
    NoteNotFoundError,
    NoteValidationError,
    StorageError,
)
from custom_notes.models.schema import (
    NO_UPDATE_SENTINEL,
    CloudObject,
    Note,
    parse_unix,
    rfc3339_now,
    unix_now,
    validate_note_lengths,
)
from custom_notes.storage.local_store import LocalStore
from custom_notes.utils import object_key_for_title, title_from_object_key

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain"


def make_s3_client(
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> Any:
    """Create a boto3 S3 client from configuration.

    Requests are attempted once; retrying is left to the caller.
    """
    boto_config = BotoConfig(
        signature_version="s3v4",
        region_name=region or config.aws_region,
        retries={"max_attempts": 1, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url or config.s3_endpoint_url,
        config=boto_config,
    )


@contextmanager
def cloud_errors(operation: str, bucket: str) -> Iterator[None]:
    """Wrap botocore failures in StorageError."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Cloud {operation} on bucket '{bucket}' failed: {e}")
        raise StorageError(
            f"Cloud {operation} failed",
            operation=operation,
            path=bucket,
            code=ErrorCode.CLOUD_REQUEST_FAILED,
            original_error=e,
        ) from e


def iter_object_keys(client: Any, bucket: str, page_size: int) -> Iterator[Dict[str, Any]]:
    """Yield every object summary in a bucket, page by page."""
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(
        Bucket=bucket, PaginationConfig={"PageSize": page_size}
    ):
        for summary in page.get("Contents", []):
            yield summary


@dataclass(frozen=True)
class LocatedObject:
    """A bucket object matched by uuid, with the metadata it was matched on."""

    key: str
    metadata: Dict[str, str]


class NoteLocator(Protocol):
    """Finds the object holding a note, by uuid."""

    def locate(self, bucket: str, uuid: str) -> Optional[LocatedObject]:
        ...


class MetadataScanLocator:
    """Locate notes by reading the metadata of every object in the bucket.

    O(n) HEAD requests per lookup; the first object whose `uuid` metadata
    matches wins.
    """

    def __init__(self, client: Any, page_size: Optional[int] = None):
        self.client = client
        self.page_size = page_size or config.cloud_page_size

    def locate(self, bucket: str, uuid: str) -> Optional[LocatedObject]:
        with cloud_errors("locate", bucket):
            for summary in iter_object_keys(self.client, bucket, self.page_size):
                key = summary["Key"]
                head = self.client.head_object(Bucket=bucket, Key=key)
                metadata = head.get("Metadata") or {}
                if metadata.get("uuid") == uuid:
                    return LocatedObject(key=key, metadata=metadata)
        return None


class CloudStore:
    """One S3 object per note, addressed by title, identified by uuid metadata.

    Calls are not synchronized: concurrent writes to the same object race
    and the last one wins.

    Args:
        local_store: Used to look up the uuid of a note being uploaded.
        client: boto3 S3 client. Built from configuration when None.
        envelope: Cipher used to seal and open object bodies.
        locator: Strategy for finding an object by uuid.
        page_size: Keys requested per listing page.
    """

    def __init__(
        self,
        local_store: LocalStore,
        client: Optional[Any] = None,
        envelope: Optional[CipherEnvelope] = None,
        locator: Optional[NoteLocator] = None,
        page_size: Optional[int] = None,
    ):
        self.local_store = local_store
        self.client = client if client is not None else make_s3_client()
        self.envelope = envelope or cipher
        self.page_size = page_size or config.cloud_page_size
        self.locator = locator or MetadataScanLocator(self.client, self.page_size)

    def _put(
        self, bucket: str, key: str, plaintext: str, metadata: Dict[str, str]
    ) -> None:
        """Seal plaintext under a fresh nonce and write it as `key`."""
        sealed = self.envelope.seal(plaintext)
        metadata = dict(metadata, nonce=encode_field(sealed.nonce))
        with cloud_errors("put_object", bucket):
            self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=sealed.ciphertext,
                ContentType=CONTENT_TYPE,
                Metadata=metadata,
            )

    def _open_body(self, body: bytes, metadata: Dict[str, str]) -> str:
        """Decrypt an object body with the nonce carried in its metadata."""
        if "nonce" not in metadata:
            raise CorruptEnvelopeError("Object metadata has no nonce", field="nonce")
        nonce = decode_field(metadata["nonce"], "nonce")
        return self.envelope.open(body, nonce)

    def _require(self, bucket: str, uuid: str) -> LocatedObject:
        located = self.locator.locate(bucket, uuid)
        if located is None:
            raise NoteNotFoundError(uuid, bucket=bucket)
        return located

    def upload(self, bucket: str, note: Note) -> None:
        """Export a locally stored note to the bucket.

        The uuid is read from the local store by the note's id, so only
        notes that exist locally can be uploaded.

        Raises:
            NoteValidationError: If the note is too long or has no local id.
            NoteNotFoundError: If the local note does not exist.
        """
        validate_note_lengths(note.title, note.content)
        if note.id is None:
            raise NoteValidationError(
                "Note must be saved locally before it can be uploaded", field="id"
            )
        note_uuid = self.local_store.get_uuid(note.id)
        key = object_key_for_title(note.title)
        metadata = {
            "uuid": note_uuid,
            "timestamp": rfc3339_now(),
            "created_at": str(note.created_at),
            "updated_at": str(note.updated_at or 0),
        }
        self._put(bucket, key, note.content, metadata)
        logger.info(f"Uploaded note {note.id} ({note_uuid}) to {bucket}/{key}")

    def fetch_by_uuid(self, bucket: str, uuid: str) -> Note:
        """Find and decrypt the note with this uuid.

        The returned note has no local id and its `updated_at` is the
        fetch time.

        Raises:
            NoteNotFoundError: If no object carries this uuid.
        """
        located = self._require(bucket, uuid)
        with cloud_errors("get_object", bucket):
            response = self.client.get_object(Bucket=bucket, Key=located.key)
            body = response["Body"].read()
        metadata = response.get("Metadata") or located.metadata
        content = self._open_body(body, metadata)
        return Note(
            id=None,
            uuid=uuid,
            title=title_from_object_key(located.key),
            content=content,
            nonce=metadata.get("nonce"),
            created_at=parse_unix(metadata.get("created_at")),
            updated_at=unix_now(),
            timestamp=metadata.get("timestamp"),
        )

    def update_by_uuid(self, bucket: str, note: Note) -> None:
        """Re-seal a note's content and overwrite its object in place.

        The object keeps its key even if the title changed.

        Raises:
            NoteValidationError: If the note is too long or has no uuid.
            NoteNotFoundError: If no object carries the note's uuid.
        """
        validate_note_lengths(note.title, note.content)
        if not note.uuid:
            raise NoteValidationError("Note uuid is required", field="uuid")
        located = self._require(bucket, note.uuid)
        metadata = {
            "uuid": note.uuid,
            "timestamp": rfc3339_now(),
            "created_at": located.metadata.get("created_at", str(note.created_at)),
            "updated_at": str(unix_now()),
        }
        self._put(bucket, located.key, note.content, metadata)
        logger.info(f"Updated cloud note {note.uuid} at {bucket}/{located.key}")

    def delete_by_uuid(self, bucket: str, uuid: str) -> None:
        """Delete the object carrying this uuid.

        Raises:
            NoteNotFoundError: If no object carries this uuid.
        """
        located = self._require(bucket, uuid)
        with cloud_errors("delete_object", bucket):
            self.client.delete_object(Bucket=bucket, Key=located.key)
        logger.info(f"Deleted cloud note {uuid} ({bucket}/{located.key})")

    def list(self, bucket: str) -> List[CloudObject]:
        """Download and decrypt every object in the bucket.

        Any object whose nonce is missing, malformed or does not open its
        body aborts the whole listing.
        """
        objects: List[CloudObject] = []
        with cloud_errors("list", bucket):
            for summary in iter_object_keys(self.client, bucket, self.page_size):
                key = summary["Key"]
                response = self.client.get_object(Bucket=bucket, Key=key)
                body = response["Body"].read()
                metadata = response.get("Metadata")
                last_modified = response.get("LastModified")
                if hasattr(last_modified, "isoformat"):
                    last_modified = last_modified.isoformat()
                objects.append(
                    CloudObject(
                        key=key,
                        last_modified=last_modified,
                        metadata=metadata,
                        content=self._open_body(body, metadata or {}),
                    )
                )
        logger.debug(f"Listed {len(objects)} objects in {bucket}")
        return objects

    def delete_all(self, bucket: str) -> int:
        """Delete every note object in the bucket.

        Objects without uuid metadata are left alone.

        Returns:
            Number of objects deleted.
        """
        deleted = 0
        for obj in self.list(bucket):
            note_uuid = (obj.metadata or {}).get("uuid")
            if note_uuid is None:
                logger.debug(f"Skipping {obj.key}: no uuid metadata")
                continue
            self.delete_by_uuid(bucket, note_uuid)
            deleted += 1
        logger.info(f"Deleted {deleted} notes from {bucket}")
        return deleted


def cloud_object_to_note(obj: CloudObject) -> Note:
    """Remap a listing entry into a note-shaped record.

    Fields the listing does not carry get zero/empty defaults; the local id
    is always 0.
    """
    metadata = obj.metadata or {}
    updated_at = metadata.get("updated_at")
    return Note(
        id=0,
        uuid=metadata.get("uuid", ""),
        title=title_from_object_key(obj.key),
        content=obj.content,
        nonce=metadata.get("nonce"),
        created_at=parse_unix(metadata.get("created_at")),
        updated_at=(
            None
            if updated_at in (None, NO_UPDATE_SENTINEL)
            else parse_unix(updated_at)
        ),
        timestamp=metadata.get("timestamp"),
    )
