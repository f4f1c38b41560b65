"""Service layer for note operations across the local and cloud stores."""

import logging
from typing import Any, List, Optional

from custom_notes.exceptions import (
    BulkOperationError,
    ErrorCode,
    NotesError,
    ValidationError,
)
from custom_notes.models.schema import CloudObject, Note
from custom_notes.services.search_service import SearchService
from custom_notes.storage.buckets import BucketAdmin
from custom_notes.storage.cloud_store import CloudStore, make_s3_client
from custom_notes.storage.local_store import LocalStore
from custom_notes.utils import strip_quotes

logger = logging.getLogger(__name__)


class NoteService:
    """One entry point per user-facing note command."""

    def __init__(
        self,
        local_store: Optional[LocalStore] = None,
        cloud_store: Optional[CloudStore] = None,
        bucket_admin: Optional[BucketAdmin] = None,
        search_service: Optional[SearchService] = None,
        s3_client: Optional[Any] = None,
        engine: Optional[Any] = None,
    ):
        """Initialize the service.

        Args:
            local_store: Local backend. Created from `engine` (or the
                configured database) if None.
            cloud_store: Cloud backend. Created on `s3_client` if None.
            bucket_admin: Bucket administration. Created on `s3_client` if None.
            search_service: Search over both stores. Created if None.
            s3_client: boto3 S3 client shared by the cloud components built
                here. Created from configuration if None.
            engine: Pre-configured SQLAlchemy engine for the local store.
        """
        self.local_store = local_store or LocalStore(engine=engine)
        client = s3_client
        if client is None and (cloud_store is None or bucket_admin is None):
            client = make_s3_client()
        self.cloud_store = cloud_store or CloudStore(self.local_store, client=client)
        self.bucket_admin = bucket_admin or BucketAdmin(client=client)
        self.search_service = search_service or SearchService(
            self.local_store, self.cloud_store
        )

    def shutdown(self) -> None:
        """Release the local database."""
        self.local_store.close()

    # ========== Local notes ==========

    def create_local_note(self, title: str, content: str) -> Note:
        """Create a note; the result carries its ciphertext, not plaintext."""
        return self.local_store.create(title, content)

    def get_local_note(self, note_id: int) -> Note:
        return self.local_store.read(note_id)

    def update_local_note(self, note: Note) -> Note:
        return self.local_store.update(note)

    def delete_local_note(self, note_id: int) -> None:
        self.local_store.delete(note_id)

    def get_local_notes(self) -> List[Note]:
        return self.local_store.list()

    def delete_all_local_notes(self) -> None:
        self.local_store.clear()

    # ========== Cloud notes ==========

    def upload_note_to_bucket(self, bucket: str, note: Note) -> None:
        self.cloud_store.upload(strip_quotes(bucket), note)

    def fetch_bucket_note(self, bucket: str, uuid: str) -> Note:
        return self.cloud_store.fetch_by_uuid(strip_quotes(bucket), uuid)

    def update_bucket_note(self, bucket: str, note: Note) -> None:
        self.cloud_store.update_by_uuid(strip_quotes(bucket), note)

    def delete_bucket_note(self, bucket: str, uuid: str) -> None:
        self.cloud_store.delete_by_uuid(strip_quotes(bucket), uuid)

    def fetch_bucket_notes(self, bucket: str) -> List[CloudObject]:
        return self.cloud_store.list(strip_quotes(bucket))

    def delete_bucket_notes(self, bucket: str) -> int:
        return self.cloud_store.delete_all(strip_quotes(bucket))

    # ========== Buckets ==========

    def create_bucket(self, name: str) -> None:
        self.bucket_admin.create(name)

    def bucket_exists(self, name: str) -> bool:
        return self.bucket_admin.exists(name)

    def delete_bucket(self, name: str) -> None:
        self.bucket_admin.delete(name)

    def fetch_buckets(self) -> List[str]:
        """Names of the buckets created by this application."""
        return self.bucket_admin.list_tagged()

    # ========== Search ==========

    def search_notes(
        self,
        query: str,
        local: bool = True,
        bucket: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Note]:
        """Full-text search of note content in one backend.

        Args:
            query: Search terms.
            local: Search local notes when True, else the notes in `bucket`.
            bucket: Bucket to search when `local` is False.
            limit: Maximum number of hits.
        """
        return self.search_service.search(
            query,
            local=local,
            bucket=strip_quotes(bucket) if bucket else None,
            limit=limit,
        )

    # ========== Bulk Operations ==========

    def send_notes_to_bucket(self, bucket: str, note_ids: List[int]) -> int:
        """Upload several local notes to a bucket.

        Every id is attempted. Notes are read (decrypted) locally and
        uploaded one at a time.

        Args:
            bucket: Target bucket.
            note_ids: Local ids of the notes to upload.

        Returns:
            Number of notes uploaded.

        Raises:
            ValidationError: If no ids are given.
            BulkOperationError: If any note failed, after the others were
                uploaded. Lists every failed id with its error.
        """
        if not note_ids:
            raise ValidationError(
                "At least one note id is required", field="note_ids"
            )
        bucket = strip_quotes(bucket)
        failed_ids: List[int] = []
        errors = {}
        for note_id in note_ids:
            try:
                note = self.local_store.read(note_id)
                self.cloud_store.upload(bucket, note)
            except NotesError as e:
                logger.warning(f"Sending note {note_id} to {bucket} failed: {e}")
                failed_ids.append(note_id)
                errors[note_id] = e.message

        sent = len(note_ids) - len(failed_ids)
        if failed_ids:
            listing = ", ".join(f"{nid} ({errors[nid]})" for nid in failed_ids)
            raise BulkOperationError(
                f"Failed to send {len(failed_ids)} of {len(note_ids)} notes "
                f"to {bucket}: {listing}",
                operation="send_notes_to_bucket",
                total_count=len(note_ids),
                success_count=sent,
                failed_ids=failed_ids,
                errors=errors,
                code=(
                    ErrorCode.BULK_OPERATION_PARTIAL
                    if sent
                    else ErrorCode.BULK_OPERATION_FAILED
                ),
            )
        logger.info(f"Sent {sent} notes to {bucket}")
        return sent
