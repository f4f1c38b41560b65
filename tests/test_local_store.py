# tests/test_local_store.py
"""Tests for the SQLite-backed local note store."""
import base64
import time

import pytest
from sqlalchemy import text

from custom_notes.envelope import CipherEnvelope, cipher
from custom_notes.exceptions import (
    CorruptEnvelopeError,
    DecryptionFailedError,
    ErrorCode,
    InvalidNonceError,
    NoteNotFoundError,
    NoteValidationError,
    StorageError,
)
from custom_notes.models.db_models import init_db
from custom_notes.models.schema import Note
from custom_notes.storage.local_store import LocalStore


class TestCreateAndRead:
    def test_create_then_read(self, local_store):
        created = local_store.create("hello", "world")
        note = local_store.read(created.id)
        assert note.title == "hello"
        assert note.content == "world"
        assert note.uuid == created.uuid
        assert note.created_at > 0
        assert note.updated_at is None
        assert note.timestamp

    def test_create_returns_stored_form(self, local_store):
        created = local_store.create("hello", "world")
        assert created.id is not None
        assert created.content != "world"
        assert len(base64.b64decode(created.nonce)) == 12
        assert cipher.open_encoded(created.content, created.nonce) == "world"

    def test_content_is_encrypted_at_rest(self, local_store, engine):
        created = local_store.create("secret", "plain words")
        with engine.connect() as conn:
            stored = conn.execute(
                text("SELECT content, nonce FROM notes WHERE id = :id"),
                {"id": created.id},
            ).one()
        assert "plain words" not in stored.content
        assert stored.nonce == created.nonce

    def test_ids_and_uuids_are_distinct(self, local_store):
        first = local_store.create("a", "1")
        second = local_store.create("b", "2")
        assert first.id != second.id
        assert first.uuid != second.uuid

    def test_empty_content_allowed(self, local_store):
        created = local_store.create("empty", "")
        assert local_store.read(created.id).content == ""

    def test_title_boundary(self, local_store):
        local_store.create("t" * 100, "ok")
        with pytest.raises(NoteValidationError) as exc_info:
            local_store.create("t" * 101, "too long")
        assert exc_info.value.message == "Title too long"
        assert local_store.list() and len(local_store.list()) == 1

    def test_content_boundary(self, local_store):
        local_store.create("big", "c" * 1_000_000)
        with pytest.raises(NoteValidationError) as exc_info:
            local_store.create("bigger", "c" * 1_000_001)
        assert exc_info.value.message == "Content too long"

    def test_read_missing(self, local_store):
        with pytest.raises(NoteNotFoundError) as exc_info:
            local_store.read(9999)
        assert exc_info.value.code == ErrorCode.NOTE_NOT_FOUND

    def test_get_uuid(self, local_store):
        created = local_store.create("a", "1")
        assert local_store.get_uuid(created.id) == created.uuid
        with pytest.raises(NoteNotFoundError):
            local_store.get_uuid(12345)


class TestUpdate:
    def test_update_changes_content_and_nonce(self, local_store):
        created = local_store.create("a", "x")
        note = local_store.read(created.id)
        note.content = "y"
        updated = local_store.update(note)

        assert updated.nonce != created.nonce
        reread = local_store.read(created.id)
        assert reread.content == "y"
        assert reread.updated_at is not None
        assert reread.updated_at >= reread.created_at

    def test_update_keeps_identity(self, local_store):
        created = local_store.create("a", "x")
        note = local_store.read(created.id)
        local_store.update(
            Note(id=created.id, uuid="ignored", title="b", content="z", created_at=1)
        )
        reread = local_store.read(created.id)
        assert reread.uuid == note.uuid
        assert reread.created_at == note.created_at
        assert reread.title == "b"

    def test_update_refreshes_timestamp(self, local_store):
        created = local_store.create("a", "x")
        before = local_store.read(created.id).timestamp
        time.sleep(0.01)
        local_store.update(Note(id=created.id, title="a", content="x2"))
        assert local_store.read(created.id).timestamp != before

    def test_update_requires_id(self, local_store):
        with pytest.raises(NoteValidationError):
            local_store.update(Note(title="a", content="b"))

    def test_update_missing_row(self, local_store):
        with pytest.raises(NoteNotFoundError):
            local_store.update(Note(id=4242, title="a", content="b"))

    def test_update_validates_lengths(self, local_store):
        created = local_store.create("a", "x")
        with pytest.raises(NoteValidationError):
            local_store.update(Note(id=created.id, title="t" * 101, content="x"))
        assert local_store.read(created.id).title == "a"


class TestDeleteAndList:
    def test_delete(self, local_store):
        created = local_store.create("a", "x")
        local_store.delete(created.id)
        with pytest.raises(NoteNotFoundError):
            local_store.read(created.id)

    def test_delete_is_idempotent(self, local_store):
        created = local_store.create("a", "x")
        local_store.delete(created.id)
        local_store.delete(created.id)
        local_store.delete(987654)

    def test_list_in_id_order(self, local_store):
        ids = [local_store.create(f"n{i}", f"body {i}").id for i in range(5)]
        notes = local_store.list()
        assert [n.id for n in notes] == ids
        assert [n.content for n in notes] == [f"body {i}" for i in range(5)]

    def test_list_empty(self, local_store):
        assert local_store.list() == []

    def test_clear(self, local_store):
        for i in range(3):
            local_store.create(f"n{i}", "x")
        local_store.clear()
        assert local_store.list() == []

    def test_list_aborts_on_corrupt_row(self, local_store, engine):
        local_store.create("good", "fine")
        bad = local_store.create("bad", "broken")
        with engine.begin() as conn:
            conn.execute(
                text("UPDATE notes SET nonce = :nonce WHERE id = :id"),
                {"nonce": "%%%not-base64", "id": bad.id},
            )
        with pytest.raises(CorruptEnvelopeError):
            local_store.list()

    def test_read_short_nonce(self, local_store, engine):
        created = local_store.create("a", "x")
        short = base64.b64encode(b"\x00" * 10).decode()
        with engine.begin() as conn:
            conn.execute(
                text("UPDATE notes SET nonce = :nonce WHERE id = :id"),
                {"nonce": short, "id": created.id},
            )
        with pytest.raises(InvalidNonceError):
            local_store.read(created.id)

    def test_read_with_other_key_fails(self, engine):
        writer = LocalStore(engine=engine)
        created = writer.create("a", "x")
        reader = LocalStore(engine=engine, envelope=CipherEnvelope(key=b"\x07" * 32))
        with pytest.raises(DecryptionFailedError):
            reader.read(created.id)


class TestDatabase:
    def test_reopen_keeps_notes(self, test_config):
        url = test_config.get_db_url()
        first = LocalStore(engine=init_db(url))
        created = first.create("persist", "me")
        first.close()

        second = LocalStore(engine=init_db(url))
        assert second.read(created.id).content == "me"
        second.close()

    def test_nonce_column_added_to_old_schema(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'old.db'}"
        legacy = init_db(url)
        with legacy.begin() as conn:
            conn.execute(text("DROP TABLE notes"))
            conn.execute(text(
                "CREATE TABLE notes (id INTEGER PRIMARY KEY, uuid TEXT, "
                "title TEXT NOT NULL, content TEXT NOT NULL, "
                "created_at INTEGER NOT NULL, updated_at INTEGER, timestamp TEXT)"
            ))
        legacy.dispose()

        engine = init_db(url)
        store = LocalStore(engine=engine)
        created = store.create("a", "b")
        assert store.read(created.id).content == "b"
        engine.dispose()

    def test_unopenable_database(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file")
        with pytest.raises(StorageError) as exc_info:
            init_db(f"sqlite:///{blocker / 'notes.db'}")
        assert exc_info.value.code == ErrorCode.STORAGE_CONNECTION_FAILED
