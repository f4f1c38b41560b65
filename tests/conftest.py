"""Common test fixtures for the custom notes stores and server."""

import pytest

from custom_notes.config import config
from custom_notes.models.db_models import init_db
from custom_notes.services.note_service import NoteService
from custom_notes.services.search_service import SearchService
from custom_notes.storage.buckets import BucketAdmin
from custom_notes.storage.cloud_store import CloudStore
from custom_notes.storage.local_store import LocalStore
from tests.fakes import FakeS3Client

BUCKET = "test-notes-bucket"


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point the database at a temp file (auto-restored even on crash)."""
    monkeypatch.setattr(config, "database_path", tmp_path / "notes.db")
    yield config


@pytest.fixture
def engine(test_config):
    """Initialized SQLite engine on the temp database."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def local_store(engine):
    """Local store on the temp database."""
    return LocalStore(engine=engine)


@pytest.fixture
def fake_s3():
    """Fake S3 client holding one empty bucket."""
    client = FakeS3Client()
    client.create_bucket(Bucket=BUCKET)
    return client


@pytest.fixture
def bucket():
    """Name of the bucket the fake client starts with."""
    return BUCKET


@pytest.fixture
def cloud_store(local_store, fake_s3):
    """Cloud store on the fake client."""
    return CloudStore(local_store, client=fake_s3)


@pytest.fixture
def bucket_admin(fake_s3):
    """Bucket administration on the fake client."""
    return BucketAdmin(client=fake_s3, region="eu-west-3")


@pytest.fixture
def search_service(local_store, cloud_store):
    """Search over the local store and the fake bucket."""
    return SearchService(local_store, cloud_store)


@pytest.fixture
def note_service(local_store, cloud_store, bucket_admin, search_service):
    """NoteService wired to the temp database and the fake client."""
    return NoteService(
        local_store=local_store,
        cloud_store=cloud_store,
        bucket_admin=bucket_admin,
        search_service=search_service,
    )
