# tests/test_buckets.py
"""Tests for bucket administration and bucket name validation."""
import pytest

from custom_notes.config import config
from custom_notes.exceptions import (
    BucketAlreadyExistsError,
    BucketError,
    ErrorCode,
    ValidationError,
)
from custom_notes.storage.buckets import BucketAdmin, validate_bucket_name
from tests.fakes import FakeS3Client


class TestValidateBucketName:
    @pytest.mark.parametrize(
        "name", ["abc", "my-notes", "notes.2024", "a" * 63, "0notes9"]
    )
    def test_valid_names(self, name):
        assert validate_bucket_name(name) == name

    @pytest.mark.parametrize(
        "name",
        [
            "ab",
            "a" * 64,
            "My-Notes",
            "-notes",
            "notes-",
            "notes_underscore",
            "192.168.1.1",
            "notes..dots",
            "notes.-dash",
            "notes-.dash",
        ],
    )
    def test_invalid_names(self, name):
        with pytest.raises(ValidationError) as exc_info:
            validate_bucket_name(name)
        assert exc_info.value.code == ErrorCode.INVALID_BUCKET_NAME


class TestBucketAdmin:
    def test_create_tags_bucket(self):
        client = FakeS3Client()
        admin = BucketAdmin(client=client, region="eu-west-3")
        admin.create("fresh-bucket")

        bucket = client.buckets["fresh-bucket"]
        assert bucket["location"] == "eu-west-3"
        assert bucket["tags"] == [
            {"Key": config.bucket_tag_key, "Value": config.bucket_tag_value}
        ]

    def test_create_in_us_east_1_has_no_location(self):
        client = FakeS3Client()
        BucketAdmin(client=client, region="us-east-1").create("east-bucket")
        assert client.buckets["east-bucket"]["location"] is None

    def test_create_strips_quotes(self):
        client = FakeS3Client()
        BucketAdmin(client=client, region="eu-west-3").create('"quoted-bucket"')
        assert "quoted-bucket" in client.buckets

    def test_create_existing(self, bucket_admin, bucket):
        with pytest.raises(BucketAlreadyExistsError) as exc_info:
            bucket_admin.create(bucket)
        assert exc_info.value.message == "Bucket already exists"
        assert exc_info.value.code == ErrorCode.BUCKET_ALREADY_EXISTS

    def test_create_failure(self, bucket_admin, fake_s3):
        fake_s3.fail_next("CreateBucket", "AccessDenied")
        with pytest.raises(BucketError) as exc_info:
            bucket_admin.create("denied-bucket")
        assert exc_info.value.code == ErrorCode.BUCKET_REQUEST_FAILED

    def test_tagging_failure(self, bucket_admin, fake_s3):
        fake_s3.fail_next("PutBucketTagging")
        with pytest.raises(BucketError) as exc_info:
            bucket_admin.create("untagged-bucket")
        assert exc_info.value.message == "Error creating tag"
        assert exc_info.value.code == ErrorCode.BUCKET_TAGGING_FAILED

    def test_exists(self, bucket_admin, bucket):
        assert bucket_admin.exists(bucket) is True
        assert bucket_admin.exists(f'"{bucket}"') is True
        assert bucket_admin.exists("missing-bucket") is False

    def test_delete(self, bucket_admin, fake_s3):
        bucket_admin.create("short-lived")
        bucket_admin.delete("short-lived")
        assert "short-lived" not in fake_s3.buckets

    def test_delete_non_empty(self, bucket_admin, fake_s3, bucket):
        fake_s3.put_raw(bucket, "a.txt", b"x", {"uuid": "u"})
        with pytest.raises(BucketError):
            bucket_admin.delete(bucket)

    def test_delete_missing(self, bucket_admin):
        with pytest.raises(BucketError):
            bucket_admin.delete("never-existed")

    def test_list_tagged_only(self, bucket_admin, fake_s3, bucket):
        bucket_admin.create("notes-one")
        bucket_admin.create("notes-two")
        fake_s3.create_bucket(Bucket="foreign-bucket")
        fake_s3.put_bucket_tagging(
            Bucket="foreign-bucket",
            Tagging={"TagSet": [{"Key": "App", "Value": "SomethingElse"}]},
        )
        # the fixture bucket has no tags at all
        assert bucket_admin.list_tagged() == ["notes-one", "notes-two"]

    def test_list_failure(self, bucket_admin, fake_s3):
        fake_s3.fail_next("ListBuckets")
        with pytest.raises(BucketError):
            bucket_admin.list_tagged()

    def test_create_rejects_invalid_name_before_io(self, bucket_admin, fake_s3):
        with pytest.raises(ValidationError):
            bucket_admin.create("Bad_Name")
        assert fake_s3.calls["HeadBucket"] == 0
        assert fake_s3.calls["CreateBucket"] == 1  # the fixture's own bucket
