"""Bucket administration for the cloud store."""
import logging
import re
from typing import Any, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from custom_notes.config import config
from custom_notes.exceptions import (
    BucketAlreadyExistsError,
    BucketError,
    ErrorCode,
    ValidationError,
)
from custom_notes.storage.cloud_store import make_s3_client
from custom_notes.utils import strip_quotes

logger = logging.getLogger(__name__)

_BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")
_IP_ADDRESS_PATTERN = re.compile(r"(\d+\.){3}\d+")


def validate_bucket_name(name: str) -> str:
    """Check a bucket name against the S3 naming rules.

    Returns:
        The name, unchanged.

    Raises:
        ValidationError: If the name is not a valid bucket name.
    """
    if len(name) < 3 or len(name) > 63:
        raise ValidationError(
            "Bucket name must be between 3 and 63 characters long",
            field="bucket_name",
            value=name,
            code=ErrorCode.INVALID_BUCKET_NAME,
        )
    if not _BUCKET_NAME_PATTERN.match(name):
        raise ValidationError(
            "Bucket name must start and end with a lowercase letter or number",
            field="bucket_name",
            value=name,
            code=ErrorCode.INVALID_BUCKET_NAME,
        )
    if _IP_ADDRESS_PATTERN.search(name):
        raise ValidationError(
            "Bucket name must not be an IP address",
            field="bucket_name",
            value=name,
            code=ErrorCode.INVALID_BUCKET_NAME,
        )
    if ".." in name or ".-" in name or "-." in name:
        raise ValidationError(
            "Bucket name must not contain consecutive periods or periods adjacent to hyphens",
            field="bucket_name",
            value=name,
            code=ErrorCode.INVALID_BUCKET_NAME,
        )
    return name


class BucketAdmin:
    """Create, check, delete and list the buckets that hold notes.

    Buckets created here are tagged so list_tagged() can tell them apart
    from the account's other buckets.
    """

    def __init__(self, client: Optional[Any] = None, region: Optional[str] = None):
        self.region = region or config.aws_region
        self.client = client if client is not None else make_s3_client(self.region)
        self.tag_key = config.bucket_tag_key
        self.tag_value = config.bucket_tag_value

    def exists(self, name: str) -> bool:
        """Check whether a bucket exists and is reachable."""
        try:
            self.client.head_bucket(Bucket=strip_quotes(name))
            return True
        except (ClientError, BotoCoreError):
            return False

    def create(self, name: str) -> None:
        """Create a tagged bucket in the configured region.

        Raises:
            ValidationError: If the name breaks the S3 naming rules.
            BucketAlreadyExistsError: If the bucket already exists.
            BucketError: If creation or tagging fails.
        """
        name = validate_bucket_name(strip_quotes(name))
        if self.exists(name):
            raise BucketAlreadyExistsError(name)

        kwargs: dict = {"Bucket": name}
        # us-east-1 rejects an explicit location constraint
        if self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self.client.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise BucketError(
                "Failed to create bucket", bucket=name, original_error=e
            ) from e

        try:
            self.client.put_bucket_tagging(
                Bucket=name,
                Tagging={"TagSet": [{"Key": self.tag_key, "Value": self.tag_value}]},
            )
        except (ClientError, BotoCoreError) as e:
            raise BucketError(
                "Error creating tag",
                bucket=name,
                code=ErrorCode.BUCKET_TAGGING_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Created bucket {name} in {self.region}")

    def delete(self, name: str) -> None:
        """Delete a bucket. S3 refuses to delete buckets that still hold objects."""
        name = strip_quotes(name)
        try:
            self.client.delete_bucket(Bucket=name)
        except (ClientError, BotoCoreError) as e:
            raise BucketError(
                "Failed to delete bucket", bucket=name, original_error=e
            ) from e
        logger.info(f"Deleted bucket {name}")

    def list_tagged(self) -> List[str]:
        """Names of the buckets carrying this application's tag.

        Buckets whose tags cannot be read (no tag set, no permission) are
        skipped.
        """
        try:
            response = self.client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            raise BucketError("Failed to list buckets", original_error=e) from e

        names = []
        for bucket in response.get("Buckets", []):
            name = bucket.get("Name", "")
            try:
                tagging = self.client.get_bucket_tagging(Bucket=name)
            except (ClientError, BotoCoreError):
                continue
            for tag in tagging.get("TagSet", []):
                if tag.get("Key") == self.tag_key and tag.get("Value") == self.tag_value:
                    names.append(name)
                    break
        return names
