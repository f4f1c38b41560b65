"""Storage layer for Custom Notes."""

from custom_notes.storage.buckets import BucketAdmin
from custom_notes.storage.cloud_store import CloudStore, MetadataScanLocator
from custom_notes.storage.local_store import LocalStore

__all__ = [
    "LocalStore",
    "CloudStore",
    "MetadataScanLocator",
    "BucketAdmin",
]
