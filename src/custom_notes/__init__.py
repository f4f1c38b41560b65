"""
Custom Notes - encrypted note storage with local and cloud backends.

Notes are kept either in a local SQLite database or in an S3 bucket, with
their content sealed by a ChaCha20-Poly1305 envelope in both places. An
on-demand full-text index spans either backend.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("custom-notes")
except PackageNotFoundError:
    __version__ = "0.1.0"
