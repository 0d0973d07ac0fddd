"""Build log storage.

This module handles:
- Buffering build output in memory during a build
- Uploading the complete log as one blob when the stream closes
"""

from conveyor.logs.blobstore import (
    BlobStore,
    BlobStoreError,
    FilesystemBlobStore,
    HttpBlobStore,
)
from conveyor.logs.store import LogStore, LogStoreError, LogWriter, TeeWriter, log_key

__all__ = [
    "BlobStore",
    "BlobStoreError",
    "FilesystemBlobStore",
    "HttpBlobStore",
    "LogStore",
    "LogStoreError",
    "LogWriter",
    "TeeWriter",
    "log_key",
]
