"""Blob storage backends for build logs.

A blob store accepts whole objects only: one put per key, body in
memory. Two backends:
- FilesystemBlobStore writes under a root directory (temp file + rename)
- HttpBlobStore PUTs to an S3-compatible bucket URL
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """Raised when a blob cannot be written."""

    def __init__(self, message: str, code: str = "blob_store_error") -> None:
        super().__init__(message)
        self.code = code


class BlobStore(Protocol):
    """Durable key/value storage for whole objects."""

    def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        acl: str | None = None,
    ) -> None: ...


class FilesystemBlobStore:
    """Blob store rooted at a local (or mounted) directory.

    ACLs are not representable on a filesystem and are ignored.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        """Return the file path for a key, refusing keys outside root."""
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise BlobStoreError(f"Key escapes store root: {key}", code="invalid_key")
        return path

    def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        acl: str | None = None,
    ) -> None:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(body)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BlobStoreError(f"Failed to write {key}: {e}") from e
        logger.debug("Stored %s (%d bytes)", path, len(body))


class HttpBlobStore:
    """Blob store that PUTs objects to an S3-compatible bucket URL.

    Objects land at `{base_url}/{key}`. Authentication is whatever the
    supplied client carries (headers, auth, presigning proxy).
    """

    def __init__(self, base_url: str, client: httpx.Client) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client

    def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
        acl: str | None = None,
    ) -> None:
        url = f"{self.base_url}/{key.lstrip('/')}"
        headers = {
            "Content-Type": content_type,
            "Content-Length": str(len(body)),
        }
        if acl:
            headers["x-amz-acl"] = acl

        try:
            response = self.client.put(url, content=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BlobStoreError(
                f"HTTP error writing {key}: {e.response.status_code} "
                f"{e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise BlobStoreError(f"Timeout writing {key}", code="timeout") from e
        except httpx.RequestError as e:
            raise BlobStoreError(
                f"Network error writing {key}: {e}", code="network_error"
            ) from e
        logger.debug("Uploaded %s (%d bytes)", url, len(body))


__all__ = ["BlobStore", "BlobStoreError", "FilesystemBlobStore", "HttpBlobStore"]
