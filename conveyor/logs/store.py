"""Build log streams backed by blob storage.

Written bytes are buffered in memory and uploaded in a single put when
the stream is closed, at key `logs/<name>.txt`, publicly readable, as
text/plain. Reading logs back is not supported.
"""

from __future__ import annotations

import io
import logging

from conveyor.logs.blobstore import BlobStore, BlobStoreError
from conveyor.types import OutputSink

logger = logging.getLogger(__name__)

LOG_CONTENT_TYPE = "text/plain"
LOG_ACL = "public-read"


class LogStoreError(Exception):
    """Raised when a log stream cannot be stored or read."""

    def __init__(self, message: str, code: str = "log_store_error") -> None:
        super().__init__(message)
        self.code = code


def log_key(name: str) -> str:
    """Return the blob key for a log name."""
    return f"logs/{name}.txt"


class LogWriter(io.RawIOBase):
    """Byte stream that buffers until close, then writes one blob."""

    def __init__(self, store: BlobStore, key: str) -> None:
        super().__init__()
        self.store = store
        self.key = key
        self._buffer = io.BytesIO()

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:  # type: ignore[override]
        if self.closed:
            raise ValueError("write to closed log stream")
        return self._buffer.write(data)

    def getvalue(self) -> bytes:
        """Return everything written so far."""
        return self._buffer.getvalue()

    def close(self) -> None:
        """Upload the buffered log. Only the first close writes."""
        if self.closed:
            return
        body = self._buffer.getvalue()
        try:
            self.store.put(
                self.key, body, content_type=LOG_CONTENT_TYPE, acl=LOG_ACL
            )
        except BlobStoreError as e:
            raise LogStoreError(f"Failed to store log {self.key}: {e}") from e
        finally:
            super().close()
        logger.info("Stored log %s (%d bytes)", self.key, len(body))


class LogStore:
    """Creates build log streams in a blob store."""

    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs

    def create(self, name: str) -> LogWriter:
        """Open a new log stream for name."""
        return LogWriter(self.blobs, log_key(name))

    def open(self, name: str) -> io.RawIOBase:
        """Read back a log stream.

        Raises:
            LogStoreError: Always; reading is not implemented.
        """
        raise LogStoreError(
            f"blob logs: read of {name} is not implemented yet",
            code="not_implemented",
        )


class TeeWriter:
    """Fan written bytes out to several sinks."""

    def __init__(self, *sinks: OutputSink) -> None:
        self.sinks = sinks

    def write(self, data: bytes) -> int:
        for sink in self.sinks:
            sink.write(data)
        return len(data)

    def flush(self) -> None:
        for sink in self.sinks:
            sink.flush()


__all__ = [
    "LOG_ACL",
    "LOG_CONTENT_TYPE",
    "LogStore",
    "LogStoreError",
    "LogWriter",
    "TeeWriter",
    "log_key",
]
