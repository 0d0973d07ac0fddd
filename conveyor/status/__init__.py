"""Commit status reporting.

Build state transitions are reported as commit statuses. Without a
configured token a no-op reporter prints the transitions instead.
"""

from conveyor.status.reporter import (
    STATUS_CONTEXT,
    GitHubStatusReporter,
    InvalidRepositoryError,
    NullStatusReporter,
    StatusReporter,
    StatusReportError,
    new_status_reporter,
    split_repository,
)

__all__ = [
    "STATUS_CONTEXT",
    "GitHubStatusReporter",
    "InvalidRepositoryError",
    "NullStatusReporter",
    "StatusReportError",
    "StatusReporter",
    "new_status_reporter",
    "split_repository",
]
