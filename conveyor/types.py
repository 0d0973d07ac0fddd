"""Shared type definitions for conveyor.

This module contains dataclasses, enums, and protocols shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class CommitState(str, Enum):
    """State of a commit status report."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class BuildStatus(str, Enum):
    """Status of a persisted build record."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OutputSink(Protocol):
    """Writable byte stream that receives streamed build output."""

    def write(self, data: bytes, /) -> int: ...

    def flush(self) -> None: ...


@dataclass(frozen=True)
class BuildRequest:
    """A single build of a repository at a commit.

    Attributes:
        repository: Repository identifier in "owner/name" form.
        commit: Commit to check out and build.
        branch: Branch the commit belongs to.
        output_sink: Stream receiving build output as it is produced.
    """

    repository: str
    commit: str
    branch: str
    output_sink: OutputSink


@dataclass
class ImageDescriptor:
    """A built image as reported by the container engine."""

    id: str
    name: str
    repo_tags: list[str] = field(default_factory=list)
    created: str | None = None


@dataclass
class BuildOutcome:
    """Terminal result of one pipeline execution."""

    state: CommitState
    image: ImageDescriptor | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the pipeline finished without a failing stage."""
        return self.state is CommitState.SUCCESS


__all__ = [
    "BuildOutcome",
    "BuildRequest",
    "BuildStatus",
    "CommitState",
    "ImageDescriptor",
    "OutputSink",
]
