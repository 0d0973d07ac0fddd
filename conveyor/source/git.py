"""Git command line wrapper.

Clones use a shallow history and a single branch; the requested commit
is then checked out inside the clone.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

from conveyor.process import run_command
from conveyor.types import OutputSink

logger = logging.getLogger(__name__)

# Abbreviated or full object name (SHA-1 or SHA-256)
COMMIT_PATTERN = re.compile(r"[0-9a-fA-F]{4,64}")

# Characters git refuses in ref names, plus whitespace
_BAD_REF_CHARS = re.compile(r"[\s~^:?*\[\\\x00-\x1f\x7f]")


class InvalidRefError(ValueError):
    """Raised when a commit or branch name is not safe to hand to git."""

    def __init__(self, kind: str, value: str, code: str = "invalid_ref") -> None:
        super().__init__(f"Invalid {kind}: {value!r}")
        self.kind = kind
        self.value = value
        self.code = code


def check_commit(commit: str) -> str:
    """Return commit if it is a hexadecimal object name.

    Raises:
        InvalidRefError: Otherwise.
    """
    if not COMMIT_PATTERN.fullmatch(commit):
        raise InvalidRefError("commit", commit)
    return commit


def check_branch(branch: str) -> str:
    """Return branch if it is a well-formed ref name.

    Follows the rules of git check-ref-format for a single branch name.

    Raises:
        InvalidRefError: Otherwise.
    """
    if (
        not branch
        or branch == "@"
        or branch.startswith(("-", "/", "."))
        or branch.endswith(("/", ".", ".lock"))
        or ".." in branch
        or "//" in branch
        or "@{" in branch
        or _BAD_REF_CHARS.search(branch)
    ):
        raise InvalidRefError("branch", branch)
    return branch


class SourceControl(Protocol):
    """Materializes source trees from a remote repository."""

    def clone(
        self,
        remote_url: str,
        branch: str,
        depth: int,
        dest_dir: Path,
        sink: OutputSink,
    ) -> None: ...

    def checkout(self, dest_dir: Path, commit: str, sink: OutputSink) -> None: ...


class GitCLI:
    """SourceControl implementation that shells out to git."""

    def __init__(self, executable: str = "git", timeout: float | None = None) -> None:
        self.executable = executable
        self.timeout = timeout

    def clone(
        self,
        remote_url: str,
        branch: str,
        depth: int,
        dest_dir: Path,
        sink: OutputSink,
    ) -> None:
        """Shallow clone a single branch into dest_dir.

        dest_dir may exist but must be empty.
        """
        logger.info("Cloning %s (branch=%s, depth=%d)", remote_url, branch, depth)
        run_command(
            [
                self.executable,
                "clone",
                f"--depth={depth}",
                f"--branch={branch}",
                "--",
                remote_url,
                str(dest_dir),
            ],
            sink,
            cwd=dest_dir.parent,
            timeout=self.timeout,
        )

    def checkout(self, dest_dir: Path, commit: str, sink: OutputSink) -> None:
        """Force checkout of commit inside an existing clone."""
        logger.info("Checking out %s in %s", commit, dest_dir)
        run_command(
            [self.executable, "checkout", "-qf", commit],
            sink,
            cwd=dest_dir,
            timeout=self.timeout,
        )


__all__ = [
    "COMMIT_PATTERN",
    "GitCLI",
    "InvalidRefError",
    "SourceControl",
    "check_branch",
    "check_commit",
]
