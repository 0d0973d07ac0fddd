"""Source control collaborator.

This module handles shallow clones and commit checkouts through the
git command line.
"""

from conveyor.source.git import (
    GitCLI,
    InvalidRefError,
    SourceControl,
    check_branch,
    check_commit,
)

__all__ = [
    "GitCLI",
    "InvalidRefError",
    "SourceControl",
    "check_branch",
    "check_commit",
]
