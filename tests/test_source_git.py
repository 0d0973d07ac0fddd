"""Tests for source/git.py module.

Uses a mocked run_command to check the git invocations.
"""

import io
from pathlib import Path
from unittest.mock import patch

import pytest

from conveyor.process import ProcessError
from conveyor.source.git import GitCLI, InvalidRefError, check_branch, check_commit


class TestGitCLI:
    """Tests for GitCLI class."""

    def test_clone_command(self, tmp_path) -> None:
        """Should shallow clone a single branch into dest_dir."""
        dest = tmp_path / "work"
        sink = io.BytesIO()

        with patch("conveyor.source.git.run_command") as mock_run:
            GitCLI(timeout=60).clone(
                "https://github.com/acme/widgets.git", "main", 50, dest, sink
            )

        mock_run.assert_called_once_with(
            [
                "git",
                "clone",
                "--depth=50",
                "--branch=main",
                "--",
                "https://github.com/acme/widgets.git",
                str(dest),
            ],
            sink,
            cwd=tmp_path,
            timeout=60,
        )

    def test_checkout_command(self) -> None:
        """Should force a quiet checkout of the commit inside the clone."""
        dest = Path("/tmp/work")
        sink = io.BytesIO()

        with patch("conveyor.source.git.run_command") as mock_run:
            GitCLI(executable="/usr/bin/git").checkout(dest, "abc123", sink)

        mock_run.assert_called_once_with(
            ["/usr/bin/git", "checkout", "-qf", "abc123"],
            sink,
            cwd=dest,
            timeout=None,
        )

    def test_clone_failure_propagates(self, tmp_path) -> None:
        """Should raise the process error unchanged."""
        error = ProcessError("git clone failed", exit_code=128)

        with patch("conveyor.source.git.run_command", side_effect=error):
            with pytest.raises(ProcessError) as exc_info:
                GitCLI().clone("url", "main", 50, tmp_path / "w", io.BytesIO())

        assert exc_info.value is error


class TestCheckCommit:
    """Tests for check_commit function."""

    @pytest.mark.parametrize("commit", ["abc1", "ABC123def", "a" * 40, "0" * 64])
    def test_accepts_object_names(self, commit) -> None:
        """Should accept abbreviated and full hexadecimal names."""
        assert check_commit(commit) == commit

    @pytest.mark.parametrize(
        "commit",
        [
            "",
            "abc",
            "../../escaped",
            "-qf",
            "main",
            "abc123\n",
            "a" * 65,
            "abc/123",
        ],
    )
    def test_rejects_anything_else(self, commit) -> None:
        """Should reject paths, options and non-hex names."""
        with pytest.raises(InvalidRefError) as exc_info:
            check_commit(commit)

        assert exc_info.value.kind == "commit"
        assert exc_info.value.code == "invalid_ref"


class TestCheckBranch:
    """Tests for check_branch function."""

    @pytest.mark.parametrize(
        "branch", ["main", "feature/login", "release-1.2", "user_x/fix-3"]
    )
    def test_accepts_ref_names(self, branch) -> None:
        """Should accept ordinary branch names."""
        assert check_branch(branch) == branch

    @pytest.mark.parametrize(
        "branch",
        [
            "",
            "-x",
            "--upload-pack=touch",
            "/main",
            "main/",
            "a..b",
            "a//b",
            "main.lock",
            "ref@{1}",
            "has space",
            "a:b",
            "a~1",
            "a\\b",
            "@",
        ],
    )
    def test_rejects_malformed(self, branch) -> None:
        """Should reject option-like and malformed ref names."""
        with pytest.raises(InvalidRefError) as exc_info:
            check_branch(branch)

        assert exc_info.value.kind == "branch"
