"""Tests for builds/pipeline.py module.

Runs the Orchestrator against in-memory git, docker and status fakes.
"""

import io

import pytest

from conveyor.builds.pipeline import Orchestrator, StageError, stage, working_directory
from conveyor.docker.errors import DockerError, RegistryAuthError, TagNotFoundError
from conveyor.process import ProcessError
from conveyor.source.git import InvalidRefError
from conveyor.status.reporter import InvalidRepositoryError, StatusReportError
from conveyor.types import BuildRequest, CommitState


@pytest.fixture
def sink() -> io.BytesIO:
    return io.BytesIO()


@pytest.fixture
def request_main(sink) -> BuildRequest:
    return BuildRequest(
        repository="acme/widgets",
        commit="abc123",
        branch="main",
        output_sink=sink,
    )


class TestStage:
    """Tests for the stage() error wrapper."""

    def test_wraps_with_stage_name(self):
        """Should prefix the cause with the stage name and chain it."""
        cause = RuntimeError("boom")
        with pytest.raises(StageError) as exc_info, stage("build"):
            raise cause

        assert exc_info.value.stage == "build"
        assert str(exc_info.value) == "build: boom"
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.code == "stage_failed"

    def test_does_not_rewrap(self):
        """Should pass an existing StageError through unchanged."""
        inner = StageError("checkout", RuntimeError("x"))
        with pytest.raises(StageError) as exc_info, stage("build"):
            raise inner

        assert exc_info.value is inner


class TestWorkingDirectory:
    """Tests for working_directory context manager."""

    def test_creates_unique_dirs_and_removes_them(self, tmp_path):
        """Should allocate distinct directories and delete them on exit."""
        root = tmp_path / "root"
        with working_directory(root, "abc123") as first:
            with working_directory(root, "abc123") as second:
                assert first != second
                assert first.parent == root
                assert first.name.startswith("abc123-")
                (second / "file").write_text("x")
            assert not second.exists()
        assert not first.exists()

    def test_removed_on_error(self, tmp_path):
        """Should delete the directory when the block raises."""
        with pytest.raises(ValueError):
            with working_directory(tmp_path, "c") as path:
                raise ValueError("fail")
        assert not path.exists()

    def test_keep(self, tmp_path):
        """Should leave the directory when keep is set."""
        with working_directory(tmp_path, "c", keep=True) as path:
            pass
        assert path.exists()

    def test_prefix_cannot_leave_root(self, tmp_path):
        """Should keep path separators in the prefix from escaping root."""
        root = tmp_path / "a" / "builds"
        with working_directory(root, "../../escaped") as path:
            assert path.parent == root
            assert path.name.startswith("______escaped-")
        assert not (tmp_path / "escaped").exists()


class TestExecuteSuccess:
    """End-to-end success path."""

    def test_reports_pending_then_success(self, orchestrator, reporter, request_main):
        """Should report exactly pending then success for the commit."""
        outcome = orchestrator.execute(request_main)

        assert outcome.state is CommitState.SUCCESS
        assert outcome.succeeded
        assert reporter.reports == [
            ("acme/widgets", "abc123", CommitState.PENDING),
            ("acme/widgets", "abc123", CommitState.SUCCESS),
        ]

    def test_tags_and_pushes(self, orchestrator, fake_engine, request_main):
        """Should tag branch and commit, then push latest, branch and commit."""
        orchestrator.execute(request_main)

        assert [c[2] for c in fake_engine.ops("tag")] == ["main", "abc123"]
        assert all(c[1] == "acme/widgets" for c in fake_engine.ops("tag"))
        assert all(c[3] is True for c in fake_engine.ops("tag"))
        assert [c[2] for c in fake_engine.ops("push")] == ["latest", "main", "abc123"]

    def test_stage_order(self, orchestrator, events, request_main):
        """Should run pending, checkout, pull, build, tag, push, success in order."""
        orchestrator.execute(request_main)

        kinds = [e[0] for e in events]
        assert kinds[0] == "report"
        assert events[0][1] is CommitState.PENDING
        assert kinds[1:3] == ["clone", "checkout"]
        assert kinds.index("pull") < kinds.index("build")
        assert kinds.index("build") < kinds.index("tag")
        last_tag = len(kinds) - 1 - kinds[::-1].index("tag")
        assert last_tag < kinds.index("push")
        assert events[-1] == ("report", CommitState.SUCCESS)

    def test_checkout_arguments(
        self, orchestrator, fake_source, build_root, request_main
    ):
        """Should clone the branch shallowly and check out the commit."""
        orchestrator.execute(request_main)

        clone, checkout = fake_source.calls
        assert clone[1] == "https://git.example.com/acme/widgets.git"
        assert clone[2] == "main"
        assert clone[3] == 50
        assert clone[4].parent == build_root
        assert checkout == ("checkout", clone[4], "abc123")

    def test_build_uses_repository_as_image_name(
        self, orchestrator, fake_engine, fake_source, request_main
    ):
        """Should build the checked-out tree into an image named after the repo."""
        outcome = orchestrator.execute(request_main)

        (build,) = fake_engine.ops("build")
        assert build[1] == "acme/widgets"
        assert build[2] == fake_source.calls[0][4]
        assert outcome.image is not None
        assert outcome.image.name == "acme/widgets"

    def test_cache_candidates(self, orchestrator, fake_engine, request_main):
        """Should stop warming after the branch pull succeeds."""
        orchestrator.execute(request_main)

        assert fake_engine.ops("pull") == [("pull", "acme/widgets", "main")]

    def test_output_streamed_to_sink(self, orchestrator, request_main, sink):
        """Should forward collaborator output to the request sink."""
        orchestrator.execute(request_main)

        output = sink.getvalue()
        assert b"Cloning into" in output
        assert b"Step 1/1" in output
        assert b"pushing acme/widgets:abc123" in output

    def test_working_dir_removed(self, orchestrator, fake_source, request_main):
        """Should remove the working directory after a successful build."""
        orchestrator.execute(request_main)

        assert not fake_source.calls[0][4].exists()


class TestExecuteFailures:
    """Failure paths: wrapping, terminal status and skipped stages."""

    def test_build_failure(self, orchestrator, fake_engine, reporter, request_main):
        """Should report error and never tag or push when the build fails."""
        fake_engine.build_error = ProcessError("docker build failed", exit_code=1)

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "build"
        assert str(exc_info.value).startswith("build: ")
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]
        assert fake_engine.ops("tag") == []
        assert fake_engine.ops("push") == []

    def test_checkout_failure(
        self, orchestrator, fake_source, fake_engine, reporter, request_main
    ):
        """Should stop before pulling when the clone fails."""
        fake_source.clone_error = ProcessError("git clone failed", exit_code=128)

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "checkout"
        assert fake_engine.calls == []
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]

    def test_cache_miss_is_not_fatal(self, orchestrator, fake_engine, request_main):
        """Should build from scratch when no candidate tag exists."""
        fake_engine.pull_errors = {
            "main": TagNotFoundError("acme/widgets", "main"),
            "latest": TagNotFoundError("acme/widgets", "latest"),
        }

        outcome = orchestrator.execute(request_main)

        assert outcome.succeeded
        assert [c[2] for c in fake_engine.ops("pull")] == ["main", "latest"]
        assert len(fake_engine.ops("build")) == 1

    def test_pull_auth_failure_is_fatal(
        self, orchestrator, fake_engine, reporter, request_main
    ):
        """Should abort on a non-miss pull error."""
        fake_engine.pull_errors = {"main": RegistryAuthError("unauthorized")}

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "pull"
        assert isinstance(exc_info.value.cause, RegistryAuthError)
        assert fake_engine.ops("build") == []
        assert reporter.states[-1] is CommitState.ERROR

    def test_tag_failure_stops_push(
        self, orchestrator, fake_engine, reporter, request_main
    ):
        """Should leave earlier tags applied and never push."""
        fake_engine.tag_errors = {"abc123": DockerError("tag failed")}

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "tag"
        assert [c[2] for c in fake_engine.ops("tag")] == ["main", "abc123"]
        assert fake_engine.ops("push") == []
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]

    def test_push_failure(self, orchestrator, fake_engine, reporter, request_main):
        """Should stop pushing at the first failing tag."""
        fake_engine.push_errors = {"main": [DockerError("push failed")]}

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "push"
        assert [c[2] for c in fake_engine.ops("push")] == ["latest", "main"]
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]

    def test_working_dir_removed_on_failure(
        self, orchestrator, fake_engine, fake_source, request_main
    ):
        """Should remove the working directory when a stage fails."""
        fake_engine.build_error = ProcessError("docker build failed", exit_code=1)

        with pytest.raises(StageError):
            orchestrator.execute(request_main)

        assert not fake_source.calls[0][4].exists()

    def test_tempdir_failure(self, fake_source, fake_engine, reporter, tmp_path, sink):
        """Should report error when the working directory cannot be created."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        orchestrator = Orchestrator(fake_source, fake_engine, reporter, blocker)

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(
                BuildRequest("acme/widgets", "abc123", "main", sink)
            )

        assert exc_info.value.stage == "tempdir"
        assert fake_source.calls == []
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]

    def test_unexpected_exception_still_reports_error(
        self, orchestrator, reporter, fake_engine, request_main
    ):
        """Should report error even for interrupts that are not wrapped."""
        fake_engine.build_error = KeyboardInterrupt()

        with pytest.raises(KeyboardInterrupt):
            orchestrator.execute(request_main)

        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]


class TestInvalidRepository:
    """Tests for repository identifier validation."""

    @pytest.mark.parametrize("repository", ["widgets", "acme/widgets/extra", "/w", "a/"])
    def test_rejected_before_any_work(
        self, orchestrator, reporter, fake_source, repository, sink
    ):
        """Should raise without reporting any status or cloning."""
        with pytest.raises(InvalidRepositoryError):
            orchestrator.execute(BuildRequest(repository, "abc123", "main", sink))

        assert reporter.reports == []
        assert fake_source.calls == []


class TestInvalidRefs:
    """Tests for commit and branch validation."""

    def test_path_like_commit_rejected(
        self, orchestrator, reporter, fake_source, build_root, sink
    ):
        """Should refuse a commit that is not an object name before any work."""
        with pytest.raises(InvalidRefError) as exc_info:
            orchestrator.execute(
                BuildRequest("acme/widgets", "../../escaped", "main", sink)
            )

        assert exc_info.value.kind == "commit"
        assert reporter.reports == []
        assert fake_source.calls == []
        assert not build_root.exists()

    @pytest.mark.parametrize("branch", ["-x", "--upload-pack=touch", "a..b", ""])
    def test_option_like_branch_rejected(
        self, orchestrator, reporter, fake_source, branch, sink
    ):
        """Should refuse branches git could read as options or ranges."""
        with pytest.raises(InvalidRefError) as exc_info:
            orchestrator.execute(BuildRequest("acme/widgets", "abc123", branch, sink))

        assert exc_info.value.kind == "branch"
        assert reporter.reports == []
        assert fake_source.calls == []


class TestStatusFailures:
    """Status reporting does not control the build unless strict."""

    def test_pending_failure_is_logged(
        self, orchestrator, reporter, fake_engine, request_main
    ):
        """Should keep building when the pending report fails."""
        reporter.errors = {CommitState.PENDING: StatusReportError("503")}

        outcome = orchestrator.execute(request_main)

        assert outcome.succeeded
        assert len(fake_engine.ops("push")) == 3
        assert reporter.states == [CommitState.PENDING, CommitState.SUCCESS]

    def test_terminal_failure_does_not_mask_success(
        self, orchestrator, reporter, request_main
    ):
        """Should return success even if the success report fails."""
        reporter.errors = {CommitState.SUCCESS: StatusReportError("503")}

        outcome = orchestrator.execute(request_main)

        assert outcome.succeeded

    def test_terminal_failure_does_not_mask_stage_error(
        self, orchestrator, reporter, fake_engine, request_main
    ):
        """Should raise the stage error, not the reporting error."""
        fake_engine.build_error = ProcessError("docker build failed", exit_code=1)
        reporter.errors = {CommitState.ERROR: StatusReportError("503")}

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "build"

    def test_strict_pending_failure_aborts(
        self, fake_source, fake_engine, reporter, build_root, request_main
    ):
        """Should abort with a status stage error and still report error."""
        orchestrator = Orchestrator(
            fake_source, fake_engine, reporter, build_root, strict_status=True
        )
        reporter.errors = {CommitState.PENDING: StatusReportError("503")}

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "status"
        assert fake_source.calls == []
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]

    def test_unexpected_terminal_error_does_not_mask_stage_error(
        self, orchestrator, reporter, fake_engine, request_main
    ):
        """Should raise the stage error when the reporter fails in another way."""
        fake_engine.build_error = ProcessError("docker build failed", exit_code=1)
        reporter.errors = {CommitState.ERROR: OSError("stderr closed")}

        with pytest.raises(StageError) as exc_info:
            orchestrator.execute(request_main)

        assert exc_info.value.stage == "build"
        assert reporter.states == [CommitState.PENDING, CommitState.ERROR]

    def test_unexpected_terminal_error_does_not_mask_success(
        self, orchestrator, reporter, request_main
    ):
        """Should still return success when the success report raises OSError."""
        reporter.errors = {CommitState.SUCCESS: OSError("stderr closed")}

        outcome = orchestrator.execute(request_main)

        assert outcome.succeeded
