"""Build pipeline orchestration.

One Orchestrator.execute() call runs one build, start to finish:

    pending status -> working dir -> checkout -> cache warm -> build
    -> tag (branch, commit) -> push (latest, branch, commit)
    -> success/error status

Every stage failure is raised as StageError naming the stage. Exactly
one terminal status is reported for each pending status, on every exit
path. The working directory is removed on every exit path unless
keep_build_dir is set.
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

from conveyor.builds.cache import cache_candidates, warm_cache
from conveyor.builds.publish import push_image, tag_image
from conveyor.builds.runner import (
    DEFAULT_CLONE_DEPTH,
    build_image,
    checkout,
    remote_url,
)
from conveyor.docker.client import ContainerEngine
from conveyor.source.git import SourceControl, check_branch, check_commit
from conveyor.status.reporter import StatusReporter, split_repository
from conveyor.types import BuildOutcome, BuildRequest, CommitState, ImageDescriptor

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class StageError(Exception):
    """Raised when a pipeline stage fails.

    The message is "<stage>: <cause>" and the cause is chained.
    """

    def __init__(
        self, stage: str, cause: BaseException, code: str = "stage_failed"
    ) -> None:
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause
        self.code = code


@contextmanager
def stage(name: str) -> Iterator[None]:
    """Wrap any failure inside the block in StageError(name)."""
    try:
        yield
    except StageError:
        raise
    except Exception as e:
        logger.error("Stage %s failed: %s", name, e)
        raise StageError(name, e) from e


@contextmanager
def working_directory(
    build_root: Path,
    prefix: str,
    keep: bool = False,
) -> Iterator[Path]:
    """Allocate a uniquely named directory under build_root.

    Args:
        build_root: Parent directory, created if missing.
        prefix: Name prefix for the directory. Characters other than
            letters, digits, "_" and "-" are replaced with "_".
        keep: Leave the directory in place on exit.

    Yields:
        Path to the new, empty directory.
    """
    build_root.mkdir(parents=True, exist_ok=True)
    safe_prefix = _UNSAFE_NAME_CHARS.sub("_", prefix)
    path = Path(tempfile.mkdtemp(prefix=f"{safe_prefix}-", dir=build_root))
    logger.debug("Allocated working directory %s", path)
    try:
        yield path
    finally:
        if keep:
            logger.info("Keeping working directory %s", path)
        else:
            shutil.rmtree(path, ignore_errors=True)


class Orchestrator:
    """Runs the checkout/build/publish pipeline for build requests.

    Collaborators are injected; one Orchestrator may serve concurrent
    execute() calls since each call gets its own working directory.
    """

    def __init__(
        self,
        source: SourceControl,
        engine: ContainerEngine,
        reporter: StatusReporter,
        build_dir: Path,
        remote_url_template: str = "https://github.com/{repository}.git",
        clone_depth: int = DEFAULT_CLONE_DEPTH,
        keep_build_dir: bool = False,
        push_retries: int = 1,
        retry_backoff: float = 1.0,
        strict_status: bool = False,
    ) -> None:
        self.source = source
        self.engine = engine
        self.reporter = reporter
        self.build_dir = Path(build_dir)
        self.remote_url_template = remote_url_template
        self.clone_depth = clone_depth
        self.keep_build_dir = keep_build_dir
        self.push_retries = push_retries
        self.retry_backoff = retry_backoff
        self.strict_status = strict_status

    def execute(self, request: BuildRequest) -> BuildOutcome:
        """Build, tag and push the image for request.

        Args:
            request: The build to run.

        Returns:
            A successful BuildOutcome carrying the image descriptor.

        Raises:
            InvalidRepositoryError: If the repository identifier is
                malformed. No status is reported in that case.
            InvalidRefError: If the commit is not a hexadecimal object
                name or the branch is not a valid ref name. No status is
                reported in that case.
            StageError: If any stage fails. The error status has been
                reported by the time this propagates.
        """
        split_repository(request.repository)
        check_commit(request.commit)
        check_branch(request.branch)

        logger.info(
            "Building %s@%s (branch %s)",
            request.repository,
            request.commit,
            request.branch,
        )
        state = CommitState.ERROR
        try:
            self._report_pending(request)
            image = self._run_stages(request)
            state = CommitState.SUCCESS
            return BuildOutcome(state=state, image=image)
        finally:
            self._report_terminal(request, state)

    def _run_stages(self, request: BuildRequest) -> ImageDescriptor:
        sink = request.output_sink
        image_name = request.repository
        tags = [request.branch, request.commit]

        with ExitStack() as stack:
            with stage("tempdir"):
                working_dir = stack.enter_context(
                    working_directory(
                        self.build_dir, request.commit, keep=self.keep_build_dir
                    )
                )

            with stage("checkout"):
                checkout(
                    self.source,
                    remote_url(self.remote_url_template, request.repository),
                    request.branch,
                    request.commit,
                    working_dir,
                    sink,
                    depth=self.clone_depth,
                )

            with stage("pull"):
                warm_cache(
                    self.engine,
                    request.repository,
                    cache_candidates(request.branch),
                    sink,
                )

            with stage("build"):
                image = build_image(self.engine, working_dir, image_name, sink)

            with stage("tag"):
                tag_image(self.engine, image_name, tags)

            with stage("push"):
                push_image(
                    self.engine,
                    image_name,
                    sink,
                    ["latest", *tags],
                    retries=self.push_retries,
                    backoff=self.retry_backoff,
                )

        logger.info("Published %s:%s", image_name, request.commit)
        return image

    def _report_pending(self, request: BuildRequest) -> None:
        try:
            self.reporter.report(
                request.repository, request.commit, CommitState.PENDING
            )
        except Exception as e:
            if self.strict_status:
                raise StageError("status", e) from e
            logger.error("Could not report pending status, continuing: %s", e)

    def _report_terminal(self, request: BuildRequest, state: CommitState) -> None:
        try:
            self.reporter.report(request.repository, request.commit, state)
        except Exception as e:
            logger.error("Could not report %s status: %s", state.value, e)


__all__ = ["Orchestrator", "StageError", "stage", "working_directory"]
