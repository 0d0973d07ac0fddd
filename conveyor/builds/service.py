"""Build service module.

This module provides the high-level build API:
- run_build(): Main entry point - run the pipeline for one commit and
  record the build, its log and its artifact
- build_resources(): Construction of the pipeline collaborators from
  settings, with the HTTP and docker clients they share
- Build record and artifact persistence and queries
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from conveyor.builds.models import Artifact, BuildRecord
from conveyor.builds.pipeline import Orchestrator, StageError
from conveyor.config import Settings, get_settings
from conveyor.docker.client import DockerEngine
from conveyor.logs.blobstore import BlobStore, FilesystemBlobStore, HttpBlobStore
from conveyor.logs.store import LogStore, LogStoreError, TeeWriter
from conveyor.source.git import GitCLI, check_branch, check_commit
from conveyor.status.reporter import new_status_reporter, split_repository
from conveyor.types import (
    BuildOutcome,
    BuildRequest,
    BuildStatus,
    CommitState,
    OutputSink,
)

logger = logging.getLogger(__name__)


class BuildNotFoundError(Exception):
    """Raised when a build is not found."""

    def __init__(self, build_id: int, code: str = "build_not_found") -> None:
        super().__init__(f"Build not found: {build_id}")
        self.build_id = build_id
        self.code = code


class BuildServiceError(Exception):
    """Base error for build service operations."""

    def __init__(self, message: str, code: str = "build_service_error") -> None:
        super().__init__(message)
        self.code = code


def new_docker_engine(settings: Settings) -> DockerEngine:
    """Create the docker engine with the configured registry credentials."""
    return DockerEngine(
        username=settings.docker_username,
        password=(
            settings.docker_password.get_secret_value()
            if settings.docker_password
            else None
        ),
        registry=settings.docker_registry,
        timeout=settings.stage_timeout,
    )


def new_orchestrator(
    settings: Settings,
    client: httpx.Client,
    engine: DockerEngine | None = None,
    status_fallback: TextIO | None = None,
) -> Orchestrator:
    """Create an Orchestrator wired to git, docker and GitHub from settings.

    Args:
        settings: Application settings.
        client: HTTP client used for commit statuses. Owned by the caller.
        engine: Docker engine (created from settings if None).
        status_fallback: Stream for printed statuses when no token is set.

    Returns:
        Configured Orchestrator.
    """
    reporter = new_status_reporter(
        settings.github_token.get_secret_value() if settings.github_token else None,
        client,
        api_url=settings.github_api_url,
        retries=settings.status_retries,
        backoff=settings.retry_backoff,
        fallback=status_fallback,
    )
    return Orchestrator(
        source=GitCLI(timeout=settings.stage_timeout),
        engine=engine if engine is not None else new_docker_engine(settings),
        reporter=reporter,
        build_dir=settings.build_dir,
        remote_url_template=settings.remote_url_template,
        clone_depth=settings.clone_depth,
        keep_build_dir=settings.keep_build_dir,
        push_retries=settings.push_retries,
        retry_backoff=settings.retry_backoff,
        strict_status=settings.strict_status,
    )


def new_log_store(settings: Settings, client: httpx.Client) -> LogStore:
    """Create the configured build log store.

    Raises:
        BuildServiceError: If the HTTP store is selected without a URL.
    """
    blobs: BlobStore
    if settings.log_store == "http":
        if not settings.logs_url:
            raise BuildServiceError(
                "CONVEYOR_LOGS_URL is required for the http log store",
                code="invalid_config",
            )
        blobs = HttpBlobStore(settings.logs_url, client)
    else:
        blobs = FilesystemBlobStore(settings.logs_dir)
    return LogStore(blobs)


@contextmanager
def build_resources(
    settings: Settings | None = None,
    status_fallback: TextIO | None = None,
) -> Iterator[tuple[Orchestrator, LogStore]]:
    """Provide a pipeline and log store that share one HTTP client.

    The HTTP client and the docker client are closed on exit.

    Yields:
        Tuple of (Orchestrator, LogStore).
    """
    if settings is None:
        settings = get_settings()

    engine = new_docker_engine(settings)
    try:
        with httpx.Client(timeout=settings.http_timeout) as client:
            yield (
                new_orchestrator(
                    settings, client, engine=engine, status_fallback=status_fallback
                ),
                new_log_store(settings, client),
            )
    finally:
        engine.close()


def create_build_record(
    session: Session,
    repository: str,
    branch: str,
    commit: str,
) -> BuildRecord:
    """Create a new BuildRecord in pending state."""
    build = BuildRecord(
        repository=repository,
        branch=branch,
        commit=commit,
        status=BuildStatus.PENDING.value,
    )
    session.add(build)
    session.flush()
    return build


def insert_artifact(session: Session, build_id: int, image: str) -> int:
    """Record an image produced by a build.

    Args:
        session: Database session.
        build_id: Owning build ID.
        image: Image reference.

    Returns:
        Generated artifact ID.
    """
    artifact = Artifact(build_id=build_id, image=image)
    session.add(artifact)
    session.flush()
    return artifact.id


def run_build(
    session: Session,
    repository: str,
    commit: str,
    branch: str,
    orchestrator: Orchestrator,
    log_store: LogStore,
    echo: OutputSink | None = None,
) -> tuple[BuildRecord, BuildOutcome]:
    """Run the pipeline for one commit and record the result.

    The build log is stored under the build's ID. A failed log upload is
    logged and leaves the record without a log name; it does not change
    the build's status.

    Args:
        session: Database session.
        repository: Repository identifier ("owner/name").
        commit: Commit to build.
        branch: Branch of the commit.
        orchestrator: Pipeline to run.
        log_store: Store for the build log.
        echo: Extra sink that receives a live copy of the build output.

    Returns:
        Tuple of (BuildRecord, BuildOutcome).

    Raises:
        InvalidRepositoryError: If repository is malformed.
        InvalidRefError: If commit or branch is not a valid git name.
            Nothing is recorded in either case.
    """
    split_repository(repository)
    check_commit(commit)
    check_branch(branch)

    build = create_build_record(session, repository, branch, commit)
    build.log_name = str(build.id)
    build.mark_running()
    session.flush()
    logger.info("Created build record %d for %s@%s", build.id, repository, commit)

    log = log_store.create(build.log_name)
    sink: OutputSink = TeeWriter(log, echo) if echo is not None else log
    request = BuildRequest(
        repository=repository, commit=commit, branch=branch, output_sink=sink
    )

    try:
        outcome = orchestrator.execute(request)
    except StageError as e:
        build.mark_failed(error_stage=e.stage, message=str(e))
        outcome = BuildOutcome(state=CommitState.ERROR, error=e)
        logger.error("Build %d failed: %s", build.id, e)
    else:
        insert_artifact(session, build.id, f"{repository}:{commit}")
        build.mark_succeeded()
        logger.info("Build %d succeeded", build.id)
    finally:
        try:
            log.close()
        except LogStoreError as e:
            logger.error("Build %d log was not stored: %s", build.id, e)
            build.log_name = None

    session.flush()
    return build, outcome


def get_build(session: Session, build_id: int) -> BuildRecord:
    """Get a build record by ID.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = session.get(BuildRecord, build_id)
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def list_builds(
    session: Session,
    repository: str | None = None,
    status: BuildStatus | None = None,
    limit: int = 100,
) -> list[BuildRecord]:
    """List build records with optional filters, newest first.

    Args:
        session: Database session.
        repository: Filter by repository identifier.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of BuildRecord instances.
    """
    stmt = select(BuildRecord)

    if repository is not None:
        stmt = stmt.where(BuildRecord.repository == repository)
    if status is not None:
        stmt = stmt.where(BuildRecord.status == status.value)

    stmt = stmt.order_by(BuildRecord.id.desc()).limit(limit)

    return list(session.execute(stmt).scalars().all())


def get_build_artifacts(session: Session, build_id: int) -> list[Artifact]:
    """Get artifacts for a build.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = get_build(session, build_id)
    return list(build.artifacts)


__all__ = [
    "BuildNotFoundError",
    "BuildServiceError",
    "build_resources",
    "create_build_record",
    "get_build",
    "get_build_artifacts",
    "insert_artifact",
    "list_builds",
    "new_docker_engine",
    "new_log_store",
    "new_orchestrator",
    "run_build",
]
