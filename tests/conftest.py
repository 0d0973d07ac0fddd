"""Pytest configuration and shared fixtures.

Provides in-memory fakes for the pipeline collaborators (git, docker,
commit statuses, blob storage) and an in-memory SQLite database.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conveyor.builds.pipeline import Orchestrator
from conveyor.db import Base
from conveyor.types import CommitState, ImageDescriptor


class FakeSource:
    """SourceControl fake that records calls and creates a Dockerfile."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.calls: list[tuple] = []
        self.clone_error: Exception | None = None
        self.checkout_error: Exception | None = None

    def clone(self, remote_url, branch, depth, dest_dir, sink):
        call = ("clone", remote_url, branch, depth, Path(dest_dir))
        self.calls.append(call)
        self.events.append(call)
        sink.write(f"Cloning into '{dest_dir}'...\n".encode())
        if self.clone_error is not None:
            raise self.clone_error
        (Path(dest_dir) / "Dockerfile").write_text("FROM scratch\n")

    def checkout(self, dest_dir, commit, sink):
        call = ("checkout", Path(dest_dir), commit)
        self.calls.append(call)
        self.events.append(call)
        if self.checkout_error is not None:
            raise self.checkout_error


class FakeEngine:
    """ContainerEngine fake with per-operation failure injection."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.calls: list[tuple] = []
        self.pull_errors: dict[str, Exception] = {}
        self.build_error: Exception | None = None
        self.tag_errors: dict[str, Exception] = {}
        # Errors raised by successive push attempts of a tag
        self.push_errors: dict[str, list[Exception]] = {}

    def _record(self, *call) -> None:
        self.calls.append(call)
        self.events.append(call)

    def ops(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def pull(self, repository, tag, sink):
        self._record("pull", repository, tag)
        sink.write(f"pulling {repository}:{tag}\n".encode())
        if tag in self.pull_errors:
            raise self.pull_errors[tag]

    def build(self, context_dir, image_name, sink):
        self._record("build", image_name, Path(context_dir))
        sink.write(b"Step 1/1 : FROM scratch\n")
        if self.build_error is not None:
            raise self.build_error

    def inspect(self, name):
        self._record("inspect", name)
        return ImageDescriptor(
            id="sha256:" + "ab" * 32,
            name=name,
            repo_tags=[f"{name}:latest"],
            created="2024-05-01T12:00:00Z",
        )

    def tag(self, image, tag, force=True):
        self._record("tag", image, tag, force)
        if tag in self.tag_errors:
            raise self.tag_errors[tag]

    def push(self, image, tag, sink):
        self._record("push", image, tag)
        sink.write(f"pushing {image}:{tag}\n".encode())
        errors = self.push_errors.get(tag)
        if errors:
            raise errors.pop(0)


class RecordingReporter:
    """StatusReporter fake that records every report."""

    def __init__(self, events: list) -> None:
        self.events = events
        self.reports: list[tuple[str, str, CommitState]] = []
        self.errors: dict[CommitState, Exception] = {}

    def report(self, repository, commit, state):
        self.reports.append((repository, commit, state))
        self.events.append(("report", state))
        if state in self.errors:
            raise self.errors[state]

    @property
    def states(self) -> list[CommitState]:
        return [r[2] for r in self.reports]


class MemoryBlobStore:
    """BlobStore fake that keeps every put."""

    def __init__(self) -> None:
        self.puts: list[dict] = []
        self.error: Exception | None = None

    def put(self, key, body, content_type="application/octet-stream", acl=None):
        if self.error is not None:
            raise self.error
        self.puts.append(
            {"key": key, "body": body, "content_type": content_type, "acl": acl}
        )


@pytest.fixture
def events() -> list:
    """Shared, ordered record of calls across all fakes."""
    return []


@pytest.fixture
def fake_source(events) -> FakeSource:
    return FakeSource(events)


@pytest.fixture
def fake_engine(events) -> FakeEngine:
    return FakeEngine(events)


@pytest.fixture
def reporter(events) -> RecordingReporter:
    return RecordingReporter(events)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def build_root(tmp_path) -> Path:
    return tmp_path / "builds"


@pytest.fixture
def orchestrator(fake_source, fake_engine, reporter, build_root) -> Orchestrator:
    """Orchestrator wired to the fakes, without retry delays."""
    return Orchestrator(
        source=fake_source,
        engine=fake_engine,
        reporter=reporter,
        build_dir=build_root,
        remote_url_template="https://git.example.com/{repository}.git",
        push_retries=1,
        retry_backoff=0,
    )


@pytest.fixture
def db_engine():
    """Create an in-memory SQLite engine for testing."""
    from conveyor.builds import models  # noqa: F401

    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session(db_engine):
    """Create a session for testing."""
    factory = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()
