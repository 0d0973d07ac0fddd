"""Dependencies for FastAPI route handlers.

Provides a database session, the build pipeline and the log store to
route handlers via FastAPI dependency injection. The pipeline and log
store are created once by the app lifespan and read from app.state.
Tests replace them through app.dependency_overrides.

Transaction boundaries are managed by conveyor.db.get_session:
- Session is created at request start
- On success (no exception): session is committed automatically
- On exception: session is rolled back automatically
- Session is closed after request completes
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from conveyor.builds.pipeline import Orchestrator
from conveyor.db import get_session
from conveyor.logs.store import LogStore


def get_session_factory(request: Request) -> sessionmaker[Session]:
    """Get session factory from app state."""
    factory: Any = request.app.state.session_factory
    return factory  # type: ignore[no-any-return]


def get_db(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> Generator[Session, None, None]:
    """Provide a database session for a request.

    Yields:
        Database session.
    """
    with get_session(session_factory) as session:
        yield session


def get_orchestrator(request: Request) -> Orchestrator:
    """Get the shared build pipeline from app state."""
    orchestrator: Orchestrator = request.app.state.orchestrator
    return orchestrator


def get_log_store(request: Request) -> LogStore:
    """Get the shared log store from app state."""
    log_store: LogStore = request.app.state.log_store
    return log_store
