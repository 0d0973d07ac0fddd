"""Database engine and session management for conveyor.

Builds and artifacts live in one SQL database, SQLite by default. The
CLI and the API both open sessions through get_session(), so a build
record is committed exactly when the command or request that ran it
completes without error.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from conveyor.config import get_settings

SQLITE_PREFIX = "sqlite:///"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_url: str | None = None) -> Engine:
    """Create the engine for db_url, or for the configured database.

    For SQLite files the parent directory is created, connections may be
    shared across threads (the API serves requests from a pool) and
    foreign keys are enforced on every connection.
    """
    if db_url is None:
        db_url = get_settings().db_url

    connect_args: dict[str, Any] = {}
    sqlite = db_url.startswith("sqlite")
    if sqlite:
        connect_args["check_same_thread"] = False
        db_path = db_url.removeprefix(SQLITE_PREFIX)
        if db_url.startswith(SQLITE_PREFIX) and db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(db_url, connect_args=connect_args, echo=False)
    if sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory bound to engine.

    Objects stay readable after commit so results can be rendered once
    the transaction is closed.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def get_session(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations.

    Commits when the block exits normally, rolls back when it raises.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables(engine: Engine) -> None:
    """Create the builds and artifacts tables if they do not exist."""
    # Register models with the mapper before creating tables
    from conveyor.builds import models as builds_models  # noqa: F401

    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
]
