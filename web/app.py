"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. Routes are thin proxies to core APIs.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from conveyor import __version__
from conveyor.builds.service import build_resources
from conveyor.db import create_all_tables, get_engine, get_session_factory
from web.routers import builds, config, health


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the database and the build collaborators for the app's lifetime."""
    engine = get_engine()
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)
    with build_resources() as (orchestrator, log_store):
        app.state.orchestrator = orchestrator
        app.state.log_store = log_store
        yield
    engine.dispose()


def include_routers(application: FastAPI) -> None:
    """Mount every API router on application."""
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Conveyor API",
        description="HTTP API for building docker images from git commits "
        "and publishing them to a registry",
        version=__version__,
        lifespan=lifespan,
    )
    include_routers(application)
    return application


# Create the default application instance
app = create_app()
