"""FastAPI web application for Conveyor.

This module provides the HTTP API that mirrors the CLI: trigger a build
for a commit and inspect build records and artifacts.

All business logic is delegated to core modules in conveyor/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
