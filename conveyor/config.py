"""Configuration settings for conveyor.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_build_dir() -> Path:
    """Return the default root directory for build checkouts."""
    return Path(tempfile.gettempdir()) / "conveyor" / "builds"


def _default_logs_dir() -> Path:
    """Return the default blob storage directory for build logs."""
    return Path.home() / ".local" / "share" / "conveyor"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "conveyor" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the CONVEYOR_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONVEYOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    build_dir: Path = Field(
        default_factory=_default_build_dir,
        description="Root directory where repositories are cloned",
    )
    keep_build_dir: bool = Field(
        default=False,
        description="Keep the working directory after a build finishes",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    # Registry
    docker_username: str | None = Field(
        default=None,
        description="Registry username used for pulls and pushes",
    )
    docker_password: SecretStr | None = Field(
        default=None,
        description="Registry password used for pulls and pushes",
    )
    docker_registry: str | None = Field(
        default=None,
        description="Registry host to log in to (Docker Hub if not set)",
    )

    # Source control
    remote_url_template: str = Field(
        default="https://github.com/{repository}.git",
        description="Clone URL template, formatted with the repository identifier",
    )
    clone_depth: int = Field(
        default=50,
        ge=1,
        description="History depth of the shallow clone",
    )

    # Commit statuses
    github_token: SecretStr | None = Field(
        default=None,
        description="GitHub token for commit statuses (no-op reporter if not set)",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    strict_status: bool = Field(
        default=False,
        description="Abort the build when the pending status cannot be reported",
    )

    # Log storage
    log_store: Literal["filesystem", "http"] = Field(
        default="filesystem",
        description="Blob storage backend for build logs",
    )
    logs_dir: Path = Field(
        default_factory=_default_logs_dir,
        description="Root directory for the filesystem log store",
    )
    logs_url: str | None = Field(
        default=None,
        description="Bucket URL for the HTTP log store",
    )

    # Retries
    status_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per commit status report",
    )
    push_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per pushed tag",
    )
    retry_backoff: float = Field(
        default=1.0,
        ge=0,
        description="Initial retry delay in seconds (doubled per attempt)",
    )

    # Timeouts (in seconds)
    stage_timeout: int = Field(
        default=3600,
        ge=1,
        description="Deadline for each git or docker invocation",
    )
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for status API and log store requests",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secrets are rendered masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
