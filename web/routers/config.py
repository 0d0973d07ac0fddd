"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter

from conveyor.config import get_settings

router = APIRouter()


@router.get("")
def get_config() -> dict[str, Any]:
    """Get effective configuration.

    Credentials are reported only as configured or not.

    Returns:
        Current configuration as JSON.
    """
    settings = get_settings()
    return {
        "build_dir": str(settings.build_dir),
        "keep_build_dir": settings.keep_build_dir,
        "db_url": settings.db_url,
        "remote_url_template": settings.remote_url_template,
        "clone_depth": settings.clone_depth,
        "docker_registry": settings.docker_registry,
        "docker_username": settings.docker_username,
        "docker_password_set": settings.docker_password is not None,
        "github_api_url": settings.github_api_url,
        "github_token_set": settings.github_token is not None,
        "strict_status": settings.strict_status,
        "log_store": settings.log_store,
        "logs_dir": str(settings.logs_dir),
        "logs_url": settings.logs_url,
        "status_retries": settings.status_retries,
        "push_retries": settings.push_retries,
        "retry_backoff": settings.retry_backoff,
        "stage_timeout": settings.stage_timeout,
        "http_timeout": settings.http_timeout,
        "log_level": settings.log_level,
    }
