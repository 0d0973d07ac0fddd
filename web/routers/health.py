"""Health check endpoints."""

from fastapi import APIRouter

from conveyor import __version__
from conveyor.config import get_settings

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Report liveness, version and how commit statuses are delivered."""
    settings = get_settings()
    return {
        "status": "ok",
        "version": __version__,
        "status_reporting": "github" if settings.github_token else "print",
    }


@router.get("/")
def root() -> dict[str, str]:
    return {"name": "Conveyor API", "version": __version__}
