"""Build endpoints.

- GET /builds - List builds
- GET /builds/{id} - Get build by ID
- GET /builds/{id}/artifacts - Get artifacts for a build
- POST /builds - Run a build for one commit
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from conveyor.builds.models import Artifact, BuildRecord
from conveyor.builds.pipeline import Orchestrator
from conveyor.builds.service import (
    BuildNotFoundError,
    get_build,
    get_build_artifacts,
    list_builds,
    run_build,
)
from conveyor.logs.store import LogStore
from conveyor.source.git import InvalidRefError
from conveyor.status.reporter import InvalidRepositoryError
from conveyor.types import BuildStatus
from web.deps import get_db, get_log_store, get_orchestrator

router = APIRouter()


class BuildRequestBody(BaseModel):
    """Request body for starting a build."""

    repository: str = Field(description="Repository as owner/name")
    commit: str = Field(min_length=1)
    branch: str = Field(min_length=1)


def _build_to_dict(build: BuildRecord) -> dict[str, Any]:
    """Convert a build record to a dictionary."""
    return {
        "id": build.id,
        "repository": build.repository,
        "branch": build.branch,
        "commit": build.commit,
        "status": build.status,
        "requested_at": build.requested_at.isoformat() if build.requested_at else None,
        "started_at": build.started_at.isoformat() if build.started_at else None,
        "finished_at": build.finished_at.isoformat() if build.finished_at else None,
        "log_name": build.log_name,
        "error_stage": build.error_stage,
        "error_message": build.error_message,
        "artifact_count": len(build.artifacts),
    }


def _artifact_to_dict(artifact: Artifact) -> dict[str, Any]:
    """Convert an artifact to a dictionary."""
    return {
        "id": artifact.id,
        "build_id": artifact.build_id,
        "image": artifact.image,
        "created_at": artifact.created_at.isoformat() if artifact.created_at else None,
    }


def _not_found(build_id: int) -> HTTPException:
    return HTTPException(
        status_code=http_status.HTTP_404_NOT_FOUND,
        detail={
            "code": "build_not_found",
            "message": f"Build not found: {build_id}",
        },
    )


@router.get("")
def list_builds_endpoint(
    repository: str | None = Query(None, description="Filter by repository"),
    status: str | None = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """List build records, newest first."""
    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_status",
                    "message": f"Invalid status: {status}. Valid values: pending, running, succeeded, failed",
                },
            ) from None

    builds = list_builds(db, repository=repository, status=status_filter, limit=limit)
    return [_build_to_dict(b) for b in builds]


@router.post("", status_code=http_status.HTTP_201_CREATED)
def run_build_endpoint(
    body: BuildRequestBody,
    db: Session = Depends(get_db),
    orchestrator: Orchestrator = Depends(get_orchestrator),
    log_store: LogStore = Depends(get_log_store),
) -> dict[str, Any]:
    """Run the pipeline for one commit and return the build record.

    The request blocks until the build finishes. A failed build is still
    recorded and returned; its status is "failed".
    """
    try:
        build, _ = run_build(
            db,
            repository=body.repository,
            commit=body.commit,
            branch=body.branch,
            orchestrator=orchestrator,
            log_store=log_store,
        )
    except (InvalidRepositoryError, InvalidRefError) as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": str(e)},
        ) from None
    return _build_to_dict(build)


@router.get("/{build_id}")
def get_build_endpoint(
    build_id: int,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Get a build record by ID."""
    try:
        build = get_build(db, build_id)
    except BuildNotFoundError:
        raise _not_found(build_id) from None
    return _build_to_dict(build)


@router.get("/{build_id}/artifacts")
def get_build_artifacts_endpoint(
    build_id: int,
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    """Get the images produced by a build."""
    try:
        artifacts = get_build_artifacts(db, build_id)
    except BuildNotFoundError:
        raise _not_found(build_id) from None
    return [_artifact_to_dict(a) for a in artifacts]
