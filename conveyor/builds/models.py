"""Build ORM models.

This module defines the BuildRecord and Artifact models for storing
build executions and the images they produced.
"""

from datetime import datetime

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from conveyor.db import Base
from conveyor.types import BuildStatus


class BuildRecord(Base):
    """ORM model for build execution records.

    A BuildRecord captures a single pipeline execution for a repository,
    branch and commit, including its outcome and where its log lives.

    Attributes:
        id: Primary key.
        repository: Repository identifier ("owner/name").
        branch: Branch the commit belongs to.
        commit: Commit that was built.
        status: Build status (pending, running, succeeded, failed).
        requested_at: Timestamp when build was requested.
        started_at: Timestamp when build started executing.
        finished_at: Timestamp when build finished.
        log_name: Name the build log was stored under.
        error_stage: Pipeline stage that failed.
        error_message: Error message if build failed.
    """

    __tablename__ = "builds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    repository: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    branch: Mapped[str] = mapped_column(String(255), nullable=False)
    commit: Mapped[str] = mapped_column(String(64), nullable=False)

    # Status and timing
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.PENDING.value, index=True
    )
    requested_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    log_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Error tracking
    error_stage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    artifacts: Mapped[list["Artifact"]] = relationship(
        "Artifact", back_populates="build", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_builds_repository_commit", "repository", "commit"),)

    def __repr__(self) -> str:
        """Return string representation of BuildRecord."""
        return (
            f"<BuildRecord(id={self.id}, repository='{self.repository}', "
            f"commit='{self.commit[:12]}', status='{self.status}')>"
        )

    def mark_running(self) -> None:
        """Mark this build as running."""
        self.status = BuildStatus.RUNNING.value
        self.started_at = datetime.now()

    def mark_succeeded(self) -> None:
        """Mark this build as succeeded."""
        self.status = BuildStatus.SUCCEEDED.value
        self.finished_at = datetime.now()

    def mark_failed(
        self, error_stage: str | None = None, message: str | None = None
    ) -> None:
        """Mark this build as failed.

        Args:
            error_stage: Pipeline stage that failed.
            message: Error message details.
        """
        self.status = BuildStatus.FAILED.value
        self.finished_at = datetime.now()
        if error_stage:
            self.error_stage = error_stage
        if message:
            self.error_message = message

    def is_succeeded(self) -> bool:
        """Check if this build succeeded."""
        return self.status == BuildStatus.SUCCEEDED.value


class Artifact(Base):
    """ORM model for images produced by builds.

    Attributes:
        id: Primary key.
        build_id: Foreign key to BuildRecord.
        image: Reference of the produced image.
        created_at: Timestamp when the artifact was recorded.
    """

    __tablename__ = "artifacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    build_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("builds.id"), nullable=False, index=True
    )
    image: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    build: Mapped["BuildRecord"] = relationship(
        "BuildRecord", back_populates="artifacts"
    )

    def __repr__(self) -> str:
        """Return string representation of Artifact."""
        return (
            f"<Artifact(id={self.id}, build_id={self.build_id}, "
            f"image='{self.image}')>"
        )


__all__ = ["Artifact", "BuildRecord"]
