"""Commit status reporters.

This module handles:
- Validating and splitting "owner/name" repository identifiers
- Creating GitHub commit statuses with bounded retries
- A no-op reporter used when no token is configured
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Protocol, TextIO

import httpx

from conveyor.types import CommitState

logger = logging.getLogger(__name__)

# Commit status context identifying this pipeline
STATUS_CONTEXT = "container/docker"

# HTTP statuses worth retrying
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class InvalidRepositoryError(ValueError):
    """Raised when a repository identifier is not in "owner/name" form."""

    def __init__(self, repository: str, code: str = "invalid_repository") -> None:
        super().__init__(f"Invalid repository identifier: {repository!r}")
        self.repository = repository
        self.code = code


class StatusReportError(Exception):
    """Raised when a commit status cannot be created."""

    def __init__(self, message: str, code: str = "status_error") -> None:
        super().__init__(message)
        self.code = code


def split_repository(repository: str) -> tuple[str, str]:
    """Split an "owner/name" identifier.

    Args:
        repository: Repository identifier.

    Returns:
        Tuple of (owner, name).

    Raises:
        InvalidRepositoryError: Unless there is exactly one "/" with
            non-empty text on both sides.
    """
    owner, sep, name = repository.partition("/")
    if not (sep and owner and name) or "/" in name:
        raise InvalidRepositoryError(repository)
    if any(c.isspace() for c in repository):
        raise InvalidRepositoryError(repository)
    return owner, name


class StatusReporter(Protocol):
    """Reports build state transitions for a commit."""

    def report(self, repository: str, commit: str, state: CommitState) -> None: ...


class NullStatusReporter:
    """Reporter that prints transitions instead of calling an API."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream

    def report(self, repository: str, commit: str, state: CommitState) -> None:
        owner, name = split_repository(repository)
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write(
            f"Updating status of {commit} on {owner}/{name} to "
            f"{CommitState(state).value}\n"
        )
        stream.flush()


class GitHubStatusReporter:
    """Reporter that creates GitHub commit statuses.

    The client may be shared; credentials are sent per request.
    Transport errors and 429/5xx responses are retried up to `retries`
    attempts in total, sleeping `backoff * 2**attempt` seconds in between.
    """

    def __init__(
        self,
        client: httpx.Client,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        context: str = STATUS_CONTEXT,
        retries: int = 3,
        backoff: float = 1.0,
    ) -> None:
        self.client = client
        self.headers = {"Accept": "application/vnd.github+json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.api_url = api_url.rstrip("/")
        self.context = context
        self.retries = max(1, retries)
        self.backoff = backoff

    def report(self, repository: str, commit: str, state: CommitState) -> None:
        """Create a commit status.

        Raises:
            InvalidRepositoryError: If repository is malformed.
            StatusReportError: If every attempt fails.
        """
        owner, name = split_repository(repository)
        url = f"{self.api_url}/repos/{owner}/{name}/statuses/{commit}"
        payload = {"state": CommitState(state).value, "context": self.context}

        last_error = ""
        for attempt in range(self.retries):
            if attempt:
                time.sleep(self.backoff * 2 ** (attempt - 1))
            try:
                response = self.client.post(url, json=payload, headers=self.headers)
            except httpx.RequestError as e:
                last_error = f"network error: {e}"
                logger.warning(
                    "Status %s for %s@%s failed (attempt %d/%d): %s",
                    payload["state"],
                    repository,
                    commit[:12],
                    attempt + 1,
                    self.retries,
                    last_error,
                )
                continue

            if response.is_success:
                logger.debug(
                    "Reported %s for %s@%s", payload["state"], repository, commit[:12]
                )
                return

            last_error = f"HTTP {response.status_code} {response.reason_phrase}"
            if response.status_code not in RETRYABLE_STATUS_CODES:
                break
            logger.warning(
                "Status %s for %s@%s failed (attempt %d/%d): %s",
                payload["state"],
                repository,
                commit[:12],
                attempt + 1,
                self.retries,
                last_error,
            )

        raise StatusReportError(
            f"Failed to report {payload['state']} for {repository}@{commit}: "
            f"{last_error}"
        )


def new_status_reporter(
    token: str | None,
    client: httpx.Client | None = None,
    api_url: str = "https://api.github.com",
    retries: int = 3,
    backoff: float = 1.0,
    fallback: TextIO | None = None,
) -> StatusReporter:
    """Select a reporter by whether a token is configured.

    Args:
        token: GitHub token, or None/empty for the no-op reporter.
        client: HTTP client for the GitHub reporter. The caller owns it
            and closes it. Required when a token is set.
        api_url: GitHub API base URL.
        retries: Attempts per report.
        backoff: Initial retry delay in seconds.
        fallback: Stream for the no-op reporter (stdout if None).

    Returns:
        A StatusReporter.
    """
    if not token:
        logger.info("No GitHub token configured, commit statuses will be printed")
        return NullStatusReporter(fallback)

    if client is None:
        raise ValueError("An HTTP client is required for the GitHub reporter")
    return GitHubStatusReporter(
        client, token=token, api_url=api_url, retries=retries, backoff=backoff
    )


__all__ = [
    "STATUS_CONTEXT",
    "GitHubStatusReporter",
    "InvalidRepositoryError",
    "NullStatusReporter",
    "StatusReportError",
    "StatusReporter",
    "new_status_reporter",
    "split_repository",
]
