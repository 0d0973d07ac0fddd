"""Typed docker errors.

Callers branch on the exception type, never on message text. Errors from
the docker SDK are translated here, at the collaborator boundary, using
the SDK's exception classes and HTTP status codes.
"""

from __future__ import annotations

from docker.errors import APIError, DockerException, ImageNotFound, NotFound

# Registry responses meaning our credentials or access were rejected
AUTH_STATUS_CODES = frozenset({401, 403})


class DockerError(Exception):
    """Raised when a docker operation fails."""

    def __init__(self, message: str, code: str = "docker_error") -> None:
        super().__init__(message)
        self.code = code


class TagNotFoundError(DockerError):
    """Raised when a pulled tag does not exist in the repository."""

    def __init__(self, repository: str, tag: str) -> None:
        super().__init__(
            f"Tag {tag} not found in repository {repository}",
            code="tag_not_found",
        )
        self.repository = repository
        self.tag = tag


class RegistryAuthError(DockerError):
    """Raised when the registry rejects our credentials or access."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="registry_auth")


def from_docker_exception(
    error: DockerException,
    message: str,
    repository: str | None = None,
    tag: str | None = None,
) -> DockerError:
    """Translate a docker SDK exception into a DockerError.

    Args:
        error: Exception raised by the docker SDK.
        message: Context prefixed to the error text.
        repository: Repository of a pull, for not-found errors.
        tag: Tag of a pull, for not-found errors.

    Returns:
        TagNotFoundError for a missing pull target, RegistryAuthError for
        401/403 responses, DockerError otherwise.
    """
    if isinstance(error, NotFound) and repository is not None and tag is not None:
        return TagNotFoundError(repository, tag)

    if isinstance(error, ImageNotFound):
        return DockerError(f"{message}: {error}", code="image_not_found")

    if isinstance(error, APIError):
        if error.status_code in AUTH_STATUS_CODES:
            return RegistryAuthError(f"{message}: {error}")
        return DockerError(f"{message}: {error}", code="api_error")

    return DockerError(f"{message}: {error}", code="daemon_unavailable")


__all__ = [
    "AUTH_STATUS_CODES",
    "DockerError",
    "RegistryAuthError",
    "TagNotFoundError",
    "from_docker_exception",
]
