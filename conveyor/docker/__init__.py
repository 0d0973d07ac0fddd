"""Container engine collaborator.

This module handles:
- Pulling, building, inspecting, tagging and pushing images
- Registry login from configured credentials
- Translating docker SDK failures into typed errors
"""

from conveyor.docker.client import ContainerEngine, DockerEngine
from conveyor.docker.errors import (
    DockerError,
    RegistryAuthError,
    TagNotFoundError,
    from_docker_exception,
)

__all__ = [
    "ContainerEngine",
    "DockerEngine",
    "DockerError",
    "RegistryAuthError",
    "TagNotFoundError",
    "from_docker_exception",
]
