"""Best-effort image cache warming.

Before a build, previously published images for the branch (falling
back to "latest") are pulled so the docker layer cache can be reused.
A missing tag is expected; any other pull failure means the registry or
daemon is broken and is raised.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from conveyor.docker.client import ContainerEngine
from conveyor.docker.errors import TagNotFoundError
from conveyor.types import OutputSink

logger = logging.getLogger(__name__)


def cache_candidates(branch: str) -> list[str]:
    """Return the tags to try when warming the cache, in priority order."""
    if branch == "latest":
        return ["latest"]
    return [branch, "latest"]


def warm_cache(
    engine: ContainerEngine,
    repository: str,
    tags: Sequence[str],
    sink: OutputSink,
) -> str | None:
    """Pull the first available tag of repository.

    Tags are tried strictly in order until one pull succeeds.

    Args:
        engine: Container engine to pull with.
        repository: Image repository.
        tags: Candidate tags in priority order.
        sink: Stream receiving pull output.

    Returns:
        The tag that was pulled, or None if every candidate was missing.

    Raises:
        DockerError: On the first failure that is not a missing tag;
            later candidates are not attempted.
    """
    for tag in tags:
        try:
            engine.pull(repository, tag, sink)
        except TagNotFoundError:
            logger.info("No %s:%s in registry, trying next candidate", repository, tag)
            continue
        logger.info("Warmed cache from %s:%s", repository, tag)
        return tag

    logger.info("No cached image for %s, building from scratch", repository)
    return None


__all__ = ["cache_candidates", "warm_cache"]
