"""Image tagging and publication.

Tags are applied and pushed in the given order. The first failure stops
the sequence; tags applied or pushed before it are left in place.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from conveyor.docker.client import ContainerEngine
from conveyor.docker.errors import DockerError, RegistryAuthError
from conveyor.types import OutputSink

logger = logging.getLogger(__name__)


def tag_image(engine: ContainerEngine, image: str, tags: Sequence[str]) -> None:
    """Force-apply each tag to image.

    Raises:
        DockerError: From the first tag that fails.
    """
    for tag in tags:
        engine.tag(image, tag, force=True)
        logger.debug("Tagged %s:%s", image, tag)


def push_image(
    engine: ContainerEngine,
    image: str,
    sink: OutputSink,
    tags: Sequence[str],
    retries: int = 1,
    backoff: float = 1.0,
) -> None:
    """Push each tag of image to the registry.

    Each push is attempted up to `retries` times, sleeping
    `backoff * 2**attempt` seconds between attempts. Authentication
    failures are not retried.

    Raises:
        DockerError: From the first tag whose push keeps failing.
    """
    for tag in tags:
        _push_with_retry(engine, image, tag, sink, max(1, retries), backoff)


def _push_with_retry(
    engine: ContainerEngine,
    image: str,
    tag: str,
    sink: OutputSink,
    retries: int,
    backoff: float,
) -> None:
    for attempt in range(retries):
        try:
            engine.push(image, tag, sink)
            return
        except RegistryAuthError:
            raise
        except DockerError as e:
            if attempt + 1 >= retries:
                raise
            delay = backoff * 2**attempt
            logger.warning(
                "Push of %s:%s failed (attempt %d/%d), retrying in %.1fs: %s",
                image,
                tag,
                attempt + 1,
                retries,
                delay,
                e,
            )
            time.sleep(delay)


__all__ = ["push_image", "tag_image"]
