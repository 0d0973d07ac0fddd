"""Source checkout and image build steps.

This module handles:
- Shallow cloning a branch and checking out the requested commit
- Running the image build against the checked-out tree
- Resolving the built image's descriptor
"""

from __future__ import annotations

import logging
from pathlib import Path

from conveyor.docker.client import ContainerEngine
from conveyor.source.git import SourceControl
from conveyor.types import ImageDescriptor, OutputSink

logger = logging.getLogger(__name__)

# Default history depth for clones
DEFAULT_CLONE_DEPTH = 50


def remote_url(template: str, repository: str) -> str:
    """Render the clone URL for a repository identifier.

    Args:
        template: URL template containing a `{repository}` field.
        repository: Repository identifier ("owner/name").

    Returns:
        Clone URL.
    """
    return template.format(repository=repository)


def checkout(
    source: SourceControl,
    url: str,
    branch: str,
    commit: str,
    working_dir: Path,
    sink: OutputSink,
    depth: int = DEFAULT_CLONE_DEPTH,
) -> None:
    """Clone branch of url into working_dir and check out commit."""
    source.clone(url, branch, depth, working_dir, sink)
    source.checkout(working_dir, commit, sink)


def build_image(
    engine: ContainerEngine,
    working_dir: Path,
    image_name: str,
    sink: OutputSink,
) -> ImageDescriptor:
    """Build working_dir into image_name and return its descriptor.

    Build tool failures propagate unchanged.
    """
    engine.build(working_dir, image_name, sink)
    image = engine.inspect(image_name)
    logger.info("Built %s (%s)", image_name, image.id[:19])
    return image


__all__ = ["DEFAULT_CLONE_DEPTH", "build_image", "checkout", "remote_url"]
