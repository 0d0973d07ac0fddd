"""Conveyor - build, publish and report container images for git commits.

This package checks out a commit of a source repository, builds a docker
image from it, pushes the image to a registry, and reports build progress
as commit statuses.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
