"""Build orchestration module.

This module handles:
- Checking out commits and building images
- Warming the image cache from previously published tags
- Tagging and pushing images
- Build records and artifacts
"""

from conveyor.builds.models import Artifact, BuildRecord

__all__ = ["Artifact", "BuildRecord"]

# Submodules are imported explicitly (conveyor.builds.pipeline, etc.)
