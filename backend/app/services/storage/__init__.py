"""
Artifact storage backends
"""

from .local_storage import LocalArtifactStorage

__all__ = ["LocalArtifactStorage"]
