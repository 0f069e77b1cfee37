"""
syno-docker-update - Docker Engine and Docker Compose lifecycle for Synology DSM
"""

__version__ = "0.1.0"

from .core import DockerUpdater, UpdaterError

__all__ = ["DockerUpdater", "UpdaterError"]
