"""Provider interfaces for abrctl."""
from __future__ import annotations

from .docker import DockerError, DockerNotInstalledError, DockerProvider, DockerStatus, Mount

__all__ = [
    "DockerError",
    "DockerNotInstalledError",
    "DockerProvider",
    "DockerStatus",
    "Mount",
]
