"""abrctl package bootstrap.

Backup and restore tooling for a self-hosted Appwrite stack. The package keeps
its metadata here so packaging machinery and ``abrctl --version`` agree.
"""
from __future__ import annotations

__all__ = ["__version__", "get_version"]

# NOTE: The version is duplicated in ``pyproject.toml`` and managed by Hatch.
__version__ = "0.3.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
