"""Process exit codes shared by every abrctl command."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes enforced across the CLI."""

    OK = 0
    # Operator declined a required step or supplied an invalid choice.
    VALIDATION = 2
    # Docker unavailable, install folder or archive missing, lock contention.
    ENVIRONMENT = 3
    # Stop, extract, helper-start or copy failed inside a pipeline.
    PROVIDER = 4
