"""Exception taxonomy for backup and restore workflows."""
from __future__ import annotations

from .exit_codes import ExitCode


class AbrError(RuntimeError):
    """Base class for failures that terminate an abrctl command."""

    exit_code: ExitCode = ExitCode.PROVIDER


class PreconditionError(AbrError):
    """Raised when the environment is not ready for the requested workflow."""

    exit_code = ExitCode.ENVIRONMENT


class StepFailure(AbrError):
    """Raised when an unrecoverable pipeline step fails."""

    exit_code = ExitCode.PROVIDER

    def __init__(self, step: str, message: str) -> None:
        """Record the failing *step* alongside the underlying *message*."""
        super().__init__(f"{step}: {message}")
        self.step = step
        self.detail = message


class UserDeclinedError(AbrError):
    """Raised when the operator refuses a step the workflow cannot skip."""

    exit_code = ExitCode.VALIDATION


__all__ = ["AbrError", "PreconditionError", "StepFailure", "UserDeclinedError"]
