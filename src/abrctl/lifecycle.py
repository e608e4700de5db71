"""Stack lifecycle transitions driven through ``docker compose``.

Each transition returns a :class:`TransitionResult` instead of raising so the
workflows can decide which failures abort and which are only reported. A
transition that finds the stack already in the target state is benign.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .consistency import Transition
from .providers.docker import DockerError, DockerProvider

ALREADY_PAUSED_MARKER = "already paused"


class Outcome(str, Enum):
    """Classification of a transition attempt."""

    OK = "ok"
    BENIGN = "benign"
    FATAL = "fatal"


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Outcome of a single lifecycle transition."""

    transition: Transition
    outcome: Outcome
    detail: str = ""

    @property
    def ok(self) -> bool:
        """Return ``True`` unless the transition failed outright."""
        return self.outcome is not Outcome.FATAL


class LifecycleController:
    """Stop, pause, resume and restart the stack in *project_dir*."""

    def __init__(self, docker: DockerProvider, project_dir: Path) -> None:
        self.docker = docker
        self.project_dir = project_dir

    def apply(self, transition: Transition) -> TransitionResult:
        """Dispatch *transition* to the matching operation."""
        handlers = {
            Transition.STOP: self.stop,
            Transition.PAUSE: self.pause,
            Transition.RESUME: self.resume,
            Transition.RESTART: self.restart,
        }
        return handlers[transition]()

    def stop(self) -> TransitionResult:
        """Bring the stack down; any failure is fatal."""
        return self._compose(Transition.STOP, "down")

    def pause(self) -> TransitionResult:
        """Pause the stack, accepting an already paused stack as success."""
        if self._already_paused():
            return TransitionResult(Transition.PAUSE, Outcome.BENIGN, "Stack already paused.")
        try:
            self.docker.compose(self.project_dir, "pause")
        except DockerError as exc:
            if self._is_already_paused_error(exc) or self._already_paused():
                return TransitionResult(Transition.PAUSE, Outcome.BENIGN, str(exc))
            return TransitionResult(Transition.PAUSE, Outcome.FATAL, str(exc))
        return TransitionResult(Transition.PAUSE, Outcome.OK)

    def resume(self) -> TransitionResult:
        """Unpause the stack."""
        return self._compose(Transition.RESUME, "unpause")

    def restart(self) -> TransitionResult:
        """Bring the stack up again; this may pull images and take a while."""
        return self._compose(Transition.RESTART, "up", "-d")

    # ------------------------------------------------------------------
    def _compose(self, transition: Transition, *args: str) -> TransitionResult:
        try:
            self.docker.compose(self.project_dir, *args)
        except DockerError as exc:
            return TransitionResult(transition, Outcome.FATAL, str(exc))
        return TransitionResult(transition, Outcome.OK)

    def _already_paused(self) -> bool:
        # Runtime state is authoritative; the error text is only a fallback.
        try:
            paused = self.docker.compose_container_ids(self.project_dir, "paused")
            running = self.docker.compose_container_ids(self.project_dir, "running")
        except DockerError:
            return False
        return bool(paused) and not running

    @staticmethod
    def _is_already_paused_error(exc: DockerError) -> bool:
        text = " ".join([str(exc), exc.stderr or "", exc.stdout or ""]).lower()
        return ALREADY_PAUSED_MARKER in text


__all__ = ["LifecycleController", "Outcome", "TransitionResult"]
