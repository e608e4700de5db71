"""Detection and removal of leftovers from a previous stack installation."""
from __future__ import annotations

import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import StackConfig
from .logging import OperationScope
from .providers.docker import DockerError, DockerProvider


class RemnantKind(str, Enum):
    """Kinds of leftover state a previous installation can leave behind."""

    CONTAINER = "Container"
    VOLUME = "Volume"
    FOLDER = "Folder"


@dataclass(frozen=True, slots=True)
class Remnant:
    """A single leftover object."""

    name: str
    kind: RemnantKind


@dataclass(slots=True)
class DetectionReport:
    """Remnants found plus the queries that could not be answered."""

    remnants: list[Remnant] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        """Return ``True`` when nothing was found."""
        return not self.remnants


class RemnantDetector:
    """Look for containers, volumes and folders belonging to the stack."""

    def __init__(self, docker: DockerProvider, stack: StackConfig) -> None:
        self.docker = docker
        self.stack = stack

    def detect(self) -> list[Remnant]:
        """Return every remnant found; an empty list means a clean host."""
        return self.report().remnants

    def report(self) -> DetectionReport:
        """Return remnants along with warnings for failed queries."""
        report = DetectionReport()
        queries: list[tuple[RemnantKind, Callable[[str], list[str]]]] = [
            (RemnantKind.CONTAINER, self.docker.container_names),
            (RemnantKind.VOLUME, self.docker.volume_names),
        ]
        for kind, query in queries:
            try:
                names = query(self.stack.project)
            except DockerError as exc:
                report.warnings.append(f"Could not list {kind.value.lower()}s: {exc}")
                continue
            report.remnants.extend(Remnant(name=name, kind=kind) for name in names)

        if self.stack.install_dir.exists():
            report.remnants.append(
                Remnant(name=str(self.stack.install_dir), kind=RemnantKind.FOLDER)
            )
        return report


class ReconcileStatus(str, Enum):
    """Outcome of reconciling remnants."""

    CLEAN = "clean"
    ABORTED = "aborted"


@dataclass(slots=True)
class ReconcileResult:
    """What reconciliation removed and what it could not."""

    status: ReconcileStatus
    removed: dict[str, list[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


class RemnantReconciler:
    """Remove remnants in a fixed order once the operator agrees."""

    def __init__(self, docker: DockerProvider, stack: StackConfig) -> None:
        self.docker = docker
        self.stack = stack

    def reconcile(
        self,
        remnants: Sequence[Remnant],
        consent: bool,
        *,
        op: OperationScope | None = None,
    ) -> ReconcileResult:
        """Return ``CLEAN`` after removal, or ``ABORTED`` without consent.

        Containers labelled with the compose project go first, then volumes
        matching the project name, then images in the stack's namespace, and
        finally the install folder. A failing category is recorded and the
        next one still runs.
        """
        if not remnants:
            return ReconcileResult(status=ReconcileStatus.CLEAN)
        if not consent:
            if op is not None:
                op.add_step("remnants.reconcile", status="error", detail="user-declined")
            return ReconcileResult(status=ReconcileStatus.ABORTED)

        result = ReconcileResult(status=ReconcileStatus.CLEAN)
        label = f"com.docker.compose.project={self.stack.project}"
        categories: list[tuple[str, Callable[[], list[str]], Callable[[list[str]], None]]] = [
            (
                "containers",
                lambda: self.docker.container_ids_by_label(label),
                self.docker.remove_containers,
            ),
            (
                "volumes",
                lambda: self.docker.volume_names(self.stack.project),
                self.docker.remove_volumes,
            ),
            (
                "images",
                lambda: self.docker.image_ids(self.stack.image_namespace),
                self.docker.remove_images,
            ),
        ]
        for category, find, remove in categories:
            step = f"remnants.remove.{category}"
            try:
                found = find()
                if found:
                    remove(found)
            except DockerError as exc:
                result.warnings.append(f"Failed to remove {category}: {exc}")
                if op is not None:
                    op.add_step(step, status="warning", detail=str(exc))
                continue
            result.removed[category] = found
            if op is not None:
                op.add_step(step, status="success" if found else "skipped", detail=len(found))

        self._remove_folder(result, op)
        return result

    def _remove_folder(self, result: ReconcileResult, op: OperationScope | None) -> None:
        folder = self.stack.install_dir
        if not folder.exists():
            result.removed["folder"] = []
            if op is not None:
                op.add_step("remnants.remove.folder", status="skipped", detail=str(folder))
            return
        try:
            shutil.rmtree(folder)
        except OSError as exc:
            result.warnings.append(f"Failed to remove {folder}: {exc}")
            if op is not None:
                op.add_step("remnants.remove.folder", status="warning", detail=str(exc))
            return
        result.removed["folder"] = [str(folder)]
        if op is not None:
            op.add_step("remnants.remove.folder", status="success", detail=str(folder))


__all__ = [
    "DetectionReport",
    "ReconcileResult",
    "ReconcileStatus",
    "Remnant",
    "RemnantDetector",
    "RemnantKind",
    "RemnantReconciler",
]
