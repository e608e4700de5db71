"""Backup and restore workflows composed from the engine components."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from .archive import extract_archive
from .capture import CaptureResult, VolumeCapturePipeline
from .catalog import ArchiveDescriptor, BackupCatalog
from .config import AppConfig
from .consistency import ConsistencyLevel, ConsistencyLevelSelector
from .errors import AbrError, PreconditionError, UserDeclinedError
from .lifecycle import LifecycleController, Outcome, TransitionResult
from .locking import STACK_LOCK, LockManager
from .logging import OperationScope
from .prompts import ChoiceProvider
from .providers.docker import DockerError, DockerProvider
from .remnants import ReconcileStatus, Remnant, RemnantDetector, RemnantReconciler
from .restore import Extractor, RestorePipeline, RestoreResult, RestoreState

CLEANUP_PROMPT = (
    "Previous installation remnants detected. Do you want to remove them "
    "for a clean installation?"
)


@dataclass(frozen=True, slots=True)
class VolumeSize:
    """Disk usage reported for a managed volume; ``size`` is ``None`` when absent."""

    name: str
    size: str | None


class Presenter(Protocol):
    """Display sink for workflow progress; never feeds back into decisions."""

    def status(self, message: str, *, level: str = "info") -> None:
        """Show a one-line status *message*."""
        ...

    def show_remnants(self, remnants: Sequence[Remnant]) -> None:
        """Render detected remnants."""
        ...

    def show_volume_sizes(self, sizes: Sequence[VolumeSize]) -> None:
        """Render the managed volume sizes."""
        ...


class Workflows:
    """Entry points for the backup and restore commands."""

    def __init__(
        self,
        config: AppConfig,
        docker: DockerProvider,
        locks: LockManager,
        chooser: ChoiceProvider,
        presenter: Presenter,
        *,
        extractor: Extractor = extract_archive,
    ) -> None:
        self.config = config
        self.docker = docker
        self.locks = locks
        self.chooser = chooser
        self.presenter = presenter
        self.lifecycle = LifecycleController(docker, config.stack.install_dir)
        self.detector = RemnantDetector(docker, config.stack)
        self.reconciler = RemnantReconciler(docker, config.stack)
        self.catalog = BackupCatalog(config.backups.root)
        self.capture_pipeline = VolumeCapturePipeline(config, docker, self.lifecycle)
        self.restore_pipeline = RestorePipeline(config, docker, locks, extractor=extractor)

    # Preconditions ----------------------------------------------------
    def ensure_runtime(self, op: OperationScope | None = None) -> None:
        """Raise :class:`PreconditionError` unless the docker daemon answers."""
        status = self.docker.probe()
        if status.available:
            _step(op, "docker.probe", "success", "")
            self.presenter.status("Docker is running.", level="success")
            return
        _step(op, "docker.probe", "error", status.detail)
        if not status.installed:
            raise PreconditionError("Docker is not installed on this system.")
        raise PreconditionError("Docker is not running. Please start Docker and try again.")

    def ensure_installation(self, op: OperationScope | None = None) -> None:
        """Raise :class:`PreconditionError` unless the install folder is present."""
        compose_file = self.config.stack.compose_file
        if not compose_file.is_file():
            _step(op, "install.check", "error", str(compose_file))
            raise PreconditionError(
                f"Install directory not detected: {compose_file} is missing."
            )
        _step(op, "install.check", "success", str(compose_file))
        self.presenter.status("Install directory detected.", level="success")

    # Backup -------------------------------------------------------------
    def volume_sizes(self) -> list[VolumeSize]:
        """Return the reported size of each managed volume."""
        usage = self.docker.volume_usage()
        sizes: list[VolumeSize] = []
        for volume in self.config.stack.volumes:
            match = next((item for item in usage if volume in str(item.get("Name", ""))), None)
            size = str(match.get("Size", "")) if match else ""
            sizes.append(VolumeSize(name=volume, size=size if size and size != "0B" else None))
        return sizes

    def run_backup(
        self,
        *,
        level: ConsistencyLevel | None = None,
        op: OperationScope | None = None,
    ) -> CaptureResult:
        """Run a backup at *level*, asking the operator when it is not preset."""
        self.ensure_runtime(op)
        self.ensure_installation(op)

        try:
            self.presenter.show_volume_sizes(self.volume_sizes())
        except DockerError as exc:
            _step(op, "volumes.sizes", "warning", str(exc))
            self.presenter.status(f"Error retrieving volume sizes: {exc}", level="warning")

        chosen = ConsistencyLevelSelector(self.chooser, level).select()
        _step(op, "backup.level", "info", chosen.value)

        with self.locks.lock(STACK_LOCK) as handle:
            if op is not None:
                op.set_lock_wait_ms(handle.wait_ms)
            result = self.capture_pipeline.capture(chosen, op=op)

        if result.after is not None and result.after.outcome is Outcome.FATAL:
            self.presenter.status(
                f"Could not {result.after.transition.value} the stack: {result.after.detail}. "
                "Recover it manually.",
                level="error",
            )
        return result

    # Restore ------------------------------------------------------------
    def run_restore(
        self,
        *,
        archive_name: str | None = None,
        assume_yes: bool = False,
        op: OperationScope | None = None,
        trace: list[RestoreState] | None = None,
    ) -> RestoreResult:
        """Clear remnants, pick an archive, restore it and restart the stack.

        Once the helper container stage was reached the stack is restarted even
        when the restore fails, and the failure is raised afterwards.
        """
        states = trace if trace is not None else []
        states.append(RestoreState.IDLE)
        try:
            self.ensure_runtime(op)
            self._clear_remnants(assume_yes, op, states)
            descriptor = self._choose_archive(archive_name, op, states)
            with self.locks.lock(STACK_LOCK) as handle:
                if op is not None:
                    op.set_lock_wait_ms(handle.wait_ms)
                result = self.restore_pipeline.restore(descriptor.path, op=op, trace=states)
        except AbrError:
            if RestoreState.HELPER_UP in states:
                states.append(RestoreState.LIFECYCLE_RESTART)
                restart = self._restart_stack(op)
                if not restart.ok:
                    self.presenter.status(
                        f"Stack restart failed: {restart.detail}", level="warning"
                    )
            states.append(RestoreState.FAILED)
            raise

        states.append(RestoreState.LIFECYCLE_RESTART)
        result.restart = self._restart_stack(op)
        if not result.restart.ok:
            result.warnings.append(f"Stack restart failed: {result.restart.detail}")
        states.append(RestoreState.DONE)
        return result

    def _restart_stack(self, op: OperationScope | None) -> TransitionResult:
        self.presenter.status("Restarting the stack (this can take a while)...")
        restart = self.lifecycle.restart()
        if restart.ok:
            _step(op, "stack.restart", "success", "")
        else:
            _step(op, "stack.restart", "error", restart.detail)
        return restart

    def _clear_remnants(
        self,
        assume_yes: bool,
        op: OperationScope | None,
        states: list[RestoreState],
    ) -> None:
        states.append(RestoreState.REMNANT_CHECK)
        report = self.detector.report()
        for warning in report.warnings:
            _step(op, "remnants.detect", "warning", warning)
            self.presenter.status(warning, level="warning")
        if report.clean:
            _step(op, "remnants.detect", "success", "clean")
            self.presenter.status("No remnants detected.", level="success")
            return

        _step(op, "remnants.detect", "info", [remnant.name for remnant in report.remnants])
        self.presenter.show_remnants(report.remnants)
        states.append(RestoreState.RECONCILE)
        consent = assume_yes or self.chooser.confirm(CLEANUP_PROMPT, default=True)
        outcome = self.reconciler.reconcile(report.remnants, consent, op=op)
        if outcome.status is ReconcileStatus.ABORTED:
            raise UserDeclinedError("Restoration requires a clean install.")
        for warning in outcome.warnings:
            self.presenter.status(warning, level="warning")
        self.presenter.status("Remnants removed.", level="success")

    def _choose_archive(
        self,
        archive_name: str | None,
        op: OperationScope | None,
        states: list[RestoreState],
    ) -> ArchiveDescriptor:
        states.append(RestoreState.CATALOG_SELECT)
        root = self.config.backups.root
        if not root.is_dir():
            raise PreconditionError(f"No backups directory found at {root}.")
        if archive_name:
            descriptor = self.catalog.find(archive_name)
            if descriptor is None:
                raise PreconditionError(f"Backup '{archive_name}' not found in {root}.")
        else:
            selected = self.catalog.select(self.chooser)
            if selected is None:
                raise PreconditionError(f"No backup files found in {root}.")
            descriptor = selected
        _step(op, "catalog.select", "success", descriptor.name)
        return descriptor


def _step(op: OperationScope | None, name: str, status: str, detail: object) -> None:
    if op is not None:
        op.add_step(name, status=status, detail=detail)


__all__ = ["CLEANUP_PROMPT", "Presenter", "VolumeSize", "Workflows"]
