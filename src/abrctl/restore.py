"""Restore pipeline: stage an archive and replay it into the live volumes.

The selected archive is copied to a staging file, extracted into the staging
directory and copied through a fixed-name helper container whose mounts are
the managed volumes and the install folder. Teardown runs on every exit path:
the helper is stopped and removed, then the staged copy and the extraction
directory are deleted whether or not the restore succeeded.
"""
from __future__ import annotations

import shutil
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .archive import extract_archive
from .config import AppConfig
from .errors import PreconditionError, StepFailure
from .lifecycle import TransitionResult
from .locking import RESTORE_HELPER_LOCK, LockManager
from .logging import OperationScope
from .providers.docker import DockerError, DockerProvider, Mount

RESTORE_MOUNT_ROOT = "/backup_restore"
IDLE_COMMAND = ("tail", "-f", "/dev/null")

Extractor = Callable[..., None]


class RestoreState(str, Enum):
    """States a restore run moves through."""

    IDLE = "idle"
    REMNANT_CHECK = "remnant-check"
    RECONCILE = "reconcile"
    CATALOG_SELECT = "catalog-select"
    STAGE = "stage"
    EXTRACT = "extract"
    HELPER_UP = "helper-up"
    COPY_IN = "copy-in"
    CLEANUP = "cleanup"
    LIFECYCLE_RESTART = "lifecycle-restart"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class RestoreResult:
    """Outcome of a restore run."""

    archive: Path
    staged: Path
    restored: bool = False
    kept_staging: bool = False
    restart: TransitionResult | None = None
    warnings: list[str] = field(default_factory=list)
    trace: list[RestoreState] = field(default_factory=list)


class RestorePipeline:
    """Replay an archive into the stack's volumes via a helper container."""

    def __init__(
        self,
        config: AppConfig,
        docker: DockerProvider,
        locks: LockManager,
        *,
        extractor: Extractor = extract_archive,
    ) -> None:
        self.config = config
        self.docker = docker
        self.locks = locks
        self.extractor = extractor

    @property
    def staged_archive(self) -> Path:
        """Return the canonical staging copy location."""
        return self.config.restore.staging_archive

    @property
    def staging_dir(self) -> Path:
        """Return the extraction directory."""
        return self.config.restore.staging_dir

    def helper_mounts(self) -> list[Mount]:
        """Return the restore-target mounts for the helper container."""
        stack = self.config.stack
        mounts = [Mount(volume, f"{RESTORE_MOUNT_ROOT}/{volume}") for volume in stack.volumes]
        install_target = f"{RESTORE_MOUNT_ROOT}/{stack.install_dir.name}"
        mounts.append(Mount(str(stack.install_dir), install_target))
        return mounts

    def discard_staging(self) -> None:
        """Delete the staged archive and the extraction directory; safe to repeat."""
        self.staged_archive.unlink(missing_ok=True)
        shutil.rmtree(self.staging_dir, ignore_errors=True)

    def restore(
        self,
        archive: Path,
        *,
        op: OperationScope | None = None,
        trace: list[RestoreState] | None = None,
    ) -> RestoreResult:
        """Restore *archive*; raise :class:`StepFailure` when a step fails."""
        if not archive.is_file():
            raise PreconditionError(f"Backup archive {archive} not found.")
        result = RestoreResult(
            archive=archive,
            staged=self.staged_archive,
            trace=trace if trace is not None else [],
        )
        with self._staged(archive, result, op) as staged:
            self._extract(staged, result, op)
            with self._helper(result, op) as helper:
                result.trace.append(RestoreState.COPY_IN)
                try:
                    self.docker.copy_to_container(self.staging_dir, helper, RESTORE_MOUNT_ROOT)
                except DockerError as exc:
                    _step(op, "restore.copy", "error", str(exc))
                    raise StepFailure("copy", str(exc)) from exc
                _step(op, "restore.copy", "success", helper)
        result.restored = True
        return result

    # ------------------------------------------------------------------
    @contextmanager
    def _staged(
        self,
        archive: Path,
        result: RestoreResult,
        op: OperationScope | None,
    ) -> Iterator[Path]:
        staged = self.staged_archive
        result.trace.append(RestoreState.STAGE)
        failed = True
        try:
            try:
                staged.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(archive, staged)
            except OSError as exc:
                _step(op, "restore.stage", "error", str(exc))
                raise StepFailure("stage", f"Cannot copy {archive} to {staged}: {exc}") from exc
            _step(op, "restore.stage", "success", str(staged))
            yield staged
            failed = False
        finally:
            result.trace.append(RestoreState.CLEANUP)
            if failed and self.config.restore.keep_staging_on_failure:
                result.kept_staging = True
                _step(op, "restore.cleanup", "warning", f"kept {staged} and {self.staging_dir}")
            else:
                self.discard_staging()
                _step(op, "restore.cleanup", "success", str(staged))

    def _extract(self, staged: Path, result: RestoreResult, op: OperationScope | None) -> None:
        result.trace.append(RestoreState.EXTRACT)
        shutil.rmtree(self.staging_dir, ignore_errors=True)
        try:
            self.extractor(
                staged,
                self.staging_dir.parent,
                tar_bin=self.config.docker.tar_bin,
                timeout=self.config.docker.command_timeout,
            )
        except StepFailure as exc:
            _step(op, "restore.extract", "error", exc.detail)
            raise
        if not self.staging_dir.is_dir():
            message = f"Archive did not contain a '{self.staging_dir.name}/' folder."
            _step(op, "restore.extract", "error", message)
            raise StepFailure("extract", message)
        _step(op, "restore.extract", "success", str(self.staging_dir))

    @contextmanager
    def _helper(self, result: RestoreResult, op: OperationScope | None) -> Iterator[str]:
        restore_cfg = self.config.restore
        name = restore_cfg.helper_name
        with self.locks.lock(RESTORE_HELPER_LOCK) as handle:
            _step(op, "restore.helper.lock", "success", f"waited {handle.wait_ms} ms")
            result.trace.append(RestoreState.HELPER_UP)
            started = False
            try:
                self._remove_stale_helper(name, result, op)
                self.config.stack.install_dir.mkdir(parents=True, exist_ok=True)
                try:
                    self.docker.run(
                        restore_cfg.helper_image,
                        mounts=self.helper_mounts(),
                        name=name,
                        detach=True,
                        command=IDLE_COMMAND,
                    )
                except DockerError as exc:
                    _step(op, "restore.helper.start", "error", str(exc))
                    raise StepFailure("helper-start", str(exc)) from exc
                started = True
                _step(op, "restore.helper.start", "success", name)
                yield name
            finally:
                self._teardown_helper(name, started, result, op)

    def _remove_stale_helper(
        self,
        name: str,
        result: RestoreResult,
        op: OperationScope | None,
    ) -> None:
        try:
            if not self.docker.container_exists(name):
                return
            self.docker.remove_container(name, force=True)
        except DockerError as exc:
            result.warnings.append(f"Could not clear stale helper '{name}': {exc}")
            _step(op, "restore.helper.stale", "warning", str(exc))
            return
        _step(op, "restore.helper.stale", "warning", f"removed leftover container '{name}'")

    def _teardown_helper(
        self,
        name: str,
        started: bool,
        result: RestoreResult,
        op: OperationScope | None,
    ) -> None:
        if started:
            try:
                self.docker.stop_container(name)
            except DockerError as exc:
                result.warnings.append(f"Failed to stop helper '{name}': {exc}")
                _step(op, "restore.helper.stop", "warning", str(exc))
        try:
            if started or self.docker.container_exists(name):
                self.docker.remove_container(name, force=not started)
        except DockerError as exc:
            result.warnings.append(f"Failed to remove helper '{name}': {exc}")
            _step(op, "restore.helper.remove", "warning", str(exc))
            return
        _step(op, "restore.helper.remove", "success", name)


def _step(op: OperationScope | None, name: str, status: str, detail: object) -> None:
    if op is not None:
        op.add_step(name, status=status, detail=detail)


__all__ = ["RestorePipeline", "RestoreResult", "RestoreState"]
