"""Volume capture pipeline: archive every managed volume plus configuration."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .archive import archive_name
from .config import AppConfig
from .consistency import ConsistencyLevel, transitions_for
from .errors import StepFailure
from .lifecycle import LifecycleController, Outcome, TransitionResult
from .logging import OperationScope
from .providers.docker import DockerError, DockerProvider, Mount

ARCHIVE_MOUNT = "/archive"
BACKUP_MOUNT_ROOT = "/backup"
BACKUP_ENTRYPOINT = "backup"


@dataclass(frozen=True, slots=True)
class CaptureResult:
    """Outcome of a capture run."""

    level: ConsistencyLevel
    archive: Path | None
    error: str | None = None
    before: TransitionResult | None = None
    after: TransitionResult | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when an archive was written."""
        return self.archive is not None and self.error is None


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class VolumeCapturePipeline:
    """Write a timestamped archive of the stack through a disposable container."""

    def __init__(
        self,
        config: AppConfig,
        docker: DockerProvider,
        lifecycle: LifecycleController,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.docker = docker
        self.lifecycle = lifecycle
        self.clock = clock

    def mounts(self) -> list[Mount]:
        """Return the volume, config and destination mounts for the helper."""
        stack = self.config.stack
        mounts = [Mount(volume, f"{BACKUP_MOUNT_ROOT}/{volume}") for volume in stack.volumes]
        install_name = stack.install_dir.name
        mounts.append(Mount(str(stack.env_file), f"{BACKUP_MOUNT_ROOT}/{install_name}/.env"))
        mounts.append(
            Mount(
                str(stack.compose_file),
                f"{BACKUP_MOUNT_ROOT}/{install_name}/docker-compose.yml",
            )
        )
        mounts.append(Mount(str(self.config.backups.root), ARCHIVE_MOUNT))
        return mounts

    def capture(
        self,
        level: ConsistencyLevel,
        *,
        op: OperationScope | None = None,
    ) -> CaptureResult:
        """Capture an archive at *level*.

        The post-capture transition always runs once a pre-capture transition
        was attempted, so the stack is never left paused or stopped. A failed
        pre-capture transition raises :class:`StepFailure` after that; a failed
        capture is returned in the result rather than raised.
        """
        plan = transitions_for(level)
        before: TransitionResult | None = None
        after: TransitionResult | None = None
        archive: Path | None = None
        error: str | None = None
        try:
            if plan.before is not None:
                before = self.lifecycle.apply(plan.before)
                _record(op, before)
                if before.outcome is Outcome.FATAL:
                    raise StepFailure(plan.before.value, before.detail)
            archive, error = self._run_capture(op)
        finally:
            if plan.after is not None:
                after = self.lifecycle.apply(plan.after)
                _record(op, after)
        return CaptureResult(level=level, archive=archive, error=error, before=before, after=after)

    def _run_capture(self, op: OperationScope | None) -> tuple[Path | None, str | None]:
        root = self.config.backups.root
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            message = f"Cannot create backups folder {root}: {exc}"
            if op is not None:
                op.add_step("capture.archive", status="error", detail=message)
            return None, message

        filename = archive_name(self.clock(), self.config.backups.filename_template)
        try:
            self.docker.run(
                self.config.backups.image,
                mounts=self.mounts(),
                env={"BACKUP_FILENAME": filename},
                entrypoint=BACKUP_ENTRYPOINT,
                remove=True,
            )
        except DockerError as exc:
            if op is not None:
                op.add_step("capture.archive", status="error", detail=str(exc))
            return None, str(exc)

        archive = root / filename
        if op is not None:
            op.add_step("capture.archive", status="success", detail=str(archive))
        return archive, None


def _record(op: OperationScope | None, result: TransitionResult) -> None:
    if op is None:
        return
    status = {
        Outcome.OK: "success",
        Outcome.BENIGN: "info",
        Outcome.FATAL: "error",
    }[result.outcome]
    op.add_step(f"stack.{result.transition.value}", status=status, detail=result.detail)


__all__ = ["CaptureResult", "VolumeCapturePipeline"]
