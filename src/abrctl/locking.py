"""Host-level advisory locks built on ``fcntl.flock``.

Lock files live under the runtime directory and carry JSON metadata about the
current holder. The files persist after release for diagnostics; only the
``flock`` itself guards exclusivity. A runtime directory created here is sticky
and world-writable and new lock files are world-writable, so operators running
as different users still contend for the same lock.
"""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

from .errors import AbrError
from .exit_codes import ExitCode

# Held while a backup or restore touches the managed stack.
STACK_LOCK = "stack"
# Held while the fixed-name restore helper container exists.
RESTORE_HELPER_LOCK = "restore-helper"

_POLL_INTERVAL = 0.05
SHARED_DIR_MODE = 0o1777
SHARED_FILE_MODE = 0o666


class LockTimeoutError(AbrError):
    """Raised when a lock cannot be acquired before the timeout."""

    exit_code = ExitCode.ENVIRONMENT


@dataclass(slots=True)
class LockHandle:
    """Details about an acquired lock."""

    name: str
    path: Path
    wait_ms: int


class LockManager:
    """Acquire named exclusive locks under *runtime_dir*."""

    def __init__(self, runtime_dir: Path, default_timeout: float) -> None:
        """Store the lock directory and the default acquisition timeout."""
        self.runtime_dir = Path(runtime_dir).expanduser()
        self.default_timeout = default_timeout

    def lock_path(self, name: str) -> Path:
        """Return the lock file path for *name*."""
        safe = "".join(char if char.isalnum() or char in {"-", "_", "."} else "-" for char in name)
        return self.runtime_dir / f"{safe}.lock"

    @contextmanager
    def lock(self, name: str, *, timeout: float | None = None) -> Iterator[LockHandle]:
        """Hold the exclusive lock *name* for the duration of the block."""
        limit = self.default_timeout if timeout is None else timeout
        path = self.lock_path(name)
        try:
            handle = _open_shared(path)
        except OSError as exc:
            raise LockTimeoutError(
                f"Unable to open lock file {path}: {exc}. "
                "Set runtime_dir to a directory every operator can write."
            ) from exc

        started = time.monotonic()
        try:
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - started >= limit:
                        raise LockTimeoutError(
                            f"Timed out after {limit:.1f}s waiting for lock '{name}' ({path})."
                        ) from None
                    time.sleep(_POLL_INTERVAL)

            wait_ms = int((time.monotonic() - started) * 1000)
            handle.seek(0)
            handle.truncate()
            json.dump(
                {
                    "name": name,
                    "pid": os.getpid(),
                    "path": str(path),
                    "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
                },
                handle,
            )
            handle.flush()
            try:
                yield LockHandle(name=name, path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()


def _open_shared(path: Path) -> IO[str]:
    directory = path.parent
    if not directory.is_dir():
        directory.mkdir(parents=True, exist_ok=True)
        if directory.stat().st_uid == os.getuid():
            os.chmod(directory, SHARED_DIR_MODE)
    try:
        fd = os.open(path, os.O_RDWR | os.O_CREAT | os.O_EXCL, SHARED_FILE_MODE)
    except FileExistsError:
        fd = os.open(path, os.O_RDWR)
    else:
        os.fchmod(fd, SHARED_FILE_MODE)
    return os.fdopen(fd, "r+", encoding="utf-8")


__all__ = [
    "LockHandle",
    "LockManager",
    "LockTimeoutError",
    "RESTORE_HELPER_LOCK",
    "SHARED_DIR_MODE",
    "SHARED_FILE_MODE",
    "STACK_LOCK",
]
