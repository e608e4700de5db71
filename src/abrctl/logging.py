"""Structured operation logging for abrctl commands.

Every CLI invocation opens an operation scope. Steps recorded during the
scope and the final result are appended as a single JSON line to
``operations.jsonl`` under the configured logs directory. Logging must never
break a backup or restore: when the directory cannot be prepared or a write
fails, the logger disables itself and carries on silently.
"""
from __future__ import annotations

import getpass
import json
import os
import secrets
import time
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from types import TracebackType

OPERATIONS_LOG_NAME = "operations.jsonl"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitise(value: object) -> object:
    """Return a JSON-safe copy of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return _sanitise(value.value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    return str(value)


def _actor() -> dict[str, object]:
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return {"user": user, "uid": os.getuid(), "pid": os.getpid()}


class OperationScope:
    """Collect steps and the result for a single CLI operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Prepare the record skeleton; nothing is written until exit."""
        self._logger = logger
        self.command = command
        self.op_id = secrets.token_hex(6)
        self.actor: dict[str, object] = _actor()
        self._args = dict(args or {})
        self._target = dict(target or {})
        self._steps: list[dict[str, object]] = []
        self._result: dict[str, object] | None = None
        self._lock_wait_ms: int | None = None
        self._started_at = _now_iso()
        self._started = time.monotonic()

    # Context management --------------------------------------------
    def __enter__(self) -> OperationScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._result is None:
            if exc is not None:
                message = str(exc) or type(exc).__name__
                self.error(f"Operation aborted: {message}", errors=[message], rc=1)
            else:
                self._set_result("incomplete", "Operation ended without a result.")
        self._logger._write(self._record())

    # Recording helpers ----------------------------------------------
    @property
    def steps(self) -> list[dict[str, object]]:
        """Return the steps recorded so far."""
        return list(self._steps)

    @property
    def result(self) -> dict[str, object] | None:
        """Return the recorded result, if any."""
        return self._result

    def add_step(self, name: str, *, status: str, detail: object = "") -> None:
        """Append a named step with *status* (success, warning, error, info, skipped)."""
        self._steps.append(
            {
                "name": name,
                "status": status,
                "detail": _sanitise(detail),
                "at": _now_iso(),
            }
        )

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its lock."""
        self._lock_wait_ms = int(wait_ms)

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a successful outcome."""
        self._set_result(
            "success",
            message,
            changed=changed,
            backups=backups,
            context=context,
            rc=0,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record an outcome that completed with caveats."""
        self._set_result(
            "warning",
            message,
            warnings=list(warnings or [message]),
            errors=list(errors or []),
            changed=changed,
            backups=backups,
            context=context,
            rc=0,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a failed outcome; *errors* defaults to ``[message]``."""
        self._set_result(
            "error",
            message,
            errors=list(errors or [message]),
            context=context,
            rc=rc,
        )

    # Internal -------------------------------------------------------
    def _set_result(
        self,
        status: str,
        message: str,
        *,
        warnings: list[str] | None = None,
        errors: list[str] | None = None,
        changed: int = 0,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
        rc: int | None = None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "backups": list(backups or []),
            "context": _sanitise(dict(context or {})),
        }
        if rc is not None:
            result["rc"] = rc
        self._result = result

    def _record(self) -> dict[str, object]:
        return {
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitise(self._args),
            "target": _sanitise(self._target),
            "actor": self.actor,
            "started_at": self._started_at,
            "finished_at": _now_iso(),
            "duration_ms": int((time.monotonic() - self._started) * 1000),
            "lock_wait_ms": self._lock_wait_ms,
            "steps": self._steps,
            "result": self._result,
        }


class StructuredLogger:
    """Append operation records to a JSON-lines log."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare *logs_dir*; disable logging when it cannot be created."""
        self._logs_dir = Path(logs_dir).expanduser()
        self._operations_log_path = self._logs_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False

    @property
    def operations_log(self) -> Path:
        """Return the path of the operations log."""
        return self._operations_log_path

    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> OperationScope:
        """Return a scope that records *command* when it exits."""
        return OperationScope(self, command, args=args, target=target)

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=False))
                handle.write("\n")
        except OSError:
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
