"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from abrctl.consistency import ConsistencyLevel
from abrctl.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.operations_log.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("backup", args={"level": "cold"}) as op:
        op.success("done", changed=0)

    assert not log_dir.exists()


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("backup") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("restore") as op:
        op.success("done", changed=0)


def test_operation_records_steps_and_lock_wait(tmp_path: Path) -> None:
    """Steps, lock wait and enum values land in a single JSON record."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation(
        "backup",
        args={"level": ConsistencyLevel.SEMI_COLD},
        target={"kind": "stack", "project": "appwrite"},
    ) as op:
        op.set_lock_wait_ms(12)
        op.add_step("stack.pause", status="success")
        op.add_step("capture.archive", status="success", detail=Path("/srv/backups/a.tar.gz"))
        op.add_step("stack.resume", status="success")
        op.success("Backup created.", changed=1, backups=["a.tar.gz"])

    (record,) = _records(logger)
    assert record["command"] == "backup"
    assert record["args"] == {"level": "semi-cold"}
    assert record["lock_wait_ms"] == 12
    steps = record["steps"]
    assert isinstance(steps, list)
    assert [step["name"] for step in steps] == ["stack.pause", "capture.archive", "stack.resume"]
    assert steps[1]["detail"] == "/srv/backups/a.tar.gz"
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "success"
    assert result["backups"] == ["a.tar.gz"]
    assert result["rc"] == 0


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("restore", args={"path": Path("backups")}) as op:
        op.warning(
            "warned",
            warnings=("Stack restart failed",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "warning"
    assert result["warnings"] == ["Stack restart failed"]
    assert result["errors"] == ["err"]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("restore") as op:
        op.error("boom", errors=None, rc=4, context={"value": {1, 2}})

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["rc"] == 4
    assert result["context"] == {"value": "{1, 2}"}


def test_unhandled_exception_is_recorded(tmp_path: Path) -> None:
    """An exception escaping the scope is logged as an error and re-raised."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError):
        with logger.operation("backup"):
            raise RuntimeError("docker vanished")

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert result["errors"] == ["docker vanished"]


def test_scope_without_result_is_incomplete(tmp_path: Path) -> None:
    """Leaving a scope without recording an outcome marks it incomplete."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("catalog"):
        pass

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "incomplete"
