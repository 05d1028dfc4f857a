"""Tests for the structured operation log."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from vaultpush.logging import StructuredLogger


def _records(logger: StructuredLogger) -> list[dict[str, object]]:
    lines = logger.operations_log_path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_operation_records_steps_and_result(tmp_path: Path) -> None:
    """A completed scope appends one JSON line with its steps."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation(
        "push",
        args={"values_file": Path("/tmp/values.yaml"), "dry_run": True},
        target={"namespace": "vault"},
    ) as op:
        op.add_step("load", data={"groups": ["db", "s3"]})
        op.success("Dry run complete.", changed=0)

    (record,) = _records(logger)
    assert record["command"] == "push"
    assert record["args"] == {"values_file": "/tmp/values.yaml", "dry_run": True}
    assert record["target"] == {"namespace": "vault"}
    assert record["steps"] == [
        {"name": "load", "status": "success", "data": {"groups": ["db", "s3"]}}
    ]
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "success"
    assert result["rc"] == 0


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
        original_mkdir(self, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("validate", args={"json": False}) as op:
        op.success("done", changed=0)

    assert not logger.operations_log_path.exists()


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger.operations_log_path

    original_open = Path.open

    def fail_open(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Path, "open", fail_open)

    with logger.operation("check") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("check") as op:
        op.success("done", changed=0)


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings are recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("push") as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "warning"
    assert result["warnings"] == ["note"]
    assert result["errors"] == ["err"]
    assert result["changed"] == 1
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("push") as op:
        op.error("boom", errors=None, rc=4, context={"value": {1, 2}})

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert result["errors"] == ["boom"]
    assert result["rc"] == 4
    assert result["context"] == {"value": "{1, 2}"}


def test_unhandled_exception_is_recorded_and_reraised(tmp_path: Path) -> None:
    """An exception escaping the scope is logged as an error."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(ValueError, match="kaboom"):
        with logger.operation("push"):
            raise ValueError("kaboom")

    (record,) = _records(logger)
    result = record["result"]
    assert isinstance(result, dict)
    assert result["status"] == "error"
    assert "kaboom" in str(result["message"])
