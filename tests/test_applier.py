from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from junction.execution.applier import (
    PreimageMismatch,
    apply_changes,
    apply_file_change,
    read_source,
    revert_changes,
)
from junction.schema import FileChange


def _change(path: Path, before: str, after: str) -> FileChange:
    return FileChange(file=path, before=before, after=after)


def test_apply_then_revert_restores_exact_bytes(tmp_path: Path, write_source) -> None:
    first = write_source(tmp_path / "a.tsx", "const a = 1;\r\n// ü\n")
    second = write_source(tmp_path / "b.tsx", "const b = 2;\n")
    originals = {path: path.read_bytes() for path in (first, second)}
    changes = [
        _change(first, read_source(first), "const a = 10;\r\n// ü\n"),
        _change(second, read_source(second), "const b = 20;\n"),
    ]

    apply_changes(changes)
    assert read_source(first) == "const a = 10;\r\n// ü\n"

    revert_changes(changes)
    assert {path: path.read_bytes() for path in (first, second)} == originals


def test_preimage_drift_fails_whole_batch(tmp_path: Path, write_source) -> None:
    first = write_source(tmp_path / "a.tsx", "a\n")
    second = write_source(tmp_path / "b.tsx", "b\n")
    changes = [_change(first, "a\n", "A\n"), _change(second, "b\n", "B\n")]
    second.write_text("changed elsewhere\n", encoding="utf-8")

    with pytest.raises(PreimageMismatch) as excinfo:
        apply_changes(changes)

    assert excinfo.value.file == second
    assert excinfo.value.details == {"file": second.as_posix()}
    assert first.read_text(encoding="utf-8") == "a\n"
    assert second.read_text(encoding="utf-8") == "changed elsewhere\n"


def test_missing_file_counts_as_mismatch(tmp_path: Path) -> None:
    with pytest.raises(PreimageMismatch):
        apply_file_change(_change(tmp_path / "gone.tsx", "x", "y"))


def test_apply_emits_telemetry(tmp_path: Path, write_source, caplog: pytest.LogCaptureFixture) -> None:
    target = write_source(tmp_path / "a.tsx", "a\n")
    caplog.set_level(logging.INFO, logger="junction.telemetry")

    apply_file_change(_change(target, "a\n", "b\n"))

    events = [json.loads(record.getMessage()) for record in caplog.records if record.name == "junction.telemetry"]
    assert events and events[-1]["event"] == "apply.file"
    assert events[-1]["file"] == target.as_posix()


def test_empty_batch_is_noop() -> None:
    apply_changes([])
    revert_changes([])
