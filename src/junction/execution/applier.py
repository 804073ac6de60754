"""Transactional writes of compiled file changes with a preimage guard."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..schema import FileChange
from ..telemetry import emit_event
from ..tools.workspace import read_source, write_source

LOGGER = logging.getLogger(__name__)


class ApplyError(RuntimeError):
    """Raised when file changes cannot be written."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class PreimageMismatch(ApplyError):
    """A target file no longer holds the text the change was compiled from."""

    def __init__(self, file: Path) -> None:
        super().__init__(f"Preimage mismatch for {file}", details={"file": file.as_posix()})
        self.file = file


def _current_text(path: Path) -> str | None:
    try:
        return read_source(path)
    except (FileNotFoundError, IsADirectoryError, UnicodeDecodeError):
        return None


def _verify_preimage(change: FileChange) -> None:
    if _current_text(change.file) != change.before:
        raise PreimageMismatch(change.file)


def apply_changes(changes: Sequence[FileChange]) -> None:
    """Write a batch atomically with respect to preimages.

    Every file is checked before any file is written; a single drifted file
    fails the whole batch and leaves the project untouched.
    """
    if not changes:
        return
    for change in changes:
        _verify_preimage(change)
    for change in changes:
        write_source(change.file, change.after)
    LOGGER.debug("Applied %d file change(s)", len(changes))
    emit_event("apply.batch", files=[change.file for change in changes])


def apply_file_change(change: FileChange) -> None:
    """Write a single change after its own preimage check."""
    _verify_preimage(change)
    write_source(change.file, change.after)
    emit_event("apply.file", file=change.file)


def revert_changes(changes: Sequence[FileChange]) -> None:
    """Restore each file's preimage unconditionally."""
    for change in changes:
        write_source(change.file, change.before)
    if changes:
        LOGGER.debug("Reverted %d file change(s)", len(changes))
        emit_event("revert", files=[change.file for change in changes])


__all__ = [
    "ApplyError",
    "PreimageMismatch",
    "apply_changes",
    "apply_file_change",
    "read_source",
    "revert_changes",
    "write_source",
]
