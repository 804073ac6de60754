"""Project file discovery."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

SOURCE_SUFFIXES: tuple[str, ...] = (".ts", ".tsx")
IGNORED_DIRECTORIES: frozenset[str] = frozenset({"node_modules", "dist", "build", "coverage"})


def list_source_files(
    project_root: Path | str,
    source_dirs: Iterable[str] = ("src",),
    *,
    suffixes: tuple[str, ...] = SOURCE_SUFFIXES,
) -> List[Path]:
    """Return TypeScript sources under ``source_dirs``, sorted.

    Hidden entries and build output directories are skipped.
    """
    root = Path(project_root).resolve()
    found: list[Path] = []
    for name in source_dirs:
        base = (root / name).resolve()
        if not base.is_dir():
            continue
        for current, directories, files in os.walk(base):
            directories[:] = [
                entry for entry in directories if not entry.startswith(".") and entry not in IGNORED_DIRECTORIES
            ]
            for file_name in files:
                if file_name.startswith(".") or not file_name.endswith(suffixes):
                    continue
                found.append(Path(current) / file_name)
    return sorted(set(found))


def read_source(path: Path | str) -> str:
    """Read ``path`` as UTF-8 without newline translation."""
    with Path(path).open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def write_source(path: Path | str, text: str) -> None:
    """Write ``text`` to ``path`` as UTF-8 without newline translation."""
    with Path(path).open("w", encoding="utf-8", newline="") as handle:
        handle.write(text)


__all__ = ["IGNORED_DIRECTORIES", "SOURCE_SUFFIXES", "list_source_files", "read_source", "write_source"]
