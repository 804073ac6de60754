"""Compile planner operations into concrete per-file text transitions."""

from __future__ import annotations

import logging
from pathlib import Path

from ..schema import (
    FILE_SCOPED_OPS,
    ConvertAttributeToElement,
    EditImport,
    EditTextNearAnchor,
    FileChange,
    FormatFiles,
    Op,
    Plan,
    RemoveAttribute,
    RenameElement,
    RewriteCall,
)
from ..tools.source_edits import (
    convert_attribute_to_element,
    edit_import,
    edit_text_near_anchor,
    import_local_name,
    remove_attribute,
    rename_element,
    rewrite_call,
)
from ..tools.workspace import read_source

LOGGER = logging.getLogger(__name__)


def _resolve_path(file: str, project_root: Path | None) -> Path:
    path = Path(file)
    if not path.is_absolute() and project_root is not None:
        path = project_root / path
    return path.resolve()


def _apply_edit_import(text: str, op: EditImport) -> str:
    local_before = None
    if op.from_named:
        local_before = import_local_name(text, op.from_module, op.from_named)
    updated = edit_import(text, op.from_module, op.from_named, op.to_module, op.to_named)
    # A renamed local binding must be followed by its markup usages.
    if (
        updated != text
        and local_before is not None
        and local_before == op.from_named
        and op.to_named
        and op.to_named != op.from_named
    ):
        updated = rename_element(updated, op.from_named, op.to_named)
    return updated


def apply_op(text: str, op: Op) -> str:
    """Run the source-edit primitive matching ``op`` over ``text``."""
    if isinstance(op, EditImport):
        return _apply_edit_import(text, op)
    if isinstance(op, RenameElement):
        return rename_element(text, op.from_name, op.to_name)
    if isinstance(op, RemoveAttribute):
        return remove_attribute(text, op.tag, op.attr)
    if isinstance(op, ConvertAttributeToElement):
        return convert_attribute_to_element(text, op.tag, op.from_attr, op.to_attr)
    if isinstance(op, RewriteCall):
        return rewrite_call(text, op.callee_name, op.edits)
    if isinstance(op, EditTextNearAnchor):
        return edit_text_near_anchor(text, op.anchor, op.before, op.after, op.max_chars)
    return text


def compile_plan(plan: Plan, *, project_root: Path | str | None = None) -> list[FileChange]:
    """Group ``plan.ops`` by file and fold each group into one ``FileChange``.

    Ops for files missing from disk are dropped. Files whose text does not
    change are omitted from the result.
    """
    root = Path(project_root).resolve() if project_root is not None else None
    ops_by_file: dict[Path, list[Op]] = {}
    for op in plan.ops:
        if not isinstance(op, FILE_SCOPED_OPS):
            continue
        ops_by_file.setdefault(_resolve_path(op.file, root), []).append(op)

    changes: list[FileChange] = []
    for path, ops in ops_by_file.items():
        if not path.is_file():
            LOGGER.info("Skipping %d op(s) for missing file %s", len(ops), path)
            continue
        try:
            before = read_source(path)
        except UnicodeDecodeError:
            LOGGER.warning("Skipping %d op(s) for non UTF-8 file %s", len(ops), path)
            continue
        after = before
        for op in ops:
            after = apply_op(after, op)
        if after != before:
            changes.append(FileChange(file=path, before=before, after=after))
    return changes


def summarize_plan_files(plan: Plan) -> list[str]:
    """List every file referenced by ``plan`` in first-mention order."""
    files: dict[str, None] = {}
    for op in plan.ops:
        if isinstance(op, FormatFiles):
            for file in op.files:
                files.setdefault(file, None)
        else:
            files.setdefault(op.file, None)
    return list(files)


__all__ = ["apply_op", "compile_plan", "summarize_plan_files"]
