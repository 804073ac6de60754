"""Typed records exchanged between the planner, compiler and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    """Immutable record with camelCase wire names and strict field handling."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Span(RecordModel):
    """Character offsets into a file's text."""

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "Span":
        if self.end < self.start:
            raise ValueError(f"span end {self.end} precedes start {self.start}")
        return self


class Diagnostic(RecordModel):
    """Single problem reported by the diagnostic source."""

    code: int
    message: str
    file: str
    span: Span = Field(default_factory=lambda: Span(start=0, end=0))
    module_name: Optional[str] = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.code, self.file)


class EditImport(RecordModel):
    """Rename a named import and/or move it to another module."""

    kind: Literal["EDIT_IMPORT"] = "EDIT_IMPORT"
    file: str
    from_module: str
    from_named: Optional[str] = None
    to_module: str
    to_named: Optional[str] = None


class RenameElement(RecordModel):
    """Rename every opening/closing markup element ``from`` to ``to``."""

    kind: Literal["RENAME_ELEMENT"] = "RENAME_ELEMENT"
    file: str
    from_name: str = Field(alias="from")
    to_name: str = Field(alias="to")


class RemoveAttribute(RecordModel):
    """Drop attribute ``attr`` from every ``tag`` element."""

    kind: Literal["REMOVE_ATTRIBUTE"] = "REMOVE_ATTRIBUTE"
    file: str
    tag: str
    attr: str


class ConvertAttributeToElement(RecordModel):
    """Turn ``fromAttr={Comp}`` into ``toAttr={<Comp />}`` on ``tag`` elements."""

    kind: Literal["CONVERT_ATTRIBUTE_TO_ELEMENT"] = "CONVERT_ATTRIBUTE_TO_ELEMENT"
    file: str
    tag: str
    from_attr: str
    to_attr: str


class CallEdit(RecordModel):
    """Single edit applied to each matching call expression."""

    op: Literal["RENAME", "INSERT_ARG", "DROP_ARG", "WRAP_ARG"]
    index: Optional[int] = None
    value: Optional[str] = None


class RewriteCall(RecordModel):
    """Rewrite calls to ``calleeName`` with an ordered list of call edits."""

    kind: Literal["REWRITE_CALL"] = "REWRITE_CALL"
    file: str
    callee_name: str
    edits: List[CallEdit] = Field(default_factory=list)


class EditTextNearAnchor(RecordModel):
    """Small textual replacement located near an anchor string."""

    kind: Literal["EDIT_TEXT_NEAR_ANCHOR"] = "EDIT_TEXT_NEAR_ANCHOR"
    file: str
    anchor: Optional[str] = None
    before: str
    after: str
    max_chars: int = Field(default=200, ge=0)


class FormatFiles(RecordModel):
    """Formatting request spanning several files; not compiled into edits."""

    kind: Literal["FORMAT_FILES"] = "FORMAT_FILES"
    files: List[str] = Field(default_factory=list)


Op = Annotated[
    Union[
        EditImport,
        RenameElement,
        RemoveAttribute,
        ConvertAttributeToElement,
        RewriteCall,
        EditTextNearAnchor,
        FormatFiles,
    ],
    Field(discriminator="kind"),
]

FILE_SCOPED_OPS = (
    EditImport,
    RenameElement,
    RemoveAttribute,
    ConvertAttributeToElement,
    RewriteCall,
    EditTextNearAnchor,
)


class Plan(RecordModel):
    """Batch of operations proposed by a planner."""

    target_codes: List[int] = Field(default_factory=list)
    ops: List[Op] = Field(default_factory=list)
    why: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @classmethod
    def empty(cls, reason: str | None = None) -> "Plan":
        """Return a plan with no operations and zero confidence."""
        return cls(target_codes=[], ops=[], why=[reason] if reason else [], confidence=0.0)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass(slots=True, frozen=True)
class FileChange:
    """Exact preimage and postimage text for one file."""

    file: Path
    before: str
    after: str


@dataclass(slots=True, frozen=True)
class DiagnosticSnapshot:
    """Point-in-time read from the diagnostic source."""

    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, diagnostics: list[Diagnostic] | tuple[Diagnostic, ...]) -> "DiagnosticSnapshot":
        return cls(diagnostics=tuple(diagnostics))

    @property
    def count(self) -> int:
        return len(self.diagnostics)

    def codes(self) -> frozenset[int]:
        return frozenset(diagnostic.code for diagnostic in self.diagnostics)

    def count_matching(self, code: int, file: str | Path, *, root: Path | None = None) -> int:
        """Count diagnostics sharing ``code`` and ``file``.

        Relative paths on either side are resolved against ``root`` when given.
        """
        target = _normalise_path(file, root)
        return sum(
            1
            for diagnostic in self.diagnostics
            if diagnostic.code == code and _normalise_path(diagnostic.file, root) == target
        )

    def count_in_file(self, file: str | Path, *, root: Path | None = None) -> int:
        target = _normalise_path(file, root)
        return sum(1 for diagnostic in self.diagnostics if _normalise_path(diagnostic.file, root) == target)

    def by_code(self) -> dict[int, int]:
        counts: dict[int, int] = {}
        for diagnostic in self.diagnostics:
            counts[diagnostic.code] = counts.get(diagnostic.code, 0) + 1
        return counts


def _normalise_path(value: str | Path, root: Path | None = None) -> str:
    path = Path(value)
    if root is not None and not path.is_absolute():
        path = Path(root) / path
    return path.resolve().as_posix()


__all__ = [
    "CallEdit",
    "ConvertAttributeToElement",
    "Diagnostic",
    "DiagnosticSnapshot",
    "EditImport",
    "EditTextNearAnchor",
    "FILE_SCOPED_OPS",
    "FileChange",
    "FormatFiles",
    "Op",
    "Plan",
    "RecordModel",
    "RemoveAttribute",
    "RenameElement",
    "RewriteCall",
    "Span",
]
