"""Planner protocol and the context payload handed to planners."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Protocol, Sequence, Union

from ..schema import Diagnostic, DiagnosticSnapshot, Plan, Span
from ..tools.workspace import list_source_files, read_source
from .guidance import DEFAULT_KEYWORDS, Guidance, search_guidance

DEFAULT_FILE_LIMIT = 100
DEFAULT_EXCERPT_RADIUS = 400
DEFAULT_HEAD_LIMIT = 800


@dataclass(slots=True)
class PlannerContext:
    """Everything a planner may look at when proposing a plan."""

    project_root: Path
    diagnostics: tuple[Diagnostic, ...]
    files: tuple[Path, ...] = ()
    target: Diagnostic | None = None
    excerpt: str = ""
    file_head: str = ""
    guidance: Guidance | None = None

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready view used in prompts and run artifacts."""
        payload: dict[str, Any] = {
            "projectRoot": self.project_root.as_posix(),
            "diagnostics": [
                diagnostic.model_dump(mode="json", by_alias=True, exclude_none=True)
                for diagnostic in self.diagnostics
            ],
            "files": [path.as_posix() for path in self.files],
        }
        if self.target is not None:
            payload["target"] = {
                "diagnostic": self.target.model_dump(mode="json", by_alias=True, exclude_none=True),
                "excerpt": self.excerpt,
                "fileHead": self.file_head,
            }
        if self.guidance is not None:
            payload["guidance"] = {
                "bullets": list(self.guidance.bullets),
                "citations": [
                    {"title": citation.title, "quote": citation.quote} for citation in self.guidance.citations
                ],
            }
        return payload


class Planner(Protocol):
    """Anything that turns a context into a plan, synchronously or not."""

    def propose(self, context: PlannerContext) -> Union[Plan, Awaitable[Plan]]:
        ...


async def resolve_plan(planner: Planner, context: PlannerContext) -> Plan:
    """Call ``planner`` and await the result when it is awaitable."""
    result = planner.propose(context)
    if inspect.isawaitable(result):
        result = await result
    return result


def read_excerpt(path: Path | str, span: Span | None, radius: int) -> str:
    """Return text within ``radius`` characters of ``span``; empty when unreadable."""
    try:
        text = read_source(path)
    except (OSError, UnicodeDecodeError):
        return ""
    if span is None:
        return text[:radius]
    start = max(0, span.start - radius)
    end = min(len(text), span.end + radius)
    return text[start:end]


def read_head(path: Path | str, limit: int) -> str:
    try:
        return read_source(path)[:limit]
    except (OSError, UnicodeDecodeError):
        return ""


@dataclass(slots=True)
class ContextBuilder:
    """Assemble planner contexts for one project."""

    project_root: Path
    source_dirs: Sequence[str] = ("src",)
    file_limit: int = DEFAULT_FILE_LIMIT
    excerpt_radius: int = DEFAULT_EXCERPT_RADIUS
    head_limit: int = DEFAULT_HEAD_LIMIT
    guidance_document: Path | None = None
    guidance_keywords: Sequence[str] = field(default=DEFAULT_KEYWORDS)

    def build(self, snapshot: DiagnosticSnapshot, *, target: Diagnostic | None = None) -> PlannerContext:
        files = tuple(list_source_files(self.project_root, self.source_dirs)[: self.file_limit])
        context = PlannerContext(
            project_root=self.project_root,
            diagnostics=snapshot.diagnostics,
            files=files,
        )
        if target is None:
            return context
        context.target = target
        target_file = Path(target.file)
        if not target_file.is_absolute():
            target_file = self.project_root / target_file
        context.excerpt = read_excerpt(target_file, target.span, self.excerpt_radius)
        context.file_head = read_head(target_file, self.head_limit)
        if self.guidance_document is not None:
            hint = f"{target.message}\n{context.excerpt}"
            context.guidance = search_guidance(self.guidance_document, hint, self.guidance_keywords)
        return context


__all__ = [
    "ContextBuilder",
    "DEFAULT_EXCERPT_RADIUS",
    "DEFAULT_FILE_LIMIT",
    "DEFAULT_HEAD_LIMIT",
    "Planner",
    "PlannerContext",
    "read_excerpt",
    "read_head",
    "resolve_plan",
]
