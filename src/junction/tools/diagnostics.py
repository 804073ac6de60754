"""Diagnostic sources backed by the TypeScript compiler."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Sequence

from ..schema import Diagnostic, DiagnosticSnapshot, Span
from .workspace import read_source

LOGGER = logging.getLogger(__name__)

TSC_ARGS: tuple[str, ...] = ("--noEmit", "--pretty", "false")
UNKNOWN_FILE = "unknown"

_LOCATED_RE = re.compile(r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\): error TS(?P<code>\d+): (?P<message>.*)$")
_GLOBAL_RE = re.compile(r"^error TS(?P<code>\d+): (?P<message>.*)$")
_MODULE_RE = re.compile(r"""Cannot find module ['"](?P<module>[^'"]+)['"]""")
_IDENTIFIER_RE = re.compile(r"[\w$]+")


class DiagnosticSourceError(RuntimeError):
    """Raised when diagnostics cannot be collected."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class DiagnosticSource(Protocol):
    """Anything that can report the current diagnostics of a project."""

    def query(self, project_root: Path) -> DiagnosticSnapshot:
        ...


class _OffsetIndex:
    """Line/column to character offset lookup for one file."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._starts = [0]
        for match in re.finditer("\n", text):
            self._starts.append(match.end())

    def span(self, line: int, column: int) -> Span:
        if line < 1 or line > len(self._starts):
            return Span(start=0, end=0)
        start = min(self._starts[line - 1] + max(column - 1, 0), len(self.text))
        identifier = _IDENTIFIER_RE.match(self.text, start)
        end = identifier.end() if identifier else start
        return Span(start=start, end=end)


def parse_tsc_output(output: str, project_root: Path) -> list[Diagnostic]:
    """Parse ``tsc --pretty false`` output into diagnostics.

    Indented lines continue the previous message. Locations become
    character offsets; the span covers the identifier at that position.
    """
    root = Path(project_root).resolve()
    indexes: dict[str, _OffsetIndex | None] = {}
    pending: list[dict[str, Any]] = []

    for raw_line in output.splitlines():
        if not raw_line.strip():
            continue
        if raw_line[:1].isspace():
            if pending:
                pending[-1]["message"] += "\n" + raw_line.strip()
            continue
        located = _LOCATED_RE.match(raw_line)
        if located is not None:
            file_path = Path(located.group("file"))
            if not file_path.is_absolute():
                file_path = root / file_path
            pending.append(
                {
                    "code": int(located.group("code")),
                    "message": located.group("message"),
                    "file": file_path.resolve().as_posix(),
                    "line": int(located.group("line")),
                    "col": int(located.group("col")),
                }
            )
            continue
        global_match = _GLOBAL_RE.match(raw_line)
        if global_match is not None:
            pending.append(
                {"code": int(global_match.group("code")), "message": global_match.group("message"), "file": UNKNOWN_FILE}
            )

    diagnostics: list[Diagnostic] = []
    for entry in pending:
        span = Span(start=0, end=0)
        file_name = entry["file"]
        if "line" in entry:
            if file_name not in indexes:
                try:
                    indexes[file_name] = _OffsetIndex(read_source(file_name))
                except (OSError, UnicodeDecodeError):
                    indexes[file_name] = None
            index = indexes[file_name]
            if index is not None:
                span = index.span(entry["line"], entry["col"])
        module = _MODULE_RE.search(entry["message"]) if entry["code"] == 2307 else None
        diagnostics.append(
            Diagnostic(
                code=entry["code"],
                message=entry["message"],
                file=file_name,
                span=span,
                module_name=module.group("module") if module else None,
            )
        )
    return diagnostics


@dataclass(slots=True)
class TscDiagnosticSource:
    """Run the project's TypeScript compiler in no-emit mode."""

    command: Optional[Sequence[str]] = None
    timeout: float = 300.0

    def resolve_command(self, project_root: Path) -> list[str]:
        if self.command:
            return list(self.command)
        local = project_root / "node_modules" / ".bin" / "tsc"
        if local.exists():
            return [str(local), *TSC_ARGS]
        found = shutil.which("tsc")
        if found is None:
            raise DiagnosticSourceError(
                "TypeScript compiler not found; install typescript in the project.",
                details={"project_root": str(project_root)},
            )
        return [found, *TSC_ARGS]

    def query(self, project_root: Path) -> DiagnosticSnapshot:
        root = Path(project_root).resolve()
        command = self.resolve_command(root)
        LOGGER.debug("Running %s in %s", " ".join(command), root)
        try:
            process = subprocess.run(  # noqa: S603  # command comes from config or node_modules
                command,
                cwd=root,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as error:
            raise DiagnosticSourceError(
                f"Executable not available: {command[0]}", details={"command": command}
            ) from error
        except subprocess.TimeoutExpired as error:
            raise DiagnosticSourceError(
                f"Diagnostics timed out after {self.timeout:g}s", details={"command": command}
            ) from error

        if process.returncode == 0:
            return DiagnosticSnapshot()
        combined = "\n".join(part for part in (process.stdout, process.stderr) if part)
        diagnostics = parse_tsc_output(combined, root)
        if not diagnostics:
            first_line = combined.strip().splitlines()[0] if combined.strip() else "no output"
            raise DiagnosticSourceError(
                f"Diagnostics command exited {process.returncode}: {first_line}",
                details={"command": command, "exit_code": process.returncode},
            )
        LOGGER.info("Collected %d diagnostic(s)", len(diagnostics))
        return DiagnosticSnapshot.of(diagnostics)


__all__ = [
    "DiagnosticSource",
    "DiagnosticSourceError",
    "TSC_ARGS",
    "TscDiagnosticSource",
    "parse_tsc_output",
]
