from __future__ import annotations

import re
import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from junction.planning.context import PlannerContext  # noqa: E402
from junction.schema import Diagnostic, DiagnosticSnapshot, Plan, Span  # noqa: E402


APP_V5 = textwrap.dedent(
    """
    import React from 'react';
    import { BrowserRouter, Switch, Route } from 'react-router-dom';
    import Home from './pages/Home';

    export default function App() {
      return (
        <BrowserRouter>
          <Switch>
            <Route exact path="/" component={Home} />
          </Switch>
        </BrowserRouter>
      );
    }
    """
).lstrip()


def _report_path(path: Path, project_root: Path, relative: bool) -> str:
    if relative:
        return path.relative_to(project_root).as_posix()
    return path.resolve().as_posix()


@dataclass(slots=True)
class PatternSource:
    """Fake type checker: one diagnostic per regex match in project sources.

    With ``relative`` set, files are reported relative to the project root the
    way raw tsc output names them.
    """

    patterns: Mapping[int, str]
    source_dir: str = "src"
    relative: bool = False
    calls: int = 0

    def query(self, project_root: Path) -> DiagnosticSnapshot:
        self.calls += 1
        diagnostics: list[Diagnostic] = []
        for path in sorted((Path(project_root) / self.source_dir).rglob("*.ts*")):
            text = path.read_text(encoding="utf-8")
            for code, pattern in self.patterns.items():
                for match in re.finditer(pattern, text):
                    diagnostics.append(
                        Diagnostic(
                            code=code,
                            message=f"matched {pattern}",
                            file=_report_path(path, project_root, self.relative),
                            span=Span(start=match.start(), end=match.end()),
                        )
                    )
        return DiagnosticSnapshot.of(diagnostics)


@dataclass(slots=True)
class ScriptedSource:
    """Returns pre-built snapshots in order, repeating the last one."""

    snapshots: Sequence[DiagnosticSnapshot]
    calls: int = 0

    def query(self, project_root: Path) -> DiagnosticSnapshot:
        index = min(self.calls, len(self.snapshots) - 1)
        self.calls += 1
        return self.snapshots[index]


@dataclass(slots=True)
class ScriptedPlanner:
    """Synchronous planner replaying plans; the last plan repeats."""

    plans: Sequence[Plan]
    contexts: List[PlannerContext] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return len(self.contexts)

    def propose(self, context: PlannerContext) -> Plan:
        self.contexts.append(context)
        return self.plans[min(len(self.contexts) - 1, len(self.plans) - 1)]


@dataclass(slots=True)
class AsyncPlanner:
    plan: Plan
    calls: int = 0

    async def propose(self, context: PlannerContext) -> Plan:
        self.calls += 1
        return self.plan


def make_snapshot(file: Path | str, *codes: int) -> DiagnosticSnapshot:
    path = Path(file).resolve().as_posix()
    return DiagnosticSnapshot.of(
        [Diagnostic(code=code, message=f"TS{code}", file=path, span=Span(start=0, end=0)) for code in codes]
    )


@pytest.fixture()
def tsx_project(tmp_path: Path) -> Path:
    """Tiny router v5 project with a single App.tsx."""
    root = tmp_path / "router-app"
    (root / "src" / "pages").mkdir(parents=True)
    (root / "src" / "App.tsx").write_text(APP_V5, encoding="utf-8")
    (root / "src" / "pages" / "Home.tsx").write_text(
        "export default function Home() {\n  return <h1>Home</h1>;\n}\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def write_source() -> Callable[[Path, str], Path]:
    def _write(path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        return path

    return _write
