from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from conftest import AsyncPlanner, PatternSource, ScriptedPlanner

from junction import cli
from junction.cli import app
from junction.schema import Plan, RemoveAttribute
from junction.tools.diagnostics import DiagnosticSourceError

runner = CliRunner()


@pytest.fixture()
def wired(tsx_project: Path, monkeypatch: pytest.MonkeyPatch) -> tuple[Path, ScriptedPlanner]:
    """Point the CLI at a pattern-based checker and a scripted planner."""
    app_file = (tsx_project / "src" / "App.tsx").resolve()
    planner = ScriptedPlanner([Plan(ops=[RemoveAttribute(file=str(app_file), tag="Route", attr="exact")])])
    monkeypatch.setattr(cli, "_build_source", lambda settings: PatternSource({2322: r"\bexact\b", 2305: r"\bSwitch\b"}))
    monkeypatch.setattr(cli, "_build_planner", lambda settings: planner)
    return tsx_project, planner


def _args(project: Path, *extra: str) -> list[str]:
    return [*extra, "--config", str(project / "junction.yaml"), "--project", str(project)]


def test_init_writes_config_once(tmp_path: Path) -> None:
    config = tmp_path / "junction.yaml"

    first = runner.invoke(app, ["init", "--config", str(config)], catch_exceptions=False)
    second = runner.invoke(app, ["init", "--config", str(config)])
    forced = runner.invoke(app, ["init", "--config", str(config), "--force"])

    assert first.exit_code == 0, first.output
    assert yaml.safe_load(config.read_text(encoding="utf-8"))["loop"]["mode"] == "focused"
    assert second.exit_code == 1 and "already exists" in second.output
    assert forced.exit_code == 0


def test_diagnose_summarises_by_code(wired) -> None:
    project, _ = wired

    result = runner.invoke(app, _args(project, "diagnose"), catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Diagnostics: 4" in result.output
    assert "  TS2305: 3" in result.output
    assert result.output.index("TS2305") < result.output.index("TS2322")


def test_plan_prints_json(wired) -> None:
    project, planner = wired

    result = runner.invoke(app, _args(project, "plan", "--focused"), catch_exceptions=False)

    assert result.exit_code == 0, result.output
    body = json.loads(result.output)
    assert body["ops"][0]["kind"] == "REMOVE_ATTRIBUTE"
    assert planner.contexts[0].target is not None


def test_plan_awaits_async_planner(tsx_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    app_file = (tsx_project / "src" / "App.tsx").resolve()
    planner = AsyncPlanner(Plan(ops=[RemoveAttribute(file=str(app_file), tag="Route", attr="exact")]))
    monkeypatch.setattr(cli, "_build_source", lambda settings: PatternSource({2322: r"\bexact\b"}))
    monkeypatch.setattr(cli, "_build_planner", lambda settings: planner)

    result = runner.invoke(app, _args(tsx_project, "plan"), catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert planner.calls == 1
    assert json.loads(result.output)["ops"][0]["attr"] == "exact"


def test_apply_runs_single_batch(wired) -> None:
    project, _ = wired

    result = runner.invoke(app, _args(project, "apply"), catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Applied: True. Before: 4 After: 3" in result.output
    assert "exact" not in (project / "src" / "App.tsx").read_text(encoding="utf-8")


def test_run_reports_steps_and_halt(wired) -> None:
    project, _ = wired

    result = runner.invoke(app, _args(project, "run", "--max-steps", "4", "--debug"), catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Step 1: Before=4 After=3 Applied=1" in result.output
    assert "Step 2: Before=3 After=3 Applied=0" in result.output
    assert "Halted: stable (4 -> 3 in 2 step(s))" in result.output
    runs = list((project / ".upgrade" / "runs").iterdir())
    assert len(runs) == 1 and (runs[0] / "run.json").exists()


def test_run_rejects_unknown_mode(wired) -> None:
    project, _ = wired

    result = runner.invoke(app, _args(project, "run", "--mode", "eager"))

    assert result.exit_code == 2


def test_diagnostic_failure_exits_nonzero(tsx_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenSource:
        def query(self, project_root: Path):
            raise DiagnosticSourceError("tsc missing")

    monkeypatch.setattr(cli, "_build_source", lambda settings: BrokenSource())

    result = runner.invoke(app, _args(tsx_project, "run"))

    assert result.exit_code == 1
    assert "Diagnostics failed: tsc missing" in result.output


def test_llm_planner_without_key_exits(tsx_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(cli, "_build_source", lambda settings: PatternSource({2322: r"\bexact\b"}))

    result = runner.invoke(app, _args(tsx_project, "plan", "--planner", "llm"))

    assert result.exit_code == 1
    assert "No API key given. Set OPENAI_API_KEY" in result.output


def test_deps_upgrade_edits_package_json(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text(
        json.dumps({"dependencies": {"react-router-dom": "^5.3.4"}, "devDependencies": {"@types/history": "^4.7.11"}}),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["deps-upgrade", "--project", str(tmp_path)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Updated: react-router-dom, @types/history" in result.output
    data = json.loads((tmp_path / "package.json").read_text(encoding="utf-8"))
    assert data["dependencies"]["react-router-dom"] == "6.30.1"
