"""CLI commands for diagnosing and migrating router v5 projects."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_NAME, LOOP_MODES, ConfigError, MigrationSettings, write_default_config
from .execution.loop import ConvergenceLoop, LoopMode, RunResult
from .planning.context import ContextBuilder, Planner, resolve_plan
from .planning.llm import LlmPlanner, build_client
from .planning.rules import RulePlanner, default_registry
from .reporter import RunRecorder
from .tools.deps import (
    ROUTER_V6_VERSION,
    DependencyError,
    reset_router_dependencies,
    run_package_manager,
    upgrade_router_dependencies,
)
from .tools.diagnostics import DiagnosticSource, DiagnosticSourceError, TscDiagnosticSource
from .tools.vcs import GitError, GitRepository

APP_HELP = "React Router v5 to v6 migration assistant (diagnose, plan, apply)."

app = typer.Typer(help=APP_HELP)

_CONFIG_OPTION = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help="Path to the migration configuration file.")
_PROJECT_OPTION = typer.Option(None, "--project", "-p", help="Project root; overrides project.repo_root.")
_PLANNER_OPTION = typer.Option(None, "--planner", help="Planner kind: rules or llm.")
_PROVIDER_OPTION = typer.Option(None, "--provider", help="LLM provider: openai or anthropic.")
_MODEL_OPTION = typer.Option(None, "--model", help="LLM model name.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress and telemetry events."),
) -> None:
    """Configure logging before any command runs."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings(
    config: str,
    project: Optional[Path],
    *,
    planner: Optional[str] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> MigrationSettings:
    config_path = Path(config)
    try:
        settings = MigrationSettings.load(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    if project is not None:
        settings.project_root = project.resolve()
    if planner is not None:
        if planner not in ("rules", "llm"):
            raise typer.BadParameter("planner must be 'rules' or 'llm'", param_hint="--planner")
        settings.planner_kind = planner
    if provider is not None:
        if provider not in ("openai", "anthropic"):
            raise typer.BadParameter("provider must be 'openai' or 'anthropic'", param_hint="--provider")
        settings.provider = provider
    if model:
        settings.model = model
    return settings


def _build_source(settings: MigrationSettings) -> DiagnosticSource:
    return TscDiagnosticSource(command=settings.diagnostics_command, timeout=settings.diagnostics_timeout)


def _build_planner(settings: MigrationSettings) -> Planner:
    if settings.planner_kind == "rules":
        return RulePlanner(default_registry())
    try:
        client = build_client(settings)
    except ValueError as error:
        key_name = "ANTHROPIC_API_KEY" if settings.provider == "anthropic" else "OPENAI_API_KEY"
        typer.echo(f"No API key given. Set {key_name} or use --planner rules. ({error})")
        raise typer.Exit(code=1) from error
    typer.echo(f"Using {settings.provider} planner ({settings.model}).")
    return LlmPlanner(client)


def _context_builder(settings: MigrationSettings) -> ContextBuilder:
    return ContextBuilder(
        project_root=settings.project_root,
        source_dirs=settings.source_dirs,
        file_limit=settings.file_limit,
        excerpt_radius=settings.excerpt_radius,
        head_limit=settings.head_limit,
        guidance_document=settings.guidance_document,
        guidance_keywords=settings.guidance_keywords,
    )


def _run_loop(settings: MigrationSettings, *, mode: str, max_steps: int, debug: bool) -> RunResult:
    recorder = RunRecorder(settings.project_root, runs_dir=settings.runs_dir) if debug else None
    loop = ConvergenceLoop(
        settings.project_root,
        source=_build_source(settings),
        planner=_build_planner(settings),
        mode=mode,
        max_steps=max_steps,
        context_builder=_context_builder(settings),
        allowed_codes=settings.transient_codes,
        recorder=recorder,
    )
    try:
        return loop.run_sync()
    except DiagnosticSourceError as error:
        typer.echo(f"Diagnostics failed: {error}")
        raise typer.Exit(code=1) from error


def _commit(project_root: Path, message: str) -> None:
    if not GitRepository.is_repo(project_root):
        typer.echo("Not a git repository; skipping commit.")
        return
    try:
        repo = GitRepository(project_root)
        sha = repo.commit_all(message)
    except GitError as error:
        typer.echo(f"Git commit skipped: {error}")
        return
    if sha is None:
        typer.echo("Nothing to commit.")
    else:
        typer.echo(f"Committed {sha[:8]} on branch {repo.current_branch() or '(detached)'}")


@app.command()
def init(
    config: str = _CONFIG_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration file."""
    try:
        path = write_default_config(Path(config), overwrite=force)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    typer.echo(f"Wrote default configuration to {path}")


@app.command()
def diagnose(config: str = _CONFIG_OPTION, project: Optional[Path] = _PROJECT_OPTION) -> None:
    """Run the type checker and summarise diagnostics by code."""
    settings = _load_settings(config, project)
    typer.echo(f"Running diagnostics in {settings.project_root}...")
    try:
        snapshot = _build_source(settings).query(settings.project_root)
    except DiagnosticSourceError as error:
        typer.echo(f"Diagnostics failed: {error}")
        raise typer.Exit(code=1) from error
    typer.echo(f"Diagnostics: {snapshot.count}")
    if snapshot.count:
        typer.echo("By code:")
        for code, count in sorted(snapshot.by_code().items(), key=lambda item: (-item[1], item[0])):
            typer.echo(f"  TS{code}: {count}")


@app.command()
def plan(
    config: str = _CONFIG_OPTION,
    project: Optional[Path] = _PROJECT_OPTION,
    planner: Optional[str] = _PLANNER_OPTION,
    provider: Optional[str] = _PROVIDER_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    focused: bool = typer.Option(False, "--focused", help="Target the first diagnostic only."),
) -> None:
    """Print the plan the configured planner proposes."""
    settings = _load_settings(config, project, planner=planner, provider=provider, model=model)
    try:
        snapshot = _build_source(settings).query(settings.project_root)
    except DiagnosticSourceError as error:
        typer.echo(f"Diagnostics failed: {error}")
        raise typer.Exit(code=1) from error
    if snapshot.count == 0:
        typer.echo("No diagnostics; nothing to plan.")
        return
    target = snapshot.diagnostics[0] if focused else None
    context = _context_builder(settings).build(snapshot, target=target)
    proposed = asyncio.run(resolve_plan(_build_planner(settings), context))
    typer.echo(json.dumps(proposed.to_json_dict(), indent=2))


@app.command()
def apply(
    config: str = _CONFIG_OPTION,
    project: Optional[Path] = _PROJECT_OPTION,
    planner: Optional[str] = _PLANNER_OPTION,
    provider: Optional[str] = _PROVIDER_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    git: bool = typer.Option(False, "--git", help="Commit after applying."),
    debug: bool = typer.Option(False, "--debug", help="Write plan and change artifacts under the runs directory."),
) -> None:
    """Plan and apply a single whole-batch step."""
    settings = _load_settings(config, project, planner=planner, provider=provider, model=model)
    result = _run_loop(settings, mode=LoopMode.SIMPLE.value, max_steps=1, debug=debug)
    step = result.steps[0] if result.steps else None
    applied = bool(step and step.accepted)
    after = f" After: {step.after}" if step else ""
    typer.echo(f"Applied: {applied}. Before: {result.initial}{after}")
    if step is not None and step.error:
        typer.echo(f"Error: {step.error}")
    if git and applied:
        _commit(settings.project_root, "router-fix: apply agent batch")
    typer.echo("Done.")


@app.command()
def run(
    config: str = _CONFIG_OPTION,
    project: Optional[Path] = _PROJECT_OPTION,
    planner: Optional[str] = _PLANNER_OPTION,
    provider: Optional[str] = _PROVIDER_OPTION,
    model: Optional[str] = _MODEL_OPTION,
    mode: Optional[str] = typer.Option(None, "--mode", help="Loop mode: simple or focused."),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", min=1, help="Maximum number of steps."),
    debug: bool = typer.Option(False, "--debug", help="Write plan and change artifacts under the runs directory."),
    git: bool = typer.Option(False, "--git", help="Commit accepted edits when the loop halts."),
) -> None:
    """Iterate plan and apply steps until clean, stable or out of budget."""
    settings = _load_settings(config, project, planner=planner, provider=provider, model=model)
    if mode is not None and mode not in LOOP_MODES:
        raise typer.BadParameter("mode must be 'simple' or 'focused'", param_hint="--mode")
    result = _run_loop(
        settings,
        mode=mode or settings.mode,
        max_steps=max_steps or settings.max_steps,
        debug=debug,
    )
    for step in result.steps:
        line = f"Step {step.index}: Before={step.before} After={step.after} Applied={len(step.files_applied)}"
        if step.files_rejected:
            line += f" Rejected={len(step.files_rejected)}"
        if step.error:
            line += f" Error={step.error}"
        typer.echo(line)
    typer.echo(
        f"Halted: {result.halt_reason.value} ({result.initial} -> {result.final} in {len(result.steps)} step(s))"
    )
    if not result.improved and result.final > 0:
        typer.echo("No reduction in diagnostics.")
    if result.session_id:
        typer.echo(f"Artifacts: {settings.project_root / settings.runs_dir / result.session_id}")
    if git and result.improved:
        _commit(settings.project_root, f"router-fix: {result.initial} -> {result.final} diagnostics")


@app.command("git-prep")
def git_prep(
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project root."),
    branch: str = typer.Option("upgrade/router-v6", "--branch", "-b", help="Branch to create."),
    tag: Optional[str] = typer.Option(None, "--tag", help="Tag the current HEAD before branching."),
) -> None:
    """Tag the current state and switch to a fresh upgrade branch."""
    try:
        repo = GitRepository(project)
        repo.ensure_clean()
        if tag:
            typer.echo(f"Tagging current HEAD as {tag}")
            repo.tag(tag, "Pre-upgrade snapshot")
        typer.echo(f"Creating and checking out {branch} ...")
        repo.checkout_new_branch(branch)
    except GitError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    typer.echo("Done.")


def _finish_dependency_change(project: Path, changed: list[str], *, install: bool, package_manager: str) -> None:
    if changed:
        typer.echo(f"Updated: {', '.join(changed)}")
    else:
        typer.echo("package.json already up to date.")
    if install:
        typer.echo(f"Installing dependencies with {package_manager}...")
        try:
            run_package_manager([package_manager, "install"], project)
        except DependencyError as error:
            typer.echo(str(error))
            raise typer.Exit(code=1) from error


@app.command("deps-upgrade")
def deps_upgrade(
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project root."),
    version: str = typer.Option(ROUTER_V6_VERSION, "--version", help="react-router-dom version to pin."),
    install: bool = typer.Option(False, "--install", help="Install dependencies afterwards."),
    package_manager: str = typer.Option("pnpm", "--package-manager", help="Package manager executable."),
    git: bool = typer.Option(False, "--git", help="Commit the change."),
) -> None:
    """Pin react-router-dom to v6 and drop v5-only type packages."""
    root = project.resolve()
    try:
        changed = upgrade_router_dependencies(root, version)
    except DependencyError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    _finish_dependency_change(root, changed, install=install, package_manager=package_manager)
    if git and changed:
        _commit(root, "deps: upgrade react-router-dom (via router-fix)")
    typer.echo("Done.")


@app.command("deps-reset")
def deps_reset(
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project root."),
    install: bool = typer.Option(False, "--install", help="Install dependencies afterwards."),
    package_manager: str = typer.Option("pnpm", "--package-manager", help="Package manager executable."),
    git: bool = typer.Option(False, "--git", help="Commit the change."),
) -> None:
    """Return react-router-dom to the v5 line and restore its type packages."""
    root = project.resolve()
    try:
        changed = reset_router_dependencies(root)
    except DependencyError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    _finish_dependency_change(root, changed, install=install, package_manager=package_manager)
    if git and changed:
        _commit(root, "deps: reset react-router-dom to v5 (via router-fix)")
    typer.echo("Done.")


if __name__ == "__main__":
    app()
