"""Write-once run artifacts under ``.upgrade/runs/<session>/``."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Sequence

from .schema import FileChange, Plan

if TYPE_CHECKING:
    from .execution.loop import RunResult, StepResult

LOGGER = logging.getLogger(__name__)

DEFAULT_RUNS_DIR = ".upgrade/runs"


def new_session_id() -> str:
    """Return a sortable identifier such as ``20240101T120000Z-1a2b3c4d``."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{timestamp}-{uuid.uuid4().hex[:8]}"


def _relative_name(project_root: Path, file: Path) -> str:
    try:
        return file.resolve().relative_to(project_root).as_posix()
    except ValueError:
        # Outside the project: keep the path but make it safe to nest.
        return "_external/" + file.resolve().as_posix().lstrip("/").replace(":", "")


class RunRecorder:
    """Persist plans, file changes and step summaries for one session.

    Every artifact is created exclusively; writing the same artifact twice
    raises ``FileExistsError``.
    """

    def __init__(self, project_root: Path, session_id: str | None = None, runs_dir: str = DEFAULT_RUNS_DIR) -> None:
        self.project_root = Path(project_root).resolve()
        self.session_id = session_id or new_session_id()
        self.root = self.project_root / runs_dir / self.session_id

    def _write_text(self, path: Path, text: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("x", encoding="utf-8", newline="") as handle:
            handle.write(text)
        return path

    def _write_json(self, path: Path, payload: Any) -> Path:
        return self._write_text(path, json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n")

    def record_plan(self, step: int, plan: Plan) -> Path:
        path = self._write_json(self.root / f"step-{step:03d}.plan.json", plan.to_json_dict())
        LOGGER.debug("Recorded plan for step %d at %s", step, path)
        return path

    def record_changes(self, step: int, changes: Sequence[FileChange]) -> List[Path]:
        """Store each change's before/after text plus a manifest."""
        base = self.root / f"step-{step:03d}.changes"
        written: List[Path] = []
        manifest: List[dict[str, str]] = []
        for change in changes:
            name = _relative_name(self.project_root, change.file)
            before_path = self._write_text(base / f"{name}.before", change.before)
            after_path = self._write_text(base / f"{name}.after", change.after)
            written.extend([before_path, after_path])
            manifest.append(
                {
                    "file": name,
                    "beforePath": before_path.relative_to(self.root).as_posix(),
                    "afterPath": after_path.relative_to(self.root).as_posix(),
                }
            )
        written.append(self._write_json(base / "manifest.json", manifest))
        return written

    def record_step(self, result: "StepResult") -> Path:
        return self._write_json(self.root / f"step-{result.index:03d}.json", result.to_json_dict())

    def record_run(self, result: "RunResult") -> Path:
        payload = result.to_json_dict()
        payload["timestamp"] = datetime.now(timezone.utc).isoformat()
        path = self._write_json(self.root / "run.json", payload)
        LOGGER.info("Run record written to %s", path)
        return path


__all__ = ["DEFAULT_RUNS_DIR", "RunRecorder", "new_session_id"]
