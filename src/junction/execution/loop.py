"""Diagnose, plan, apply and verify until the diagnostic count converges.

Each step queries the diagnostic source, asks the planner for a plan,
compiles it into file changes and keeps only the changes the acceptance
policy approves. ``simple`` mode applies the batch as one transaction and
judges it as a whole. ``focused`` mode targets the first diagnostic and
applies files one at a time against an evolving baseline.

The loop halts when the project is clean, when a step ends on the same
count as the previous step, when the planner has nothing to propose, when
a simple-mode step fails to reduce the count, or when the step budget is
spent. Accepted edits are never rolled back on halt.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from ..schema import Diagnostic, DiagnosticSnapshot, FileChange, Plan
from ..telemetry import emit_event
from ..tools.diagnostics import DiagnosticSource
from ..planning.context import ContextBuilder, Planner, resolve_plan
from .acceptance import EXPECTED_TRANSIENT_CODES, FileVerdict, PerFilePolicy, evaluate_batch
from .applier import PreimageMismatch, apply_changes, apply_file_change, revert_changes
from .compiler import compile_plan

if TYPE_CHECKING:
    from ..reporter import RunRecorder

LOGGER = logging.getLogger(__name__)


class LoopMode(str, Enum):
    SIMPLE = "simple"
    FOCUSED = "focused"


class HaltReason(str, Enum):
    """Why the loop stopped."""

    CLEAN = "clean"
    STABLE = "stable"
    BUDGET = "budget"
    NO_PLAN = "no_plan"
    NO_PROGRESS = "no_progress"


@dataclass(slots=True)
class StepResult:
    """Outcome of one loop step."""

    index: int
    before: int
    after: int
    plan: Plan
    target: Optional[Diagnostic] = None
    files_applied: List[Path] = field(default_factory=list)
    files_rejected: List[Path] = field(default_factory=list)
    verdicts: List[FileVerdict] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return bool(self.files_applied)

    def to_json_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "step": self.index,
            "before": self.before,
            "after": self.after,
            "filesApplied": [path.as_posix() for path in self.files_applied],
            "filesRejected": [path.as_posix() for path in self.files_rejected],
            "plan": self.plan.to_json_dict(),
        }
        if self.target is not None:
            payload["target"] = self.target.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.verdicts:
            payload["verdicts"] = [
                {
                    "file": verdict.file.as_posix(),
                    "accepted": verdict.accepted,
                    "reason": verdict.reason,
                    "deltaTarget": verdict.delta_target,
                    "localBefore": verdict.local_before,
                    "localAfter": verdict.local_after,
                }
                for verdict in self.verdicts
            ]
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class RunResult:
    """Overall outcome of a loop run."""

    initial: int
    final: int
    halt_reason: HaltReason
    steps: List[StepResult] = field(default_factory=list)
    session_id: Optional[str] = None

    @property
    def improved(self) -> bool:
        return self.final < self.initial

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "initial": self.initial,
            "final": self.final,
            "steps": len(self.steps),
            "haltReason": self.halt_reason.value,
            "filesApplied": sorted({path.as_posix() for step in self.steps for path in step.files_applied}),
        }


def apply_per_file(
    changes: Sequence[FileChange],
    policy: PerFilePolicy,
    query: Callable[[], DiagnosticSnapshot],
) -> List[FileVerdict]:
    """Apply ``changes`` one file at a time, in order, keeping only accepted files.

    Each file is written, the whole project is re-queried and the policy
    judges the file against its current baseline. Accepted files advance the
    baseline; rejected files are reverted before the next file is tried. A
    drifted preimage skips that file without writing it.
    """
    verdicts: List[FileVerdict] = []
    for change in changes:
        try:
            apply_file_change(change)
        except PreimageMismatch as error:
            LOGGER.warning("%s", error)
            verdicts.append(FileVerdict(file=change.file, accepted=False, error=str(error)))
            continue
        after = query()
        verdict = policy.evaluate(change, after)
        if verdict.accepted:
            policy.advance(after)
        else:
            revert_changes([change])
        LOGGER.info("%s %s (%s)", "Accepted" if verdict.accepted else "Rejected", change.file, verdict.reason)
        verdicts.append(verdict)
    return verdicts


class ConvergenceLoop:
    """Step the project toward zero diagnostics."""

    def __init__(
        self,
        project_root: Path,
        *,
        source: DiagnosticSource,
        planner: Planner,
        mode: LoopMode | str = LoopMode.FOCUSED,
        max_steps: int = 5,
        context_builder: Optional[ContextBuilder] = None,
        allowed_codes: frozenset[int] = EXPECTED_TRANSIENT_CODES,
        recorder: Optional["RunRecorder"] = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.source = source
        self.planner = planner
        self.mode = LoopMode(mode)
        self.max_steps = max(1, int(max_steps))
        self.context_builder = context_builder or ContextBuilder(project_root=self.project_root)
        self.allowed_codes = allowed_codes
        self.recorder = recorder

    def _query(self) -> DiagnosticSnapshot:
        return self.source.query(self.project_root)

    def _apply_simple(self, step: StepResult, before: DiagnosticSnapshot, changes: List[FileChange]) -> int:
        try:
            apply_changes(changes)
        except PreimageMismatch as error:
            LOGGER.warning("Step %d aborted: %s", step.index, error)
            step.error = str(error)
            return before.count
        after = self._query()
        verdict = evaluate_batch(before, after)
        if verdict.accepted:
            step.files_applied = [change.file for change in changes]
            return after.count
        LOGGER.info("Step %d batch rejected: %s", step.index, verdict.reason)
        revert_changes(changes)
        step.files_rejected = [change.file for change in changes]
        return before.count

    def _apply_focused(
        self, step: StepResult, before: DiagnosticSnapshot, target: Diagnostic, changes: List[FileChange]
    ) -> int:
        policy = PerFilePolicy(
            baseline=before, target=target, allowed_codes=self.allowed_codes, project_root=self.project_root
        )
        step.verdicts = apply_per_file(changes, policy, self._query)
        step.files_applied = [verdict.file for verdict in step.verdicts if verdict.accepted]
        step.files_rejected = [verdict.file for verdict in step.verdicts if not verdict.accepted]
        errors = [verdict.error for verdict in step.verdicts if verdict.error]
        if errors and not step.files_applied:
            step.error = "; ".join(errors)
        return policy.baseline.count

    def _finish(self, reason: HaltReason, initial: int, final: int, steps: List[StepResult]) -> RunResult:
        result = RunResult(
            initial=initial,
            final=final,
            halt_reason=reason,
            steps=steps,
            session_id=self.recorder.session_id if self.recorder else None,
        )
        LOGGER.info("Halted (%s) after %d step(s): %d -> %d", reason.value, len(steps), initial, final)
        emit_event(
            "loop.halted",
            reason=reason.value,
            steps=len(steps),
            initial=initial,
            final=final,
            mode=self.mode.value,
        )
        if self.recorder is not None:
            self.recorder.record_run(result)
        return result

    async def run(self) -> RunResult:
        steps: List[StepResult] = []
        last_count: float = math.inf
        initial: Optional[int] = None
        final = 0

        while len(steps) < self.max_steps:
            before = self._query()
            if initial is None:
                initial = before.count
            final = before.count
            if before.count == 0:
                return self._finish(HaltReason.CLEAN, initial, final, steps)

            index = len(steps) + 1
            target = before.diagnostics[0] if self.mode is LoopMode.FOCUSED else None
            context = self.context_builder.build(before, target=target)
            plan = await resolve_plan(self.planner, context)
            if self.recorder is not None:
                self.recorder.record_plan(index, plan)
            if not plan.ops:
                LOGGER.info("Step %d: planner proposed no ops", index)
                return self._finish(HaltReason.NO_PLAN, initial, final, steps)

            changes = compile_plan(plan, project_root=self.project_root)
            if self.recorder is not None and changes:
                self.recorder.record_changes(index, changes)
            step = StepResult(index=index, before=before.count, after=before.count, plan=plan, target=target)
            if changes:
                if self.mode is LoopMode.SIMPLE:
                    step.after = self._apply_simple(step, before, changes)
                else:
                    step.after = self._apply_focused(step, before, target, changes)
            steps.append(step)
            final = step.after
            LOGGER.info(
                "Step %d: %d -> %d (%d file(s) applied)", index, step.before, step.after, len(step.files_applied)
            )
            emit_event(
                "step.completed",
                step=index,
                before=step.before,
                after=step.after,
                files_applied=step.files_applied,
                files_rejected=step.files_rejected,
                error=step.error,
            )
            if self.recorder is not None:
                self.recorder.record_step(step)

            if step.error is not None and not step.files_applied:
                continue
            if step.after == 0:
                return self._finish(HaltReason.CLEAN, initial, final, steps)
            if step.after == last_count:
                return self._finish(HaltReason.STABLE, initial, final, steps)
            if self.mode is LoopMode.SIMPLE and step.after >= step.before:
                return self._finish(HaltReason.NO_PROGRESS, initial, final, steps)
            last_count = step.after

        return self._finish(HaltReason.BUDGET, initial if initial is not None else final, final, steps)

    def run_sync(self) -> RunResult:
        """Run the loop on a fresh event loop."""
        return asyncio.run(self.run())


__all__ = [
    "ConvergenceLoop",
    "HaltReason",
    "LoopMode",
    "RunResult",
    "StepResult",
    "apply_per_file",
]
