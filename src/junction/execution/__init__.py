"""Compile, apply, verify and iterate."""

from .acceptance import (
    EXPECTED_TRANSIENT_CODES,
    BatchVerdict,
    FileVerdict,
    PerFilePolicy,
    evaluate_batch,
)
from .applier import ApplyError, PreimageMismatch, apply_changes, apply_file_change, revert_changes
from .compiler import compile_plan, summarize_plan_files
from .loop import ConvergenceLoop, HaltReason, LoopMode, RunResult, StepResult, apply_per_file

__all__ = [
    "ApplyError",
    "BatchVerdict",
    "ConvergenceLoop",
    "EXPECTED_TRANSIENT_CODES",
    "FileVerdict",
    "HaltReason",
    "LoopMode",
    "PerFilePolicy",
    "PreimageMismatch",
    "RunResult",
    "StepResult",
    "apply_changes",
    "apply_file_change",
    "apply_per_file",
    "compile_plan",
    "evaluate_batch",
    "revert_changes",
    "summarize_plan_files",
]
