"""Convergence-driven source migration for TypeScript projects."""

from .execution import ConvergenceLoop, HaltReason, LoopMode, RunResult, StepResult, compile_plan
from .schema import Diagnostic, DiagnosticSnapshot, FileChange, Plan

__version__ = "0.1.0"

__all__ = [
    "ConvergenceLoop",
    "Diagnostic",
    "DiagnosticSnapshot",
    "FileChange",
    "HaltReason",
    "LoopMode",
    "Plan",
    "RunResult",
    "StepResult",
    "compile_plan",
]
