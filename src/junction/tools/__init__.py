"""Tool integrations: source edits, diagnostics, git and dependencies."""

from .deps import DependencyError, reset_router_dependencies, run_package_manager, upgrade_router_dependencies
from .diagnostics import DiagnosticSource, DiagnosticSourceError, TscDiagnosticSource, parse_tsc_output
from .vcs import GitError, GitRepository
from .workspace import list_source_files

__all__ = [
    "DependencyError",
    "DiagnosticSource",
    "DiagnosticSourceError",
    "GitError",
    "GitRepository",
    "TscDiagnosticSource",
    "list_source_files",
    "parse_tsc_output",
    "reset_router_dependencies",
    "run_package_manager",
    "upgrade_router_dependencies",
]
