"""Keep-or-revert decisions derived from diagnostic snapshots.

Two policies exist. The whole-batch policy compares the snapshots taken
before and after a multi-file apply. The per-file policy judges each file
against a baseline that only advances when a file is accepted, so later
files see the effects of earlier accepted ones and never of rejected ones.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from ..schema import Diagnostic, DiagnosticSnapshot, FileChange

# TS2304 cannot find name, TS2305 module has no exported member, TS2307 cannot
# find module, TS2322/TS2345 type mismatch, TS2552/TS2724 "did you mean".
EXPECTED_TRANSIENT_CODES: frozenset[int] = frozenset({2304, 2305, 2307, 2322, 2345, 2552, 2724})


@dataclass(slots=True, frozen=True)
class BatchVerdict:
    """Outcome of the whole-batch policy."""

    accepted: bool
    before_count: int
    after_count: int
    new_codes: frozenset[int] = frozenset()

    @property
    def reason(self) -> str:
        if self.accepted:
            return "accepted"
        if self.after_count > self.before_count:
            return f"diagnostics increased {self.before_count} -> {self.after_count}"
        return f"new diagnostic codes {sorted(self.new_codes)}"


def evaluate_batch(before: DiagnosticSnapshot, after: DiagnosticSnapshot) -> BatchVerdict:
    """Accept when the count did not grow and no new code kind appeared."""
    new_codes = after.codes() - before.codes()
    accepted = after.count <= before.count and not new_codes
    return BatchVerdict(
        accepted=accepted,
        before_count=before.count,
        after_count=after.count,
        new_codes=frozenset(new_codes),
    )


@dataclass(slots=True, frozen=True)
class FileVerdict:
    """Outcome of the per-file policy for one file change."""

    file: Path
    accepted: bool
    delta_target: int = 0
    local_before: int = 0
    local_after: int = 0
    new_codes: frozenset[int] = frozenset()
    after_count: int | None = None
    error: str | None = None

    @property
    def reason(self) -> str:
        if self.error:
            return self.error
        if not self.accepted and self.new_codes:
            return f"new diagnostic codes {sorted(self.new_codes)}"
        if not self.accepted:
            return f"file diagnostics increased {self.local_before} -> {self.local_after}"
        if self.delta_target < 0:
            return "target diagnostic reduced"
        return "no local regression"


@dataclass(slots=True)
class PerFilePolicy:
    """Per-file acceptance against an evolving baseline.

    Diagnostics reporting project-relative files are matched against
    ``project_root``.
    """

    baseline: DiagnosticSnapshot
    target: Diagnostic | None = None
    allowed_codes: frozenset[int] = field(default=EXPECTED_TRANSIENT_CODES)
    project_root: Path | None = None

    def evaluate(self, change: FileChange, after: DiagnosticSnapshot) -> FileVerdict:
        """Judge ``change`` from the snapshot measured right after writing it."""
        baseline = self.baseline
        root = self.project_root
        delta_target = 0
        if self.target is not None:
            code, file = self.target.code, self.target.file
            delta_target = after.count_matching(code, file, root=root) - baseline.count_matching(code, file, root=root)
        unexpected = frozenset(after.codes() - baseline.codes() - self.allowed_codes)
        new_codes_ok = not unexpected
        local_before = baseline.count_in_file(change.file, root=root)
        local_after = after.count_in_file(change.file, root=root)
        accepted = new_codes_ok and (delta_target < 0 or local_after <= local_before)
        return FileVerdict(
            file=change.file,
            accepted=accepted,
            delta_target=delta_target,
            local_before=local_before,
            local_after=local_after,
            new_codes=unexpected,
            after_count=after.count,
        )

    def advance(self, snapshot: DiagnosticSnapshot) -> None:
        self.baseline = snapshot


def coerce_codes(values: Iterable[object] | None) -> frozenset[int]:
    """Normalise configured code lists (``2304`` or ``"TS2304"``) into integers."""
    if values is None:
        return EXPECTED_TRANSIENT_CODES
    codes: set[int] = set()
    for value in values:
        text = str(value).strip().upper()
        if text.startswith("TS"):
            text = text[2:]
        try:
            codes.add(int(text))
        except ValueError:
            continue
    return frozenset(codes)


__all__ = [
    "BatchVerdict",
    "EXPECTED_TRANSIENT_CODES",
    "FileVerdict",
    "PerFilePolicy",
    "coerce_codes",
    "evaluate_batch",
]
