from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_snapshot

from junction.execution.acceptance import (
    EXPECTED_TRANSIENT_CODES,
    PerFilePolicy,
    coerce_codes,
    evaluate_batch,
)
from junction.schema import Diagnostic, DiagnosticSnapshot, FileChange


def test_batch_accepts_fewer_diagnostics_with_known_codes(tmp_path: Path) -> None:
    before = make_snapshot(tmp_path / "f.ts", 2305, 2305, 2322, 2322, 2322)
    after = make_snapshot(tmp_path / "f.ts", 2322, 2322, 2322)

    verdict = evaluate_batch(before, after)

    assert verdict.accepted
    assert (verdict.before_count, verdict.after_count) == (5, 3)


def test_batch_rejects_new_code_even_when_count_drops(tmp_path: Path) -> None:
    before = make_snapshot(tmp_path / "f.ts", 2305, 2305)
    after = make_snapshot(tmp_path / "f.ts", 9999)

    verdict = evaluate_batch(before, after)

    assert not verdict.accepted
    assert verdict.new_codes == frozenset({9999})
    assert "new diagnostic codes" in verdict.reason


def test_batch_rejects_growth(tmp_path: Path) -> None:
    verdict = evaluate_batch(make_snapshot(tmp_path / "f.ts", 2322), make_snapshot(tmp_path / "f.ts", 2322, 2322))

    assert not verdict.accepted
    assert verdict.reason == "diagnostics increased 1 -> 2"


def test_per_file_accepts_target_reduction_despite_local_growth(tmp_path: Path) -> None:
    f = tmp_path / "f.ts"
    g = tmp_path / "g.ts"
    target = Diagnostic(code=2305, message="m", file=f.as_posix())
    baseline = DiagnosticSnapshot.of([*make_snapshot(f, 2305, 2305).diagnostics])
    after = DiagnosticSnapshot.of([*make_snapshot(f, 2322, 2322, 2322).diagnostics, *make_snapshot(g, 2305).diagnostics])
    policy = PerFilePolicy(baseline=baseline, target=target)

    verdict = policy.evaluate(FileChange(file=f, before="", after=""), after)

    assert verdict.delta_target == -2
    assert verdict.accepted
    assert verdict.reason == "target diagnostic reduced"


def test_per_file_rejects_unexpected_new_code(tmp_path: Path) -> None:
    f = tmp_path / "f.ts"
    policy = PerFilePolicy(baseline=make_snapshot(f, 2322, 2322))

    verdict = policy.evaluate(FileChange(file=f, before="", after=""), make_snapshot(f, 7006))

    assert not verdict.accepted
    assert verdict.new_codes == frozenset({7006})


def test_per_file_allows_expected_transient_codes(tmp_path: Path) -> None:
    f = tmp_path / "f.ts"
    g = tmp_path / "g.ts"
    policy = PerFilePolicy(baseline=make_snapshot(f, 7006, 7006))
    after = DiagnosticSnapshot.of([*make_snapshot(f, 7006).diagnostics, *make_snapshot(g, 2304).diagnostics])

    verdict = policy.evaluate(FileChange(file=f, before="", after=""), after)

    assert verdict.accepted
    assert (verdict.local_before, verdict.local_after) == (2, 1)


def test_baseline_only_moves_on_advance(tmp_path: Path) -> None:
    f = tmp_path / "f.ts"
    baseline = make_snapshot(f, 2322, 2322)
    policy = PerFilePolicy(baseline=baseline)
    after = make_snapshot(f, 2322)

    policy.evaluate(FileChange(file=f, before="", after=""), after)
    assert policy.baseline is baseline

    policy.advance(after)
    assert policy.baseline is after


def _relative_snapshot(file: str, *codes: int) -> DiagnosticSnapshot:
    return DiagnosticSnapshot.of([Diagnostic(code=code, message=f"TS{code}", file=file) for code in codes])


def test_per_file_resolves_project_relative_diagnostics(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    project = (tmp_path / "proj").resolve()
    outside = tmp_path / "outside"
    outside.mkdir()
    monkeypatch.chdir(outside)
    change = FileChange(file=project / "src" / "App.tsx", before="", after="")
    policy = PerFilePolicy(baseline=_relative_snapshot("src/App.tsx", 2322), project_root=project)

    grown = policy.evaluate(change, _relative_snapshot("src/App.tsx", 2322, 2322, 2322, 2322))

    assert not grown.accepted
    assert (grown.local_before, grown.local_after) == (1, 4)


def test_per_file_relative_target_counts_reduction(tmp_path: Path) -> None:
    project = tmp_path.resolve()
    target = Diagnostic(code=2305, message="Switch", file="src/App.tsx")
    policy = PerFilePolicy(
        baseline=_relative_snapshot("src/App.tsx", 2305, 2305),
        target=target,
        project_root=project,
    )

    verdict = policy.evaluate(
        FileChange(file=project / "src" / "App.tsx", before="", after=""),
        _relative_snapshot("src/App.tsx", 2305),
    )

    assert verdict.accepted
    assert verdict.delta_target == -1
    assert verdict.reason == "target diagnostic reduced"


def test_coerce_codes_accepts_prefixed_strings() -> None:
    assert coerce_codes(["TS2304", 2305, " ts2307 ", "junk"]) == frozenset({2304, 2305, 2307})
    assert coerce_codes(None) == EXPECTED_TRANSIENT_CODES
