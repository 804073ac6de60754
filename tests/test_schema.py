from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from junction.schema import (
    Diagnostic,
    DiagnosticSnapshot,
    EditImport,
    Plan,
    RenameElement,
    RewriteCall,
    Span,
)


def test_plan_parses_camel_case_wire_format() -> None:
    plan = TypeAdapter(Plan).validate_python(
        {
            "targetCodes": [2305],
            "why": ["move import"],
            "confidence": 0.4,
            "ops": [
                {
                    "kind": "EDIT_IMPORT",
                    "file": "a.tsx",
                    "fromModule": "react-router-dom",
                    "fromNamed": "Switch",
                    "toModule": "react-router-dom",
                    "toNamed": "Routes",
                },
                {"kind": "RENAME_ELEMENT", "file": "a.tsx", "from": "Switch", "to": "Routes"},
                {"kind": "REWRITE_CALL", "file": "a.tsx", "calleeName": "push", "edits": [{"op": "RENAME", "value": "go"}]},
            ],
        }
    )

    assert isinstance(plan.ops[0], EditImport) and plan.ops[0].to_named == "Routes"
    assert isinstance(plan.ops[1], RenameElement) and plan.ops[1].from_name == "Switch"
    assert isinstance(plan.ops[2], RewriteCall) and plan.ops[2].edits[0].value == "go"
    assert plan.to_json_dict()["ops"][1] == {"kind": "RENAME_ELEMENT", "file": "a.tsx", "from": "Switch", "to": "Routes"}


@pytest.mark.parametrize(
    "payload",
    [
        {"ops": [{"kind": "DELETE_FILE", "file": "a.tsx"}]},
        {"ops": [], "confidence": 1.5},
        {"ops": [], "unexpected": True},
    ],
)
def test_plan_rejects_unknown_shapes(payload: dict) -> None:
    with pytest.raises(ValidationError):
        Plan.model_validate(payload)


def test_span_order_is_validated() -> None:
    with pytest.raises(ValidationError):
        Span(start=5, end=2)


def test_snapshot_counts_by_code_and_file(tmp_path) -> None:
    a = (tmp_path / "a.ts").as_posix()
    b = (tmp_path / "sub" / ".." / "b.ts").as_posix()
    snapshot = DiagnosticSnapshot.of(
        [
            Diagnostic(code=2305, message="x", file=a),
            Diagnostic(code=2305, message="y", file=b),
            Diagnostic(code=2322, message="z", file=a),
        ]
    )

    assert snapshot.count == 3
    assert snapshot.codes() == frozenset({2305, 2322})
    assert snapshot.count_matching(2305, tmp_path / "b.ts") == 1
    assert snapshot.count_in_file(a) == 2
    assert snapshot.by_code() == {2305: 2, 2322: 1}
    assert Plan.empty().ops == [] and Plan.empty("why").why == ["why"]
