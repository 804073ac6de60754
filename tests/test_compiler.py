from __future__ import annotations

from pathlib import Path

from junction.execution.compiler import compile_plan, summarize_plan_files
from junction.schema import (
    ConvertAttributeToElement,
    EditImport,
    EditTextNearAnchor,
    FormatFiles,
    Plan,
    RemoveAttribute,
    RenameElement,
)


def test_edit_import_rename_also_renames_elements(tsx_project: Path) -> None:
    app = tsx_project / "src" / "App.tsx"
    plan = Plan(
        ops=[
            EditImport(
                file=str(app),
                from_module="react-router-dom",
                from_named="Switch",
                to_module="react-router-dom",
                to_named="Routes",
            )
        ]
    )

    changes = compile_plan(plan)

    assert len(changes) == 1
    after = changes[0].after
    assert "import { BrowserRouter, Routes, Route } from 'react-router-dom';" in after
    assert "<Routes>" in after and "</Routes>" in after
    assert "Switch" not in after
    assert changes[0].before == app.read_text(encoding="utf-8")


def test_import_rename_leaves_user_visible_strings(tmp_path: Path, write_source) -> None:
    source = write_source(
        tmp_path / "src" / "B.tsx",
        "import { Switch } from 'react-router-dom';\n"
        'const s = "<Switch> is gone";\n'
        "const x = <Switch />;\n",
    )
    plan = Plan(
        ops=[
            EditImport(
                file=str(source),
                from_module="react-router-dom",
                from_named="Switch",
                to_module="react-router-dom",
                to_named="Routes",
            )
        ]
    )

    (change,) = compile_plan(plan)

    assert change.after == (
        "import { Routes } from 'react-router-dom';\n"
        'const s = "<Switch> is gone";\n'
        "const x = <Routes />;\n"
    )


def test_aliased_import_rename_keeps_markup(tmp_path: Path, write_source) -> None:
    source = write_source(
        tmp_path / "src" / "A.tsx",
        "import { Switch as S } from 'react-router-dom';\nconst x = <S></S>;\n",
    )
    plan = Plan(
        ops=[
            EditImport(
                file=str(source),
                from_module="react-router-dom",
                from_named="Switch",
                to_module="react-router-dom",
                to_named="Routes",
            )
        ]
    )

    (change,) = compile_plan(plan)

    assert change.after == "import { Routes as S } from 'react-router-dom';\nconst x = <S></S>;\n"


def test_ops_on_same_file_compose_in_plan_order(tsx_project: Path) -> None:
    app = str(tsx_project / "src" / "App.tsx")
    plan = Plan(
        ops=[
            RemoveAttribute(file=app, tag="Route", attr="exact"),
            ConvertAttributeToElement(file=app, tag="Route", from_attr="component", to_attr="element"),
            RenameElement(file=app, from_name="Route", to_name="Page"),
        ]
    )

    (change,) = compile_plan(plan)

    assert '<Page path="/" element={<Home />} />' in change.after


def test_missing_file_yields_no_changes(tsx_project: Path) -> None:
    plan = Plan(ops=[RenameElement(file=str(tsx_project / "src" / "g.ts"), from_name="A", to_name="B")])

    assert compile_plan(plan) == []


def test_relative_paths_resolve_against_project_root(tsx_project: Path) -> None:
    plan = Plan(ops=[RemoveAttribute(file="src/App.tsx", tag="Route", attr="exact")])

    (change,) = compile_plan(plan, project_root=tsx_project)

    assert change.file == (tsx_project / "src" / "App.tsx").resolve()


def test_unchanged_files_and_format_ops_are_omitted(tsx_project: Path) -> None:
    home = str(tsx_project / "src" / "pages" / "Home.tsx")
    plan = Plan(
        ops=[
            RenameElement(file=home, from_name="Switch", to_name="Routes"),
            EditTextNearAnchor(file=home, anchor=None, before="not present", after="x"),
            FormatFiles(files=[home]),
        ]
    )

    assert compile_plan(plan) == []


def test_newlines_are_preserved(tmp_path: Path, write_source) -> None:
    source = write_source(tmp_path / "src" / "crlf.tsx", "<Route exact path='/' />\r\n")
    plan = Plan(ops=[RemoveAttribute(file=str(source), tag="Route", attr="exact")])

    (change,) = compile_plan(plan)

    assert change.before.endswith("\r\n")
    assert change.after == "<Route path='/' />\r\n"


def test_summarize_plan_files_lists_first_mentions() -> None:
    plan = Plan(
        ops=[
            RemoveAttribute(file="a.tsx", tag="Route", attr="exact"),
            FormatFiles(files=["b.tsx", "a.tsx"]),
            RenameElement(file="c.tsx", from_name="A", to_name="B"),
        ]
    )

    assert summarize_plan_files(plan) == ["a.tsx", "b.tsx", "c.tsx"]
