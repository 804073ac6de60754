"""Structural text edits for TypeScript/TSX sources.

Every primitive is a pure ``(text, ...) -> text`` function. When the target
construct is absent the input is returned unchanged; no primitive raises on a
no-match condition. The scanner understands just enough of the grammar
(string and template literals, comments, bracket nesting, JSX opening tags
and import declarations) to edit those constructs without touching the
surrounding text.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, replace
from typing import Iterator, Sequence

from ..schema import CallEdit

__all__ = [
    "ANCHOR_WINDOW",
    "convert_attribute_to_element",
    "edit_import",
    "edit_text_near_anchor",
    "import_local_name",
    "remove_attribute",
    "rename_element",
    "rewrite_call",
]

ANCHOR_WINDOW = 400

_PAIRS = {"(": ")", "[": "]", "{": "}"}
_ATTR_NAME_RE = re.compile(r"[A-Za-z_$][\w$:.-]*")
_MEMBER_EXPRESSION_RE = re.compile(r"^[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*$")
_IMPORT_RE = re.compile(
    r"""^(?P<indent>[ \t]*)import\s+(?P<type>type\s+)?(?P<clause>[^;'"]*?)\s*from\s*"""
    r"""(?P<quote>['"])(?P<module>[^'"\n]+)(?P=quote)(?P<semi>[ \t]*;)?""",
    re.MULTILINE,
)
_FUNCTION_KEYWORD_RE = re.compile(r"\bfunction\s*\*?\s*$")


# --------------------------------------------------------------------- scanner
def _skip_quoted(text: str, index: int) -> int:
    """Return the index just past the string literal opening at ``index``.

    Single and double quoted literals cannot span lines; a quote that reaches
    a newline first is treated as plain text (JSX copy such as ``Don't``).
    """
    quote = text[index]
    length = len(text)
    position = index + 1
    while position < length:
        char = text[position]
        if char == "\\":
            position += 2
            continue
        if quote == "`" and text.startswith("${", position):
            close = _find_closing(text, position + 1)
            if close is None:
                return length
            position = close + 1
            continue
        if char == quote:
            return position + 1
        if char == "\n" and quote != "`":
            return index + 1
        position += 1
    return length if quote == "`" else index + 1


def _find_closing(text: str, open_index: int) -> int | None:
    """Index of the bracket that closes ``text[open_index]``, or ``None``."""
    expected = [_PAIRS[text[open_index]]]
    position = open_index + 1
    length = len(text)
    while position < length:
        char = text[position]
        if char in "'\"`":
            position = _skip_quoted(text, position)
            continue
        if text.startswith("//", position):
            newline = text.find("\n", position)
            if newline == -1:
                return None
            position = newline + 1
            continue
        if text.startswith("/*", position):
            end = text.find("*/", position + 2)
            if end == -1:
                return None
            position = end + 2
            continue
        if char in _PAIRS:
            expected.append(_PAIRS[char])
        elif char in ")]}":
            if char != expected[-1]:
                return None
            expected.pop()
            if not expected:
                return position
        position += 1
    return None


def _inert_regions(text: str) -> list[tuple[int, int]]:
    """Sorted ``(start, end)`` ranges of string literals and comments."""
    regions: list[tuple[int, int]] = []
    position = 0
    length = len(text)
    while position < length:
        char = text[position]
        if char in "'\"`":
            end = _skip_quoted(text, position)
            if end > position + 1:
                regions.append((position, end))
            position = end
            continue
        if text.startswith("//", position):
            newline = text.find("\n", position)
            end = length if newline == -1 else newline
        elif text.startswith("/*", position):
            close = text.find("*/", position + 2)
            end = length if close == -1 else close + 2
        else:
            position += 1
            continue
        regions.append((position, end))
        position = end
    return regions


def _is_inert(regions: Sequence[tuple[int, int]], index: int) -> bool:
    slot = bisect.bisect_right(regions, index, key=lambda region: region[0]) - 1
    return slot >= 0 and regions[slot][0] <= index < regions[slot][1]


def _splice(text: str, edits: Sequence[tuple[int, int, str]]) -> str:
    """Apply ``(start, end, replacement)`` edits; overlapping later edits are dropped."""
    if not edits:
        return text
    pieces: list[str] = []
    cursor = 0
    for start, end, replacement in sorted(edits, key=lambda item: (item[0], -item[1])):
        if start < cursor:
            continue
        pieces.append(text[cursor:start])
        pieces.append(replacement)
        cursor = end
    pieces.append(text[cursor:])
    return "".join(pieces)


# ------------------------------------------------------------------- markup
@dataclass(slots=True)
class _Attribute:
    name: str
    start: int
    end: int
    value: str | None = None


@dataclass(slots=True)
class _OpeningTag:
    name: str
    start: int
    name_end: int
    end: int
    attributes: list[_Attribute]


def _opening_tag_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w$.)\]])<({re.escape(name)})(?=[\s/>])")


def _skip_whitespace(text: str, position: int) -> int:
    while position < len(text) and text[position].isspace():
        position += 1
    return position


def _parse_opening_tag(text: str, start: int, name: str) -> _OpeningTag | None:
    name_end = start + 1 + len(name)
    position = name_end
    attributes: list[_Attribute] = []
    length = len(text)
    while True:
        position = _skip_whitespace(text, position)
        if position >= length:
            return None
        char = text[position]
        if char == ">":
            return _OpeningTag(name, start, name_end, position + 1, attributes)
        if text.startswith("/>", position):
            return _OpeningTag(name, start, name_end, position + 2, attributes)
        if char == "{":
            close = _find_closing(text, position)
            if close is None:
                return None
            position = close + 1
            continue
        match = _ATTR_NAME_RE.match(text, position)
        if match is None:
            return None
        attr_start = position
        position = match.end()
        probe = _skip_whitespace(text, position)
        if probe < length and text[probe] == "=":
            value_start = _skip_whitespace(text, probe + 1)
            if value_start >= length:
                return None
            opener = text[value_start]
            if opener in "'\"":
                close = text.find(opener, value_start + 1)
            elif opener == "{":
                close = _find_closing(text, value_start)
            else:
                return None
            if close is None or close == -1:
                return None
            position = close + 1
            attributes.append(_Attribute(match.group(0), attr_start, position, text[value_start:position]))
        else:
            attributes.append(_Attribute(match.group(0), attr_start, position))


def _iter_opening_tags(text: str, name: str) -> Iterator[_OpeningTag]:
    regions = _inert_regions(text)
    for match in _opening_tag_pattern(name).finditer(text):
        if _is_inert(regions, match.start()):
            continue
        tag = _parse_opening_tag(text, match.start(), name)
        if tag is not None:
            yield tag


def rename_element(text: str, old: str, new: str) -> str:
    """Rename opening, self-closing and closing ``old`` elements to ``new``.

    Occurrences inside string literals and comments are left alone.
    """
    if not old or not new or old == new:
        return text
    regions = _inert_regions(text)
    edits: list[tuple[int, int, str]] = []
    for pattern, prefix in ((_opening_tag_pattern(old), "<"), (re.compile(rf"</({re.escape(old)})(?=\s*>)"), "</")):
        for match in pattern.finditer(text):
            if not _is_inert(regions, match.start()):
                edits.append((match.start(), match.end(), f"{prefix}{new}"))
    return _splice(text, edits)


def remove_attribute(text: str, tag: str, attr: str) -> str:
    """Remove ``attr`` (and its value) from every ``tag`` opening element."""
    if not tag or not attr:
        return text
    edits: list[tuple[int, int, str]] = []
    for element in _iter_opening_tags(text, tag):
        for attribute in element.attributes:
            if attribute.name != attr:
                continue
            start = attribute.start
            while start > element.name_end and text[start - 1].isspace():
                start -= 1
            edits.append((start, attribute.end, ""))
    return _splice(text, edits)


def convert_attribute_to_element(text: str, tag: str, from_attr: str, to_attr: str) -> str:
    """Rewrite ``from_attr={Comp}`` as ``to_attr={<Comp />}`` on ``tag`` elements.

    Only identifier or member-expression values are converted; render props
    and other expressions are left for the planner to handle explicitly.
    """
    if not tag or not from_attr or not to_attr:
        return text
    edits: list[tuple[int, int, str]] = []
    for element in _iter_opening_tags(text, tag):
        if from_attr != to_attr and any(attribute.name == to_attr for attribute in element.attributes):
            continue
        for attribute in element.attributes:
            if attribute.name != from_attr or attribute.value is None:
                continue
            if not attribute.value.startswith("{"):
                continue
            inner = attribute.value[1:-1].strip()
            if not _MEMBER_EXPRESSION_RE.match(inner):
                continue
            edits.append((attribute.start, attribute.end, f"{to_attr}={{<{inner} />}}"))
    return _splice(text, edits)


# ------------------------------------------------------------------ imports
@dataclass(slots=True)
class _Specifier:
    imported: str
    local: str
    type_only: bool = False

    def render(self) -> str:
        prefix = "type " if self.type_only else ""
        if self.local != self.imported:
            return f"{prefix}{self.imported} as {self.local}"
        return f"{prefix}{self.imported}"


@dataclass(slots=True)
class _ImportDeclaration:
    start: int
    end: int
    indent: str
    type_prefix: str
    module: str
    quote: str
    semicolon: str
    default: str | None
    namespace: str | None
    named: list[_Specifier] | None
    braces: str

    def render(self, named: list[_Specifier] | None) -> str:
        parts: list[str] = []
        if self.default:
            parts.append(self.default)
        if self.namespace:
            parts.append(self.namespace)
        if named:
            parts.append(_render_named(named, self.braces, self.indent))
        clause = ", ".join(parts)
        return (
            f"{self.indent}import {self.type_prefix}{clause} from "
            f"{self.quote}{self.module}{self.quote}{self.semicolon}"
        )


def _render_named(named: list[_Specifier], braces: str, indent: str) -> str:
    items = [specifier.render() for specifier in named]
    inner = braces[1:-1] if len(braces) >= 2 else ""
    if "\n" in inner:
        item_indent = indent + "  "
        for line in inner.splitlines():
            if line.strip():
                item_indent = line[: len(line) - len(line.lstrip())]
                break
        trailing = "," if inner.rstrip().endswith(",") else ""
        body = f",\n{item_indent}".join(items)
        return f"{{\n{item_indent}{body}{trailing}\n{indent}}}"
    padding = " " if inner.startswith(" ") or not inner else ""
    return f"{{{padding}{', '.join(items)}{padding}}}"


def _parse_specifiers(inner: str) -> list[_Specifier]:
    specifiers: list[_Specifier] = []
    for raw in inner.split(","):
        token = " ".join(raw.split())
        if not token:
            continue
        type_only = False
        if token.startswith("type "):
            type_only = True
            token = token[5:].strip()
        if " as " in token:
            imported, local = (part.strip() for part in token.split(" as ", 1))
        else:
            imported = local = token
        specifiers.append(_Specifier(imported=imported, local=local, type_only=type_only))
    return specifiers


def _parse_import(match: re.Match[str]) -> _ImportDeclaration:
    clause = match.group("clause").strip()
    default: str | None = None
    namespace: str | None = None
    named: list[_Specifier] | None = None
    braces = ""
    open_index = clause.find("{")
    head = clause
    if open_index != -1:
        close_index = clause.rfind("}")
        braces = clause[open_index : close_index + 1] if close_index > open_index else clause[open_index:]
        named = _parse_specifiers(braces.strip("{}"))
        head = clause[:open_index]
    for part in (piece.strip() for piece in head.split(",")):
        if not part:
            continue
        if part.startswith("*"):
            namespace = part
        else:
            default = part
    return _ImportDeclaration(
        start=match.start(),
        end=match.end(),
        indent=match.group("indent"),
        type_prefix=match.group("type") or "",
        module=match.group("module"),
        quote=match.group("quote"),
        semicolon=(match.group("semi") or "").strip(),
        default=default,
        namespace=namespace,
        named=named,
        braces=braces,
    )


def _iter_imports(text: str) -> Iterator[_ImportDeclaration]:
    for match in _IMPORT_RE.finditer(text):
        yield _parse_import(match)


def _find_named(text: str, module: str, named: str) -> tuple[_ImportDeclaration, _Specifier] | None:
    for declaration in _iter_imports(text):
        if declaration.module != module or not declaration.named:
            continue
        for specifier in declaration.named:
            if specifier.imported == named:
                return declaration, specifier
    return None


def import_local_name(text: str, module: str, named: str) -> str | None:
    """Return the local binding of ``named`` imported from ``module``."""
    found = _find_named(text, module, named)
    return found[1].local if found else None


def _line_end(text: str, position: int) -> int:
    newline = text.find("\n", position)
    return len(text) if newline == -1 else newline + 1


def edit_import(
    text: str,
    from_module: str,
    from_named: str | None,
    to_module: str,
    to_named: str | None,
) -> str:
    """Rename and/or move a named import.

    Without ``from_named`` every import from ``from_module`` is repointed at
    ``to_module``. With it, the single specifier is renamed in place (an
    existing alias is kept) or moved into an import from ``to_module``.
    """
    to_module = to_module or from_module
    if not from_named:
        if not from_module or from_module == to_module:
            return text
        edits = [
            (
                declaration.start,
                declaration.end,
                replace(declaration, module=to_module).render(declaration.named),
            )
            for declaration in _iter_imports(text)
            if declaration.module == from_module
        ]
        return _splice(text, edits)

    new_name = to_named or from_named
    found = _find_named(text, from_module, from_named)
    if found is None:
        return text
    declaration, specifier = found
    aliased = specifier.local != specifier.imported
    moved = _Specifier(
        imported=new_name,
        local=specifier.local if aliased else new_name,
        type_only=specifier.type_only,
    )

    if to_module == from_module:
        if new_name == from_named:
            return text
        rewritten: list[_Specifier] = []
        for entry in declaration.named or []:
            candidate = moved if entry is specifier else entry
            if any(existing.local == candidate.local for existing in rewritten):
                continue
            rewritten.append(candidate)
        return _splice(text, [(declaration.start, declaration.end, declaration.render(rewritten))])

    edits: list[tuple[int, int, str]] = []
    remaining = [entry for entry in declaration.named or [] if entry is not specifier]
    if remaining or declaration.default or declaration.namespace:
        edits.append((declaration.start, declaration.end, declaration.render(remaining)))
    else:
        edits.append((declaration.start, _line_end(text, declaration.end), ""))

    target = next(
        (
            candidate
            for candidate in _iter_imports(text)
            if candidate.module == to_module
            and candidate.start != declaration.start
            and candidate.namespace is None
            and not candidate.type_prefix
        ),
        None,
    )
    if target is not None:
        existing = target.named or []
        if not any(entry.local == moved.local for entry in existing):
            braces = target.braces or "{ }"
            updated = replace(target, braces=braces)
            edits.append((target.start, target.end, updated.render([*existing, moved])))
    else:
        last = list(_iter_imports(text))[-1]
        insert_at = _line_end(text, last.end)
        prefix = "" if text[:insert_at].endswith("\n") else "\n"
        semicolon = declaration.semicolon
        line = (
            f"{prefix}import {{ {moved.render()} }} from "
            f"{declaration.quote}{to_module}{declaration.quote}{semicolon}\n"
        )
        edits.append((insert_at, insert_at, line))
    return _splice(text, edits)


# -------------------------------------------------------------------- calls
def _split_arguments(inner: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    start = 0
    position = 0
    while position < len(inner):
        char = inner[position]
        if char in "'\"`":
            position = _skip_quoted(inner, position)
            continue
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append(inner[start:position])
            start = position + 1
        position += 1
    parts.append(inner[start:])
    return [part.strip() for part in parts if part.strip()]


def _apply_call_edit(name: str, args: list[str], edit: CallEdit) -> tuple[str, list[str]]:
    if edit.op == "RENAME":
        return (edit.value or name), args
    if edit.op == "INSERT_ARG":
        if edit.value is None:
            return name, args
        index = len(args) if edit.index is None else max(0, min(edit.index, len(args)))
        return name, [*args[:index], edit.value, *args[index:]]
    if edit.index is None or not 0 <= edit.index < len(args):
        return name, args
    if edit.op == "DROP_ARG":
        return name, [*args[: edit.index], *args[edit.index + 1 :]]
    if edit.op == "WRAP_ARG" and edit.value:
        wrapped = list(args)
        wrapped[edit.index] = f"{edit.value}({args[edit.index]})"
        return name, wrapped
    return name, args


def rewrite_call(text: str, callee: str, edits: Sequence[CallEdit]) -> str:
    """Apply ``edits`` to every call of ``callee`` in order."""
    if not callee or not edits:
        return text
    pattern = re.compile(rf"(?<![\w$.])({re.escape(callee)})(\s*)\(")
    replacements: list[tuple[int, int, str]] = []
    for match in pattern.finditer(text):
        if _FUNCTION_KEYWORD_RE.search(text, max(0, match.start() - 20), match.start()):
            continue
        open_index = match.end() - 1
        close = _find_closing(text, open_index)
        if close is None:
            continue
        original = _split_arguments(text[open_index + 1 : close])
        name, args = callee, list(original)
        for edit in edits:
            name, args = _apply_call_edit(name, args, edit)
        if name == callee and args == original:
            continue
        arguments = text[open_index + 1 : close] if args == original else ", ".join(args)
        replacements.append((match.start(1), close + 1, f"{name}{match.group(2)}({arguments})"))
    return _splice(text, replacements)


# --------------------------------------------------------------- free text
def edit_text_near_anchor(
    text: str,
    anchor: str | None,
    before: str,
    after: str,
    max_chars: int = 200,
    *,
    window: int = ANCHOR_WINDOW,
) -> str:
    """Replace one occurrence of ``before`` with ``after``, preferring one near ``anchor``."""
    if not before:
        return text
    if len(before) > max_chars or len(after) > max_chars:
        return text
    position = -1
    if anchor:
        anchor_at = text.find(anchor)
        if anchor_at != -1:
            low = max(0, anchor_at - window)
            high = min(len(text), anchor_at + len(anchor) + window)
            position = text.find(before, low, high)
    if position == -1:
        position = text.find(before)
    if position == -1:
        return text
    return text[:position] + after + text[position + len(before) :]
