"""Deterministic rule-based planning."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

from ..schema import ConvertAttributeToElement, Diagnostic, EditImport, Op, Plan, RemoveAttribute
from .context import PlannerContext

_MISSING_EXPORT_CODES = frozenset({2305, 2724})
_MISSING_EXPORT_RE = re.compile(r"""Module ['"]+(?P<module>[^'"]+)['"]+ has no exported member ['"](?P<name>[\w$]+)['"]""")
_UNKNOWN_PROPERTY_RE = re.compile(r"Property '(?P<prop>[\w$]+)' does not exist on type")

ROUTER_MODULE = "react-router-dom"
ROUTER_V6_RENAMES: Mapping[str, str] = {"Switch": "Routes", "Redirect": "Navigate"}


class Rule(Protocol):
    """Planner rule that reacts to a subset of diagnostics."""

    id: str

    def targets(self, diagnostics: Sequence[Diagnostic]) -> bool:
        ...

    def propose(self, context: PlannerContext) -> Plan:
        ...


class RuleRegistry:
    """Ordered collection of rules."""

    def __init__(self) -> None:
        self._rules: list[Rule] = []

    def register(self, rule: Rule) -> None:
        self._rules.append(rule)

    def rules(self) -> list[Rule]:
        return list(self._rules)


def plan_with_rules(context: PlannerContext, registry: RuleRegistry) -> Plan:
    """Merge the plans of every rule whose targets match the diagnostics."""
    plans = [rule.propose(context) for rule in registry.rules() if rule.targets(context.diagnostics)]
    target_codes: list[int] = []
    for plan in plans:
        for code in plan.target_codes:
            if code not in target_codes:
                target_codes.append(code)
    return Plan(
        target_codes=target_codes,
        ops=[op for plan in plans for op in plan.ops],
        why=[reason for plan in plans for reason in plan.why],
        confidence=min(1.0, sum(plan.confidence for plan in plans)),
    )


@dataclass(slots=True)
class RulePlanner:
    """Synchronous planner backed by a rule registry."""

    registry: RuleRegistry

    def propose(self, context: PlannerContext) -> Plan:
        return plan_with_rules(context, self.registry)


@dataclass(slots=True)
class NoOpRule:
    """Example rule: reacts to any diagnostic and proposes nothing."""

    id: str = "example:no-op"

    def targets(self, diagnostics: Sequence[Diagnostic]) -> bool:
        return len(diagnostics) > 0

    def propose(self, context: PlannerContext) -> Plan:
        return Plan(target_codes=[], ops=[], why=["example rule - no ops"], confidence=0.5)


@dataclass(slots=True)
class MissingExportRenameRule:
    """Rename imports of members a module no longer exports."""

    module: str = ROUTER_MODULE
    renames: Mapping[str, str] = field(default_factory=lambda: dict(ROUTER_V6_RENAMES))
    id: str = "router:missing-export-rename"

    def _matches(self, diagnostic: Diagnostic) -> re.Match[str] | None:
        if diagnostic.code not in _MISSING_EXPORT_CODES:
            return None
        match = _MISSING_EXPORT_RE.search(diagnostic.message)
        if match is None or match.group("module") != self.module or match.group("name") not in self.renames:
            return None
        return match

    def targets(self, diagnostics: Sequence[Diagnostic]) -> bool:
        return any(self._matches(diagnostic) for diagnostic in diagnostics)

    def propose(self, context: PlannerContext) -> Plan:
        ops: list[Op] = []
        why: list[str] = []
        codes: list[int] = []
        seen: set[tuple[str, str]] = set()
        for diagnostic in context.diagnostics:
            match = self._matches(diagnostic)
            if match is None:
                continue
            name = match.group("name")
            if (diagnostic.file, name) in seen:
                continue
            seen.add((diagnostic.file, name))
            ops.append(
                EditImport(
                    file=diagnostic.file,
                    from_module=self.module,
                    from_named=name,
                    to_module=self.module,
                    to_named=self.renames[name],
                )
            )
            why.append(f"{self.module} no longer exports {name}; use {self.renames[name]}.")
            if diagnostic.code not in codes:
                codes.append(diagnostic.code)
        return Plan(target_codes=codes, ops=ops, why=why, confidence=0.8 if ops else 0.0)


@dataclass(slots=True)
class RouteAttributeRule:
    """Migrate ``<Route>`` attributes removed in router v6."""

    tag: str = "Route"
    id: str = "router:route-attributes"

    def _property(self, diagnostic: Diagnostic) -> str | None:
        if diagnostic.code != 2322:
            return None
        match = _UNKNOWN_PROPERTY_RE.search(diagnostic.message)
        if match is None or match.group("prop") not in {"component", "exact"}:
            return None
        return match.group("prop")

    def targets(self, diagnostics: Sequence[Diagnostic]) -> bool:
        return any(self._property(diagnostic) for diagnostic in diagnostics)

    def propose(self, context: PlannerContext) -> Plan:
        ops: list[Op] = []
        why: list[str] = []
        seen: set[tuple[str, str]] = set()
        for diagnostic in context.diagnostics:
            prop = self._property(diagnostic)
            if prop is None or (diagnostic.file, prop) in seen:
                continue
            seen.add((diagnostic.file, prop))
            if prop == "component":
                ops.append(
                    ConvertAttributeToElement(
                        file=diagnostic.file, tag=self.tag, from_attr="component", to_attr="element"
                    )
                )
                why.append(f"<{self.tag} component> becomes <{self.tag} element={{<C />}}> in v6.")
            else:
                ops.append(RemoveAttribute(file=diagnostic.file, tag=self.tag, attr="exact"))
                why.append(f"<{self.tag} exact> is the default in v6.")
        return Plan(target_codes=[2322] if ops else [], ops=ops, why=why, confidence=0.7 if ops else 0.0)


def default_registry() -> RuleRegistry:
    """Registry with the built-in router v5 to v6 rules."""
    registry = RuleRegistry()
    registry.register(MissingExportRenameRule())
    registry.register(RouteAttributeRule())
    return registry


__all__ = [
    "MissingExportRenameRule",
    "NoOpRule",
    "ROUTER_MODULE",
    "ROUTER_V6_RENAMES",
    "RouteAttributeRule",
    "Rule",
    "RulePlanner",
    "RuleRegistry",
    "default_registry",
    "plan_with_rules",
]
