"""Planners and the context they read."""

from .context import ContextBuilder, Planner, PlannerContext, resolve_plan
from .guidance import Guidance, GuidanceCitation, search_guidance
from .llm import LlmPlanner, build_client
from .rules import (
    MissingExportRenameRule,
    NoOpRule,
    RouteAttributeRule,
    Rule,
    RulePlanner,
    RuleRegistry,
    default_registry,
    plan_with_rules,
)

__all__ = [
    "ContextBuilder",
    "Guidance",
    "GuidanceCitation",
    "LlmPlanner",
    "MissingExportRenameRule",
    "NoOpRule",
    "Planner",
    "PlannerContext",
    "RouteAttributeRule",
    "Rule",
    "RulePlanner",
    "RuleRegistry",
    "build_client",
    "default_registry",
    "plan_with_rules",
    "resolve_plan",
    "search_guidance",
]
