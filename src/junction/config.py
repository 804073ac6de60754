"""YAML configuration for migration runs."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .execution.acceptance import EXPECTED_TRANSIENT_CODES, coerce_codes
from .planning.guidance import DEFAULT_KEYWORDS

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "junction.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "name": "",
        "repo_root": ".",
        "source_dirs": ["src"],
    },
    "loop": {
        "mode": "focused",
        "max_steps": 5,
        "transient_codes": sorted(EXPECTED_TRANSIENT_CODES),
    },
    "planner": {
        "kind": "rules",
        "provider": "openai",
        "model": "gpt-4o-mini",
        "timeout": 60,
        "max_attempts": 3,
        "retry_delay": 0.5,
        "base_url": "",
        "api_key": "",
    },
    "diagnostics": {
        "command": None,
        "timeout": 300,
    },
    "context": {
        "file_limit": 100,
        "excerpt_radius": 400,
        "head_limit": 800,
    },
    "guidance": {
        "document": "../docs/MigrationGuide.md",
        "keywords": list(DEFAULT_KEYWORDS),
    },
    "paths": {
        "runs": ".upgrade/runs",
    },
}

LOOP_MODES = ("simple", "focused")
PLANNER_KINDS = ("rules", "llm")
PROVIDERS = ("openai", "anthropic")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or is inconsistent."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _merge(current, value)
        else:
            base[key] = value
    return base


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration merged over the defaults.

    A missing file yields the defaults unchanged.
    """
    config = copy_config_template()
    if not config_path.exists():
        LOGGER.debug("No config at %s; using defaults", config_path)
        return config
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}", details={"path": str(config_path)}) from error
    if not isinstance(data, dict):
        raise ConfigError(
            "Configuration must be a mapping at the top level.", details={"path": str(config_path)}
        )
    return _merge(config, data)


def write_default_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Persist the default configuration with stable formatting."""
    if config_path.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {config_path}", details={"path": str(config_path)})
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(copy_config_template(), handle, sort_keys=False)
    return config_path


def _as_int(value: Any, default: int, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _as_float(value: Any, default: float, *, minimum: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _choice(value: Any, allowed: tuple[str, ...], default: str, *, option: str) -> str:
    text = str(value).strip().lower() if value is not None else default
    if text not in allowed:
        raise ConfigError(f"{option} must be one of {', '.join(allowed)}; got {value!r}", details={option: value})
    return text


@dataclass(slots=True)
class MigrationSettings:
    """Resolved settings for one project."""

    project_root: Path
    source_dirs: tuple[str, ...] = ("src",)
    mode: str = "focused"
    max_steps: int = 5
    transient_codes: frozenset[int] = field(default=EXPECTED_TRANSIENT_CODES)
    planner_kind: str = "rules"
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    timeout: float = 60.0
    max_attempts: int = 3
    retry_delay: float = 0.5
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    diagnostics_command: Optional[tuple[str, ...]] = None
    diagnostics_timeout: float = 300.0
    file_limit: int = 100
    excerpt_radius: int = 400
    head_limit: int = 800
    guidance_document: Optional[Path] = None
    guidance_keywords: tuple[str, ...] = DEFAULT_KEYWORDS
    runs_dir: str = ".upgrade/runs"

    @classmethod
    def from_config(cls, config: Mapping[str, Any], config_path: Path) -> "MigrationSettings":
        """Resolve a loaded config; relative paths are anchored at the config file."""
        project = _section(config, "project")
        loop = _section(config, "loop")
        planner = _section(config, "planner")
        diagnostics = _section(config, "diagnostics")
        context = _section(config, "context")
        guidance = _section(config, "guidance")
        paths = _section(config, "paths")

        root = Path(str(project.get("repo_root") or "."))
        if not root.is_absolute():
            root = (config_path.parent / root).resolve()

        source_dirs = project.get("source_dirs") or ["src"]
        if isinstance(source_dirs, str):
            source_dirs = [source_dirs]

        command = diagnostics.get("command")
        if isinstance(command, str):
            command = command.split()
        command_tuple = tuple(str(part) for part in command) if command else None

        document_value = _as_text(guidance.get("document"))
        document: Optional[Path] = None
        if document_value:
            document = Path(document_value)
            if not document.is_absolute():
                document = (root / document).resolve()

        keywords = guidance.get("keywords")
        keyword_tuple = tuple(str(word) for word in keywords) if keywords else DEFAULT_KEYWORDS

        return cls(
            project_root=root,
            source_dirs=tuple(str(entry) for entry in source_dirs),
            mode=_choice(loop.get("mode"), LOOP_MODES, "focused", option="loop.mode"),
            max_steps=_as_int(loop.get("max_steps"), 5),
            transient_codes=coerce_codes(loop.get("transient_codes")),
            planner_kind=_choice(planner.get("kind"), PLANNER_KINDS, "rules", option="planner.kind"),
            provider=_choice(planner.get("provider"), PROVIDERS, "openai", option="planner.provider"),
            model=_as_text(planner.get("model")) or "gpt-4o-mini",
            timeout=_as_float(planner.get("timeout"), 60.0, minimum=0.001),
            max_attempts=_as_int(planner.get("max_attempts"), 3, minimum=1),
            retry_delay=_as_float(planner.get("retry_delay"), 0.5),
            base_url=_as_text(planner.get("base_url")),
            api_key=_as_text(planner.get("api_key")),
            diagnostics_command=command_tuple,
            diagnostics_timeout=_as_float(diagnostics.get("timeout"), 300.0, minimum=0.001),
            file_limit=_as_int(context.get("file_limit"), 100, minimum=1),
            excerpt_radius=_as_int(context.get("excerpt_radius"), 400),
            head_limit=_as_int(context.get("head_limit"), 800),
            guidance_document=document,
            guidance_keywords=keyword_tuple,
            runs_dir=_as_text(paths.get("runs")) or ".upgrade/runs",
        )

    @classmethod
    def load(cls, config_path: Path) -> "MigrationSettings":
        return cls.from_config(load_config(config_path), config_path.resolve())


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "LOOP_MODES",
    "MigrationSettings",
    "copy_config_template",
    "load_config",
    "write_default_config",
]
