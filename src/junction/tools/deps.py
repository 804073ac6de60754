"""Rewrite router dependencies in a project's ``package.json``."""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Sequence

LOGGER = logging.getLogger(__name__)

ROUTER_PACKAGE = "react-router-dom"
ROUTER_V6_VERSION = "6.30.1"
ROUTER_V5_VERSION = "^5.3.4"
# Type packages only needed on the v5 line; v6 ships its own types.
V5_TYPE_PACKAGES: Dict[str, str] = {
    "@types/react-router-dom": "^5.3.3",
    "@types/history": "^4.7.11",
}


class DependencyError(RuntimeError):
    """Raised when ``package.json`` cannot be read or a package manager fails."""


def _package_path(project_root: Path) -> Path:
    return Path(project_root) / "package.json"


def read_package_json(project_root: Path) -> Dict[str, Any]:
    path = _package_path(project_root)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise DependencyError(f"package.json not found in {project_root}") from error
    except json.JSONDecodeError as error:
        raise DependencyError(f"package.json is not valid JSON: {error}") from error
    if not isinstance(data, dict):
        raise DependencyError("package.json must contain an object.")
    return data


def write_package_json(project_root: Path, data: Dict[str, Any]) -> None:
    _package_path(project_root).write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def upgrade_router_dependencies(project_root: Path, version: str = ROUTER_V6_VERSION) -> List[str]:
    """Pin the router to ``version`` and drop v5-only type packages.

    Returns the names of the packages that changed.
    """
    data = read_package_json(project_root)
    dependencies = data.setdefault("dependencies", {})
    dev_dependencies = data.setdefault("devDependencies", {})
    changed: List[str] = []
    if dependencies.get(ROUTER_PACKAGE) != version:
        dependencies[ROUTER_PACKAGE] = version
        changed.append(ROUTER_PACKAGE)
    for name in V5_TYPE_PACKAGES:
        if dev_dependencies.pop(name, None) is not None:
            changed.append(name)
    if changed:
        write_package_json(project_root, data)
        LOGGER.info("Updated package.json: %s", ", ".join(changed))
    return changed


def reset_router_dependencies(project_root: Path) -> List[str]:
    """Return the router to the v5 line and restore its type packages."""
    data = read_package_json(project_root)
    dependencies = data.setdefault("dependencies", {})
    dev_dependencies = data.setdefault("devDependencies", {})
    changed: List[str] = []
    if dependencies.get(ROUTER_PACKAGE) != ROUTER_V5_VERSION:
        dependencies[ROUTER_PACKAGE] = ROUTER_V5_VERSION
        changed.append(ROUTER_PACKAGE)
    for name, version in V5_TYPE_PACKAGES.items():
        if dev_dependencies.get(name) != version:
            dev_dependencies[name] = version
            changed.append(name)
    if changed:
        write_package_json(project_root, data)
        LOGGER.info("Updated package.json: %s", ", ".join(changed))
    return changed


def run_package_manager(args: Sequence[str], cwd: Path) -> None:
    """Run a package manager command, streaming its output."""
    command = list(args)
    LOGGER.info("Running %s in %s", " ".join(command), cwd)
    try:
        process = subprocess.run(command, cwd=cwd, check=False)  # noqa: S603  # command from CLI flags
    except FileNotFoundError as error:
        raise DependencyError(f"Executable not available: {command[0]}") from error
    if process.returncode != 0:
        raise DependencyError(f"{' '.join(command)} failed with code {process.returncode}")


__all__ = [
    "DependencyError",
    "ROUTER_PACKAGE",
    "ROUTER_V5_VERSION",
    "ROUTER_V6_VERSION",
    "V5_TYPE_PACKAGES",
    "read_package_json",
    "reset_router_dependencies",
    "run_package_manager",
    "upgrade_router_dependencies",
    "write_package_json",
]
