"""Detect a worktree's package manager and install its dependencies.

Detection order: Node (lockfile picks npm, yarn or pnpm), Python
(pyproject: poetry, uv, then pip; else requirements.txt), Ruby, PHP, Go,
Rust.  The first match wins.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from flightdeck.config.constants import INSTALL_TIMEOUT_S
from flightdeck.domain.errors import GitError
from flightdeck.infrastructure.git import run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallPlan:
    project_type: str          # node, python, ruby, php, go, rust
    manager: str               # npm, yarn, pnpm, poetry, uv, pip, bundle, composer, go, cargo
    command: tuple


@dataclass
class InstallResult:
    plan: Optional[InstallPlan]
    ok: bool
    message: str


def _which(name: str) -> bool:
    return shutil.which(name) is not None


def detect_install_plan(path: Path, which: Callable[[str], bool] = _which) -> Optional[InstallPlan]:
    path = Path(path)
    if (path / "package.json").is_file():
        if (path / "package-lock.json").is_file():
            return InstallPlan("node", "npm", ("npm", "install"))
        if (path / "yarn.lock").is_file():
            return InstallPlan("node", "yarn", ("yarn", "install"))
        if (path / "pnpm-lock.yaml").is_file():
            return InstallPlan("node", "pnpm", ("pnpm", "install"))
        return InstallPlan("node", "npm", ("npm", "install"))
    pyproject = path / "pyproject.toml"
    if pyproject.is_file():
        if which("poetry") and "tool.poetry" in pyproject.read_text(encoding="utf-8", errors="replace"):
            return InstallPlan("python", "poetry", ("poetry", "install"))
        if which("uv"):
            return InstallPlan("python", "uv", ("uv", "sync"))
        return InstallPlan("python", "pip", ("pip", "install", "-e", "."))
    if (path / "requirements.txt").is_file():
        return InstallPlan("python", "pip", ("pip", "install", "-r", "requirements.txt"))
    if (path / "Gemfile").is_file():
        return InstallPlan("ruby", "bundle", ("bundle", "install"))
    if (path / "composer.json").is_file():
        return InstallPlan("php", "composer", ("composer", "install"))
    if (path / "go.mod").is_file():
        return InstallPlan("go", "go", ("go", "mod", "download"))
    if (path / "Cargo.toml").is_file():
        return InstallPlan("rust", "cargo", ("cargo", "fetch"))
    return None


def install_dependencies(path: Path, timeout_s: float = INSTALL_TIMEOUT_S) -> InstallResult:
    """Run the detected installer; failures are reported, never raised."""
    plan = detect_install_plan(path)
    if plan is None:
        return InstallResult(None, True, "No dependency file detected; skipping installation")
    try:
        result = run_cmd(plan.command, cwd=path, timeout_s=timeout_s)
    except GitError as exc:
        logger.warning("%s failed: %s", " ".join(plan.command), exc)
        return InstallResult(plan, False, str(exc))
    if not result.ok:
        logger.warning("%s exited %d", " ".join(plan.command), result.returncode)
        message = f"{' '.join(plan.command)} exited {result.returncode}"
        if result.summary:
            message += f": {result.summary}"
        return InstallResult(plan, False, message)
    return InstallResult(plan, True, f"{plan.project_type} dependencies installed ({plan.manager})")


def dependency_status(path: Path) -> tuple:
    """``(project_type, installed)`` where installed is True, False or None (unknown)."""
    path = Path(path)
    checks: List[tuple] = [
        ("node", "package.json", lambda: (path / "node_modules").is_dir()),
        ("python", "pyproject.toml", lambda: (path / ".venv").is_dir() or (path / "venv").is_dir()),
        ("python", "requirements.txt", lambda: (path / ".venv").is_dir() or (path / "venv").is_dir()),
        ("ruby", "Gemfile", lambda: (path / "vendor" / "bundle").is_dir() or (path / "Gemfile.lock").is_file()),
        ("php", "composer.json", lambda: (path / "vendor").is_dir()),
        ("go", "go.mod", lambda: None),
        ("rust", "Cargo.toml", lambda: (path / "target").is_dir()),
    ]
    for project_type, marker, installed in checks:
        if (path / marker).is_file():
            return project_type, installed()
    return None, None
