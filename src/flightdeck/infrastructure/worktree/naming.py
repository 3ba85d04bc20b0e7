"""Worktree naming: ``<trees>/<task-id>-<desc>`` on ``<prefix><task-id>-<desc>``."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from flightdeck.domain.errors import WorktreeError

_DESC_DROP_RE = re.compile(r"[^a-z0-9-]")


def normalize_description(description: str) -> str:
    """Lowercase, spaces to hyphens, anything outside ``[a-z0-9-]`` dropped."""
    return _DESC_DROP_RE.sub("", description.strip().lower().replace(" ", "-"))


@dataclass(frozen=True)
class WorktreeName:
    slug: str      # <task-id>-<desc>
    path: Path
    branch: str


def worktree_name(repo_root: Path, task_id: str, description: str, trees_dir: str = "trees",
                  branch_prefix: str = "feature/") -> WorktreeName:
    task_id = task_id.strip()
    if not task_id:
        raise WorktreeError("task id is required")
    if any(c.isspace() for c in task_id) or "/" in task_id:
        raise WorktreeError(f"task id {task_id!r} must not contain whitespace or '/'")
    desc = normalize_description(description)
    if not desc:
        raise WorktreeError(f"description {description!r} is empty after normalisation")
    slug = f"{task_id}-{desc}"
    return WorktreeName(slug=slug, path=Path(repo_root) / trees_dir / slug, branch=f"{branch_prefix}{slug}")
