"""Pipeline checkpoints: save/load/delete in-progress state for ``flightdeck gate resume``.

Written atomically (tmp file + rename) to ``{run_dir}/checkpoint.json`` so a
crash mid-write never leaves a half checkpoint behind.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .run_reader import parse_runlog
from .run_repository import RUNLOG_NAME

logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "checkpoint.json"


@dataclass
class PipelineCheckpoint:
    """Snapshot of a pipeline run between stages.

    ``completed_stages`` counts gate stages that passed in the current
    ``iteration``; ``coding_report`` is None when the next step is a coding
    retry with ``blocking_issues``.
    """

    run_id: str
    run_dir: str
    task_id: str
    description: str
    coding_agent: str
    work_type: str
    worktree: Optional[str]
    iteration: int
    completed_stages: int
    failures: Dict[str, int] = field(default_factory=dict)
    blocking_issues: List[Dict[str, Any]] = field(default_factory=list)
    coding_report: Optional[Dict[str, Any]] = None
    gate_results: List[Dict[str, Any]] = field(default_factory=list)
    context: str = ""
    created_at: float = 0.0
    updated_at: float = 0.0


def save_checkpoint(run_dir: str | Path, checkpoint: PipelineCheckpoint) -> None:
    run_path = Path(run_dir)
    run_path.mkdir(parents=True, exist_ok=True)
    tmp = run_path / (CHECKPOINT_NAME + ".tmp")
    tmp.write_text(json.dumps(asdict(checkpoint), indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(run_path / CHECKPOINT_NAME)


def load_checkpoint(run_dir: str | Path) -> Optional[PipelineCheckpoint]:
    """Checkpoint for ``run_dir``, or None when missing or unreadable."""
    path = Path(run_dir) / CHECKPOINT_NAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return PipelineCheckpoint(**data)
    except (OSError, ValueError, TypeError) as exc:
        logger.warning("Failed to load checkpoint from %s: %s", run_dir, exc)
        return None


def delete_checkpoint(run_dir: str | Path) -> None:
    path = Path(run_dir) / CHECKPOINT_NAME
    if path.exists():
        path.unlink()


def find_resumable_runs(workspace_root: str | Path) -> List[str]:
    """Run ids with a checkpoint and no ``pipeline_complete`` event, newest first."""
    runs_dir = Path(workspace_root) / "runs"
    if not runs_dir.is_dir():
        return []
    resumable = []
    for run_dir in sorted(runs_dir.iterdir(), reverse=True):
        if not (run_dir / CHECKPOINT_NAME).is_file():
            continue
        events = parse_runlog(run_dir / RUNLOG_NAME)
        if any(e.get("kind") == "pipeline_complete" for e in events):
            continue
        resumable.append(run_dir.name)
    return resumable
