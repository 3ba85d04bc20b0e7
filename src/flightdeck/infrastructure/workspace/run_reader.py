"""Read-only access to past pipeline runs for ``flightdeck logs``."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .run_repository import RUNLOG_NAME

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Summary of one run, built from its runlog."""
    run_id: str
    run_dir: str
    task_id: Optional[str]
    coding_agent: Optional[str]
    work_type: Optional[str]
    status: Optional[str]          # None while the run is in progress or was interrupted
    iterations: Optional[int]
    first_event_ts: Optional[float]
    event_count: int


def parse_runlog(runlog_path: Path) -> List[dict]:
    """Parse runlog.jsonl; unreadable lines are skipped with a debug log."""
    events: List[dict] = []
    if not runlog_path.is_file():
        return events
    for n, line in enumerate(runlog_path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            events.append(json.loads(line))
        except json.JSONDecodeError:
            logger.debug("Skipping corrupt runlog line %s:%d", runlog_path, n)
    return events


def summarise_run(run_dir: Path) -> RunSummary:
    events = parse_runlog(run_dir / RUNLOG_NAME)
    task_id = coding_agent = work_type = status = None
    iterations: Optional[int] = None
    first_ts: Optional[float] = None
    for ev in events:
        if first_ts is None and ev.get("ts") is not None:
            first_ts = float(ev["ts"])
        payload = ev.get("payload") or {}
        kind = ev.get("kind")
        if kind == "pipeline_start":
            task_id = payload.get("task_id")
            coding_agent = payload.get("coding_agent")
            work_type = payload.get("work_type")
        elif kind == "pipeline_complete":
            status = payload.get("status")
            iterations = payload.get("iterations")
    return RunSummary(
        run_id=run_dir.name,
        run_dir=str(run_dir),
        task_id=task_id,
        coding_agent=coding_agent,
        work_type=work_type,
        status=status,
        iterations=iterations,
        first_event_ts=first_ts,
        event_count=len(events),
    )


def list_runs(workspace_root: str | Path, limit: int = 20) -> List[RunSummary]:
    """Most recent runs first; at most ``limit`` entries."""
    runs_dir = Path(workspace_root) / "runs"
    if not runs_dir.is_dir():
        return []
    summaries = [
        summarise_run(d)
        for d in runs_dir.iterdir()
        if d.is_dir() and (d / RUNLOG_NAME).is_file()
    ]
    summaries.sort(key=lambda s: s.first_event_ts or 0.0, reverse=True)
    return summaries[:limit]


def read_run_events(
    run_id: str,
    workspace_root: str | Path,
    kinds: Optional[Sequence[str]] = None,
) -> List[dict]:
    """All events for ``run_id``, optionally filtered to ``kinds``.

    Raises:
        FileNotFoundError: When the run or its runlog does not exist.
    """
    runlog = Path(workspace_root) / "runs" / run_id / RUNLOG_NAME
    if not runlog.is_file():
        raise FileNotFoundError(
            f"Run '{run_id}' not found in workspace '{workspace_root}'. "
            "Use 'flightdeck logs list' to see available runs."
        )
    events = parse_runlog(runlog)
    if kinds:
        wanted = set(kinds)
        events = [e for e in events if e.get("kind") in wanted]
    return events
