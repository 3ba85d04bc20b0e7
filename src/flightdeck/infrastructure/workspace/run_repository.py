"""File-system run storage: one directory per pipeline run with an append-only runlog.

Layout::

    <workspace>/runs/<YYYYmmdd-HHMMSS>-<hex6>/
        runlog.jsonl       one JSON event per line
        checkpoint.json    present while the run is in progress
        workspace/         scratch space for agent artifacts
"""

from __future__ import annotations

import json
import secrets
import time
from pathlib import Path
from typing import Any, Dict

from flightdeck.domain import RunId

RUNLOG_NAME = "runlog.jsonl"


def create_run_directory(workspace_root: str | Path) -> tuple[RunId, str, str]:
    """Create ``runs/<run_id>/workspace`` under ``workspace_root``; return (RunId, run_dir, workspace)."""
    root = Path(workspace_root).resolve()
    value = time.strftime("%Y%m%d-%H%M%S", time.gmtime()) + "-" + secrets.token_hex(3)
    run_dir = root / "runs" / value
    scratch = run_dir / "workspace"
    scratch.mkdir(parents=True, exist_ok=True)
    return RunId(value), str(run_dir), str(scratch)


def append_event(
    run_dir: str | Path,
    kind: str,
    payload: Dict[str, Any],
    step: str | None = None,
) -> None:
    """Append ``{"ts", "kind", "step", "payload"}`` as one line of runlog.jsonl."""
    run_path = Path(run_dir)
    run_path.mkdir(parents=True, exist_ok=True)
    record = {"ts": time.time(), "kind": kind, "step": step, "payload": payload}
    with (run_path / RUNLOG_NAME).open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


class FileSystemRunRepository:
    """RunRepository port backed by ``<workspace_root>/runs``."""

    def __init__(self, workspace_root: str | Path = ".flightdeck"):
        self._workspace_root = Path(workspace_root)

    @property
    def workspace_root(self) -> Path:
        return self._workspace_root

    def run_dir(self, run_id: RunId) -> Path:
        return self._workspace_root.resolve() / "runs" / run_id.value

    def create_run(self) -> tuple[RunId, str, str]:
        return create_run_directory(self._workspace_root)

    def append_event(
        self,
        run_id: RunId,
        kind: str,
        payload: Dict[str, Any],
        step: str | None = None,
    ) -> None:
        append_event(self.run_dir(run_id), kind, payload, step)
