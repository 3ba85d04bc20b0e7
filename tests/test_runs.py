"""Tests for run storage, run log reading and checkpoints."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from flightdeck.domain import RunId
from flightdeck.infrastructure.workspace import (
    FileSystemRunRepository,
    PipelineCheckpoint,
    append_event,
    create_run_directory,
    delete_checkpoint,
    find_resumable_runs,
    list_runs,
    load_checkpoint,
    read_run_events,
    save_checkpoint,
)


def _checkpoint(run_dir: str, run_id: str) -> PipelineCheckpoint:
    return PipelineCheckpoint(
        run_id=run_id,
        run_dir=run_dir,
        task_id="T-1",
        description="d",
        coding_agent="bug-fixer",
        work_type="application_code",
        worktree=None,
        iteration=1,
        completed_stages=0,
    )


def _make_run(root: Path, name: str, events) -> Path:
    run_dir = root / "runs" / name
    for kind, payload in events:
        append_event(run_dir, kind, payload)
    return run_dir


def test_create_run_directory(tmp_path):
    run_id, run_dir, scratch = create_run_directory(tmp_path)
    assert Path(scratch).is_dir()
    assert Path(run_dir).name == run_id.value
    assert Path(run_dir).parent == tmp_path.resolve() / "runs"


def test_append_event_writes_jsonl(tmp_path):
    repo = FileSystemRunRepository(tmp_path)
    run_id, run_dir, _ = repo.create_run()
    repo.append_event(run_id, "pipeline_start", {"task_id": "T-1"}, step="start")
    repo.append_event(run_id, "pipeline_complete", {"status": "landed"})
    lines = (Path(run_dir) / "runlog.jsonl").read_text(encoding="utf-8").splitlines()
    first = json.loads(lines[0])
    assert first["kind"] == "pipeline_start"
    assert first["step"] == "start"
    assert first["payload"] == {"task_id": "T-1"}
    assert isinstance(first["ts"], float)
    assert len(lines) == 2


def test_run_dir_for_id(tmp_path):
    repo = FileSystemRunRepository(tmp_path)
    assert repo.run_dir(RunId("abc")) == tmp_path.resolve() / "runs" / "abc"


def test_list_runs_summarises(tmp_path):
    _make_run(tmp_path, "20260101-000000-aaaaaa", [
        ("pipeline_start", {"task_id": "T-1", "coding_agent": "bug-fixer", "work_type": "application_code"}),
        ("pipeline_complete", {"status": "landed", "iterations": 2}),
    ])
    _make_run(tmp_path, "20260101-000001-bbbbbb", [("pipeline_start", {"task_id": "T-2"})])

    runs = list_runs(tmp_path)
    assert [r.task_id for r in runs] == ["T-2", "T-1"]
    assert runs[0].status is None
    assert runs[1].status == "landed"
    assert runs[1].iterations == 2
    assert runs[1].event_count == 2
    assert len(list_runs(tmp_path, limit=1)) == 1


def test_list_runs_without_runs_dir(tmp_path):
    assert list_runs(tmp_path) == []


def test_read_run_events_filters_and_skips_corrupt_lines(tmp_path):
    run_dir = _make_run(tmp_path, "r1", [("gate_result", {"agent": "test-runner"}), ("authorization", {})])
    with (run_dir / "runlog.jsonl").open("a", encoding="utf-8") as f:
        f.write("{broken\n")
    assert len(read_run_events("r1", tmp_path)) == 2
    assert [e["kind"] for e in read_run_events("r1", tmp_path, kinds=["authorization"])] == ["authorization"]


def test_read_run_events_missing_run(tmp_path):
    with pytest.raises(FileNotFoundError, match="logs list"):
        read_run_events("nope", tmp_path)


def test_checkpoint_roundtrip_and_delete(tmp_path):
    run_dir = str(tmp_path / "runs" / "r1")
    checkpoint = _checkpoint(run_dir, "r1")
    checkpoint.failures = {"test-runner": 1}
    save_checkpoint(run_dir, checkpoint)
    assert not (Path(run_dir) / "checkpoint.json.tmp").exists()
    loaded = load_checkpoint(run_dir)
    assert loaded == checkpoint
    delete_checkpoint(run_dir)
    assert load_checkpoint(run_dir) is None
    delete_checkpoint(run_dir)  # already gone


def test_load_corrupt_checkpoint_returns_none(tmp_path):
    (tmp_path / "checkpoint.json").write_text("{not json", encoding="utf-8")
    assert load_checkpoint(tmp_path) is None


def test_find_resumable_runs(tmp_path):
    done = _make_run(tmp_path, "20260101-000000-aaaaaa", [("pipeline_complete", {"status": "landed"})])
    save_checkpoint(done, _checkpoint(str(done), done.name))
    open_run = _make_run(tmp_path, "20260101-000001-bbbbbb", [("pipeline_start", {})])
    save_checkpoint(open_run, _checkpoint(str(open_run), open_run.name))
    _make_run(tmp_path, "20260101-000002-cccccc", [("pipeline_start", {})])

    assert find_resumable_runs(tmp_path) == ["20260101-000001-bbbbbb"]
    assert find_resumable_runs(tmp_path / "elsewhere") == []
