from .run_checkpoint import (
    PipelineCheckpoint,
    delete_checkpoint,
    find_resumable_runs,
    load_checkpoint,
    save_checkpoint,
)
from .run_reader import RunSummary, list_runs, read_run_events
from .run_repository import FileSystemRunRepository, append_event, create_run_directory

__all__ = [
    "FileSystemRunRepository",
    "PipelineCheckpoint",
    "RunSummary",
    "append_event",
    "create_run_directory",
    "delete_checkpoint",
    "find_resumable_runs",
    "list_runs",
    "load_checkpoint",
    "read_run_events",
    "save_checkpoint",
]
