"""Domain models: agents, work units, gate outcomes, pipeline results. Pure data, no I/O."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RunId:
    """Unique identifier for a single pipeline run (timestamp + random suffix)."""
    value: str


@dataclass
class AgentDefinition:
    """An agent prompt file: frontmatter fields plus the system-prompt body."""
    name: str
    description: str
    model: Optional[str] = None
    color: Optional[str] = None
    tools: Tuple[str, ...] = ()
    body: str = ""
    path: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class GateStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class GateAction(str, Enum):
    """What the orchestrator does after a gate reports."""
    PROCEED = "proceed"
    RETURN_TO_CODER = "return_to_coder"
    ESCALATE = "escalate"


class PipelineStatus(str, Enum):
    LANDED = "landed"        # gates passed, authorized, branch-manager done
    DECLINED = "declined"    # gates passed, user withheld authorization
    ESCALATED = "escalated"  # a gate exhausted its retry limit
    FAULT = "fault"          # coding agent or branch-manager failed outright


@dataclass
class WorkUnit:
    """One unit of work handed to a coding agent and then through the gates."""
    task_id: str
    description: str
    coding_agent: str
    work_type: str = "application_code"
    worktree: Optional[str] = None
    context: str = ""


def build_work_unit(
    task_id: str,
    description: str,
    coding_agent: str,
    work_type: Optional[str] = None,
    worktree: Optional[str] = None,
    context: str = "",
    default_work_type: str = "application_code",
) -> WorkUnit:
    """Construct a WorkUnit from external input.

    Strips whitespace everywhere; an empty or whitespace-only ``work_type``
    falls back to ``default_work_type`` and an empty ``worktree`` becomes None.
    Raises ValueError when task id, description or coding agent is blank.
    """
    task_id = (task_id or "").strip()
    description = (description or "").strip()
    coding_agent = (coding_agent or "").strip()
    if not task_id or not description or not coding_agent:
        raise ValueError("task_id, description and coding_agent are required")
    return WorkUnit(
        task_id=task_id,
        description=description,
        coding_agent=coding_agent,
        work_type=(work_type or "").strip() or default_work_type,
        worktree=(worktree or "").strip() or None,
        context=context or "",
    )


@dataclass
class GateResult:
    """Outcome of one gate agent for one iteration."""
    agent: str
    status: GateStatus
    attempt: int
    blocking_issues: List[Dict[str, Any]] = field(default_factory=list)
    report: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == GateStatus.PASS


@dataclass
class GateDecision:
    agent: str
    action: GateAction
    status: GateStatus
    attempts: int
    limit: int
    blocking_issues: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PipelineResult:
    run_id: RunId
    status: PipelineStatus
    iterations: int
    gate_results: List[GateResult] = field(default_factory=list)
    coding_report: Optional[Dict[str, Any]] = None
    branch_report: Optional[Dict[str, Any]] = None
    blocking_issues: List[Dict[str, Any]] = field(default_factory=list)
    escalated_by: Optional[str] = None
    run_dir: Optional[str] = None


@dataclass
class LLMResponse:
    """Assistant message from one chat-completions call."""
    content: Optional[str]
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)
