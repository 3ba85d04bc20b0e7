"""Agent catalog: category membership, TDD and gate capability, and post-completion instructions.

The module-level tables are the built-in classification.  ``Catalog`` wraps a
(possibly user-configured) copy of them so lookups never touch config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

AGENT_TYPES: Dict[str, Tuple[str, ...]] = {
    "coding": ("bug-fixer", "feature-developer", "refactoring-dev", "integration-engineer"),
    "review": ("code-reviewer", "security-auditor", "test-runner"),
    "planning": (
        "workflow-planner",
        "api-designer",
        "database-architect",
        "cloud-architect",
        "event-architect",
        "observability-architect",
        "frontend-architect",
        "data-engineer",
        "test-strategist",
        "compliance-architect",
    ),
    "operations": ("branch-manager", "deployment-engineer", "incident-responder"),
    "documentation": ("technical-writer", "claude-agent-architect", "ai-prompt-engineer", "principal-engineer"),
    "performance": ("performance-engineer",),
}

TDD_AGENTS: Tuple[str, ...] = ("bug-fixer", "feature-developer", "refactoring-dev")

GATE_CAPABLE_AGENTS: Tuple[str, ...] = (
    "ai-prompt-engineer",
    "code-reviewer",
    "security-auditor",
    "deployment-engineer",
)

UNKNOWN = "unknown"
TEST_RUNNER = "test-runner"
BRANCH_MANAGER = "branch-manager"


@dataclass
class Catalog:
    """Lookup view over an agent classification."""

    agent_types: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(AGENT_TYPES))
    tdd_agents: Tuple[str, ...] = TDD_AGENTS
    gate_capable_agents: Tuple[str, ...] = GATE_CAPABLE_AGENTS

    @classmethod
    def from_mapping(
        cls,
        agent_types: Mapping[str, Sequence[str]],
        tdd_agents: Sequence[str] = (),
        gate_capable_agents: Sequence[str] = (),
    ) -> "Catalog":
        return cls(
            agent_types={k: tuple(v) for k, v in agent_types.items()},
            tdd_agents=tuple(tdd_agents),
            gate_capable_agents=tuple(gate_capable_agents),
        )

    def agent_type(self, name: str) -> str:
        for category, names in self.agent_types.items():
            if name in names:
                return category
        return UNKNOWN

    def is_category(self, name: str, category: str) -> bool:
        return name in self.agent_types.get(category, ())

    def is_coding(self, name: str) -> bool:
        return self.is_category(name, "coding")

    def is_review(self, name: str) -> bool:
        return self.is_category(name, "review")

    def is_planning(self, name: str) -> bool:
        return self.is_category(name, "planning")

    def is_operations(self, name: str) -> bool:
        return self.is_category(name, "operations")

    def is_documentation(self, name: str) -> bool:
        return self.is_category(name, "documentation")

    def is_performance(self, name: str) -> bool:
        return self.is_category(name, "performance")

    def is_tdd(self, name: str) -> bool:
        return name in self.tdd_agents

    def is_gate_capable(self, name: str) -> bool:
        return name in self.gate_capable_agents

    def agents_in(self, category: str) -> List[str]:
        return list(self.agent_types.get(category, ()))

    def all_agents(self) -> List[str]:
        return sorted(a for names in self.agent_types.values() for a in names)


DEFAULT_CATALOG = Catalog()


# ---------------------------------------------------------------------------
# Post-completion instructions for the orchestrator
# ---------------------------------------------------------------------------

_CODING_DONE = """\
CODING AGENT COMPLETED. Execute the quality gate protocol:

1. Deploy test-runner with the worktree path from the agent output (blocking).
2. If tests FAIL: return to this coding agent with blocking_issues. Do not ask the user.
3. If tests PASS: deploy code-reviewer and security-auditor in parallel.
4. If review or security FAIL: return to the coding agent with blocking_issues.
5. If every gate PASSES: present to the user for authorization, then deploy branch-manager.

Retry limits are per gate (test-runner 3, reviewers 2). Escalate to the user only when a limit is exhausted."""

_TEST_RUNNER_DONE = """\
TEST-RUNNER COMPLETED. Check gate_status in the JSON output:

- PASS: deploy code-reviewer and security-auditor in parallel.
- FAIL: return to the original coding agent with blocking_issues from the test output.

A PASS with a non-zero test_exit_code or coverage below the threshold counts as FAIL.
Do not ask the user during gate iteration."""

_GATE_DONE = """\
GATE AGENT COMPLETED. Check gate_status in the JSON output:

- PASS: proceed to the next stage in the gate profile. If a parallel gate is still running, wait for it.
- FAIL: return to the coding agent with blocking_issues.

Every gate in the profile must PASS before presenting to the user for authorization.
After user authorization, deploy branch-manager for git operations."""

_BRANCH_MANAGER_DONE = """\
BRANCH-MANAGER COMPLETED. This agent is terminal in the pipeline.

Do not re-enter quality gates.

1. If a worktree was used: remove it (flightdeck worktree cleanup ./trees/<task-id>-<desc> --delete-branch).
2. If ticket tracking is active: close the ticket.
3. Report what was committed or merged to the user.
4. If more work units remain in the plan: proceed to the next one."""

_OPS_DONE = """\
OPS AGENT COMPLETED. Review the agent's JSON output.

Do not re-enter quality gates automatically.

1. If the agent changed files: ask the user whether to run quality gates on the changes.
2. If the agent produced analysis only: present the findings. No further agents are needed.
3. If unfinished items exist: present the blockers and wait for the user."""

_ADVISORY_DONE = """\
AGENT COMPLETED. Present the agent's output to the user.

Planning and documentation output is advisory. Do not deploy coding agents or gates without user direction."""


def orchestration_instructions(name: str, catalog: Optional[Catalog] = None) -> str:
    """Return the instructions an orchestrator follows after ``name`` finishes."""
    cat = catalog or DEFAULT_CATALOG
    if name == BRANCH_MANAGER:
        return _BRANCH_MANAGER_DONE
    if name == TEST_RUNNER:
        return _TEST_RUNNER_DONE
    if cat.is_coding(name):
        return _CODING_DONE
    if cat.is_review(name) or (cat.is_gate_capable(name) and not cat.is_operations(name)):
        return _GATE_DONE
    if cat.is_operations(name) or cat.is_performance(name):
        return _OPS_DONE
    return _ADVISORY_DONE
