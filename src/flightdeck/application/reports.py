"""Agent report models and parsing.

Agents end their turn with a JSON object.  The shape depends on the role:

* coding agents: ``narrative_report``, ``files_modified``, ``validation_status``
* gates (test-runner, reviewers, gate-capable agents): ``gate_status`` PASS/FAIL
  plus ``blocking_issues``
* branch-manager: what was committed and whether the worktree was removed

Unknown keys are kept (``extra="allow"``) so richer agent output survives into
the runlog.  Two invariants are enforced on gate reports: a FAIL always
carries at least one blocking issue, and a test-runner PASS must be backed by
zero exit codes and coverage at or above the threshold.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from flightdeck.application.json_parsing import extract_json
from flightdeck.domain.catalog import BRANCH_MANAGER, TEST_RUNNER, Catalog
from flightdeck.domain.errors import ReportError
from flightdeck.domain.models import GateStatus

logger = logging.getLogger(__name__)


class BlockingIssue(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: str
    file: Optional[str] = None
    line: Optional[Union[int, str]] = None  # agents report ranges like "12-15"
    severity: str = "high"

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"description": value}
        if isinstance(value, dict) and "description" not in value:
            for alias in ("issue", "message", "title", "summary"):
                if isinstance(value.get(alias), str):
                    return {**value, "description": value[alias]}
        return value


class AgentReport(BaseModel):
    model_config = ConfigDict(extra="allow")

    narrative_report: str = ""


class GenericReport(AgentReport):
    pass


class CodingReport(AgentReport):
    files_modified: List[str] = Field(default_factory=list)
    validation_status: Any = None
    unfinished: List[str] = Field(default_factory=list)


class GateReport(AgentReport):
    gate_status: GateStatus
    blocking_issues: List[BlockingIssue] = Field(default_factory=list)

    @field_validator("gate_status", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _fail_has_issue(self) -> "GateReport":
        if self.gate_status == GateStatus.FAIL and not self.blocking_issues:
            logger.warning("FAIL report without blocking_issues; using narrative as the issue")
            self.blocking_issues = [
                BlockingIssue(description=self.narrative_report.strip() or "Gate failed without details")
            ]
        return self

    @property
    def passed(self) -> bool:
        return self.gate_status == GateStatus.PASS


class TestRunnerReport(GateReport):
    __test__ = False  # not a pytest class

    test_exit_code: Optional[int] = None
    lint_exit_code: Optional[int] = None
    coverage_percentage: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _lift_nested(cls, value: Any) -> Any:
        # Some agents nest the numbers under test_results
        if isinstance(value, dict) and isinstance(value.get("test_results"), dict):
            nested = value["test_results"]
            lifted = dict(value)
            for key in ("test_exit_code", "lint_exit_code", "coverage_percentage"):
                if key not in lifted and key in nested:
                    lifted[key] = nested[key]
            return lifted
        return value


class BranchManagerReport(AgentReport):
    branch: Optional[str] = None
    commit_sha: Optional[str] = None
    worktree_removed: Optional[bool] = None


def enforce_test_evidence(report: TestRunnerReport, coverage_threshold: float) -> TestRunnerReport:
    """Downgrade a test-runner PASS that its own numbers contradict."""
    if report.gate_status != GateStatus.PASS:
        return report
    problems = []
    if report.test_exit_code not in (None, 0):
        problems.append(f"test_exit_code is {report.test_exit_code}, expected 0")
    if report.lint_exit_code not in (None, 0):
        problems.append(f"lint_exit_code is {report.lint_exit_code}, expected 0")
    if report.coverage_percentage is not None and report.coverage_percentage < coverage_threshold:
        problems.append(
            f"coverage {report.coverage_percentage:g}% is below the {coverage_threshold:g}% threshold"
        )
    if not problems:
        return report
    logger.info("Downgrading test-runner PASS to FAIL: %s", "; ".join(problems))
    return report.model_copy(
        update={
            "gate_status": GateStatus.FAIL,
            "blocking_issues": list(report.blocking_issues)
            + [BlockingIssue(description=p, severity="high") for p in problems],
        }
    )


def report_model_for(agent: str, catalog: Catalog) -> type:
    if agent == TEST_RUNNER:
        return TestRunnerReport
    if agent == BRANCH_MANAGER:
        return BranchManagerReport
    if catalog.is_review(agent) or catalog.is_gate_capable(agent):
        return GateReport
    if catalog.is_coding(agent):
        return CodingReport
    return GenericReport


def parse_agent_report(
    agent: str,
    text: str,
    catalog: Catalog,
    coverage_threshold: float = 80.0,
    as_gate: bool = False,
) -> AgentReport:
    """Extract and validate the JSON report in an agent's final message.

    ``as_gate`` forces gate validation for agents that are acting as a gate
    in a profile even though their role is not a review role
    (deployment-engineer in the infrastructure profile).
    Raises ReportError when no JSON object is found or it does not validate.
    """
    ok, data, err = extract_json(text)
    if not ok:
        raise ReportError(agent, err)
    if not isinstance(data, dict):
        raise ReportError(agent, f"expected a JSON object, got {type(data).__name__}")
    model = report_model_for(agent, catalog)
    if as_gate and not issubclass(model, GateReport):
        model = GateReport
    try:
        report = model.model_validate(data)
    except ValidationError as exc:
        raise ReportError(agent, f"invalid report: {exc.errors(include_url=False)}") from exc
    if isinstance(report, TestRunnerReport):
        report = enforce_test_evidence(report, coverage_threshold)
    return report


def issues_as_dicts(report: AgentReport) -> List[Dict[str, Any]]:
    issues = getattr(report, "blocking_issues", None) or []
    return [i.model_dump(exclude_none=True) for i in issues]
