"""Quality gate pipeline: coding agent -> gate stages -> user authorization -> branch-manager.

Flow for one work unit:

1. Deploy the coding agent (with accumulated ``blocking_issues`` on a retry).
2. Run the gate profile for the work type stage by stage; gates inside a stage
   run concurrently.  A gate that raises or returns an unusable report counts
   as FAIL.
3. Any FAIL sends the unit back to the coding agent without asking the user,
   until that gate's retry limit is reached; then the run escalates.
4. When every gate passes, ask the user to authorize the commit.
5. With both authorizations, deploy branch-manager (terminal).

Every transition is appended to the run log and, when an ``event_queue`` is
given, streamed to it.  A checkpoint is written after each stage so an
interrupted run can be resumed with ``QualityGatePipeline.resume``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from flightdeck.application.authorization import authorize_commit
from flightdeck.application.ports import AgentRunner, Approver, RunRepository
from flightdeck.application.reports import AgentReport, issues_as_dicts, parse_agent_report
from flightdeck.config.constants import MAX_AGENT_OUTPUT_IN_RUNLOG_CHARS
from flightdeck.config.schema import GatesConfig
from flightdeck.domain.catalog import BRANCH_MANAGER, Catalog
from flightdeck.domain.errors import AuthorizationError, GateError
from flightdeck.domain.models import (
    GateAction,
    GateDecision,
    GateResult,
    GateStatus,
    PipelineResult,
    PipelineStatus,
    RunId,
    WorkUnit,
)
from flightdeck.infrastructure.telemetry import get_tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateProfile:
    name: str
    stages: Tuple[Tuple[str, ...], ...]

    @property
    def agents(self) -> List[str]:
        return [a for stage in self.stages for a in stage]


def resolve_profile(work_type: str, profiles: Mapping[str, Sequence[Sequence[str]]]) -> GateProfile:
    """Gate profile for a work type; GateError if the work type is unknown."""
    if work_type not in profiles:
        raise GateError(
            f"Unknown work type {work_type!r}. Known work types: {', '.join(sorted(profiles))}"
        )
    return GateProfile(name=work_type, stages=tuple(tuple(s) for s in profiles[work_type]))


def retry_limit(agent: str, limits: Mapping[str, int], default: int = 2) -> int:
    return limits.get(agent, default)


def decide_next(
    agent: str,
    status: GateStatus,
    failures: int,
    limit: int,
    blocking_issues: Sequence[Dict[str, Any]] = (),
) -> GateDecision:
    """Decide what follows a gate result.

    ``failures`` counts this gate's FAIL results so far, including the one
    being decided.  Reaching ``limit`` escalates to the user; below it the
    work goes back to the coding agent without asking.
    """
    if status == GateStatus.PASS:
        action = GateAction.PROCEED
    elif failures >= limit:
        action = GateAction.ESCALATE
    else:
        action = GateAction.RETURN_TO_CODER
    return GateDecision(
        agent=agent,
        action=action,
        status=status,
        attempts=failures,
        limit=limit,
        blocking_issues=list(blocking_issues),
    )


def _emit(
    queue: Optional[asyncio.Queue],
    kind: str,
    data: Dict[str, Any],
    step: Optional[str] = None,
) -> None:
    """Put a run event to the streaming queue (no-op when queue is None or full)."""
    if queue is None:
        return
    try:
        queue.put_nowait({"kind": kind, "data": data, "step": step})
    except asyncio.QueueFull:
        logger.debug("event_queue full; dropping event kind=%s", kind)


def _clip(text: str) -> str:
    if len(text) <= MAX_AGENT_OUTPUT_IN_RUNLOG_CHARS:
        return text
    return text[:MAX_AGENT_OUTPUT_IN_RUNLOG_CHARS] + "\n...[truncated]"


@dataclass
class _RunState:
    """Mutable progress of one pipeline run; mirrored into the checkpoint."""
    run_id: RunId
    run_dir: str
    iteration: int = 0
    failures: Dict[str, int] = field(default_factory=dict)
    blocking_issues: List[Dict[str, Any]] = field(default_factory=list)
    coding_report: Optional[Dict[str, Any]] = None
    completed_stages: int = 0
    latest: Dict[str, GateResult] = field(default_factory=dict)
    history: List[GateResult] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)


class QualityGatePipeline:
    """Drives one work unit through coding, gates, authorization and branch-manager."""

    def __init__(
        self,
        runner: AgentRunner,
        run_repository: RunRepository,
        gates: GatesConfig,
        catalog: Catalog,
        approver: Optional[Approver] = None,
        event_queue: Optional[asyncio.Queue] = None,
    ):
        self._runner = runner
        self._repo = run_repository
        self._gates = gates
        self._catalog = catalog
        self._approver = approver
        self._queue = event_queue
        self._tracer = get_tracer()

    # -- events ------------------------------------------------------------

    def _event(self, state: _RunState, kind: str, data: Dict[str, Any], step: Optional[str] = None) -> None:
        self._repo.append_event(state.run_id, kind, data, step=step)
        _emit(self._queue, kind, data, step)

    # -- public API ----------------------------------------------------------

    async def run(self, unit: WorkUnit) -> PipelineResult:
        profile = resolve_profile(unit.work_type, self._gates.profiles)
        if not self._catalog.is_coding(unit.coding_agent):
            logger.warning("%s is not classified as a coding agent", unit.coding_agent)
        run_id, run_dir, _ = self._repo.create_run()
        state = _RunState(run_id=run_id, run_dir=run_dir)
        self._event(state, "pipeline_start", {
            "task_id": unit.task_id,
            "description": unit.description,
            "coding_agent": unit.coding_agent,
            "work_type": unit.work_type,
            "worktree": unit.worktree,
            "stages": [list(s) for s in profile.stages],
        })
        logger.info("Pipeline start: task=%s agent=%s profile=%s run_id=%s",
                    unit.task_id, unit.coding_agent, profile.name, run_id.value)
        return await self._drive(unit, profile, state)

    async def resume(self, checkpoint: Any) -> PipelineResult:
        """Continue an interrupted run from its checkpoint.

        Gate stages completed in the checkpointed iteration are not re-run.
        """
        unit = WorkUnit(
            task_id=checkpoint.task_id,
            description=checkpoint.description,
            coding_agent=checkpoint.coding_agent,
            work_type=checkpoint.work_type,
            worktree=checkpoint.worktree,
            context=checkpoint.context,
        )
        profile = resolve_profile(unit.work_type, self._gates.profiles)
        state = _RunState(
            run_id=RunId(checkpoint.run_id),
            run_dir=checkpoint.run_dir,
            iteration=checkpoint.iteration,
            failures=dict(checkpoint.failures),
            blocking_issues=list(checkpoint.blocking_issues),
            coding_report=checkpoint.coding_report,
            completed_stages=checkpoint.completed_stages,
            created_at=checkpoint.created_at,
        )
        for raw in checkpoint.gate_results:
            result = GateResult(
                agent=raw["agent"],
                status=GateStatus(raw["status"]),
                attempt=raw.get("attempt", state.iteration),
                blocking_issues=raw.get("blocking_issues", []),
                report=raw.get("report"),
                error=raw.get("error"),
            )
            state.latest[result.agent] = result
            state.history.append(result)
        self._event(state, "pipeline_resume", {
            "iteration": state.iteration,
            "completed_stages": state.completed_stages,
        })
        return await self._drive(unit, profile, state)

    # -- internals -----------------------------------------------------------

    async def _drive(self, unit: WorkUnit, profile: GateProfile, state: _RunState) -> PipelineResult:
        while True:
            if state.coding_report is None:
                state.iteration += 1
                state.completed_stages = 0
                state.latest = {}
                report = await self._deploy_coder(unit, state)
                if report is None:
                    return self._finish(state, PipelineStatus.FAULT)
                state.coding_report = report.model_dump(mode="json")
                self._checkpoint(unit, state)

            outcome, escalated_by = await self._run_gates(unit, profile, state)
            if outcome == GateAction.ESCALATE:
                return self._finish(state, PipelineStatus.ESCALATED, escalated_by=escalated_by)
            if outcome == GateAction.RETURN_TO_CODER:
                state.coding_report = None
                state.completed_stages = 0
                self._checkpoint(unit, state)
                continue
            break

        approved = await self._request_approval(unit, state)
        try:
            authorize_commit(
                [state.latest[a] for a in profile.agents],
                user_approved=approved,
                require_user=self._gates.require_user_authorization,
            )
        except AuthorizationError as exc:
            logger.info("Commit not authorized for task %s: %s", unit.task_id, exc)
            self._event(state, "authorization_denied", {"missing": exc.missing})
            return self._finish(state, PipelineStatus.DECLINED)

        branch_report = await self._deploy_branch_manager(unit, state)
        if branch_report is None:
            return self._finish(state, PipelineStatus.FAULT)
        return self._finish(state, PipelineStatus.LANDED, branch_report=branch_report.model_dump(mode="json"))

    async def _deploy_coder(self, unit: WorkUnit, state: _RunState) -> Optional[AgentReport]:
        request: Dict[str, Any] = {
            "role": "coding",
            "task_id": unit.task_id,
            "description": unit.description,
            "worktree": unit.worktree,
            "context": unit.context,
            "iteration": state.iteration,
        }
        if state.blocking_issues:
            request["blocking_issues"] = state.blocking_issues
        step = f"coding_{state.iteration}"
        self._event(state, "coding_start", {"agent": unit.coding_agent, "iteration": state.iteration,
                                            "retry": bool(state.blocking_issues)}, step)
        with self._tracer.start_as_current_span("flightdeck.coding_agent") as span:
            span.set_attribute("flightdeck.agent", unit.coding_agent)
            span.set_attribute("flightdeck.iteration", state.iteration)
            try:
                text = await self._runner.run(unit.coding_agent, request)
                report = parse_agent_report(
                    unit.coding_agent, text, self._catalog, self._gates.coverage_threshold
                )
            except Exception as exc:
                logger.warning("Coding agent %s failed: %s", unit.coding_agent, exc)
                self._event(state, "coding_error", {"agent": unit.coding_agent, "error": str(exc),
                                                    "error_type": type(exc).__name__}, step)
                return None
        self._event(state, "coding_complete", {
            "agent": unit.coding_agent,
            "files_modified": getattr(report, "files_modified", []),
            "narrative": _clip(report.narrative_report),
        }, step)
        return report

    async def _run_one_gate(self, agent: str, request: Dict[str, Any], attempt: int) -> GateResult:
        with self._tracer.start_as_current_span("flightdeck.gate") as span:
            span.set_attribute("flightdeck.agent", agent)
            text = await self._runner.run(agent, request)
            report = parse_agent_report(
                agent, text, self._catalog, self._gates.coverage_threshold, as_gate=True
            )
            span.set_attribute("flightdeck.gate_status", report.gate_status.value)
        return GateResult(
            agent=agent,
            status=report.gate_status,
            attempt=attempt,
            blocking_issues=issues_as_dicts(report),
            report=report.model_dump(mode="json"),
        )

    async def _run_stage(self, unit: WorkUnit, stage: Sequence[str], stage_idx: int,
                         state: _RunState) -> List[GateResult]:
        coding = state.coding_report or {}
        request = {
            "role": "gate",
            "gate_mode": True,
            "task_id": unit.task_id,
            "description": unit.description,
            "worktree": unit.worktree,
            "files_modified": coding.get("files_modified", []),
            "coding_narrative": coding.get("narrative_report", ""),
            "iteration": state.iteration,
        }
        step = f"gates_{state.iteration}_{stage_idx}"
        self._event(state, "gate_stage_start", {"stage": stage_idx, "agents": list(stage)}, step)
        raw = await asyncio.gather(
            *[self._run_one_gate(agent, dict(request), state.iteration) for agent in stage],
            return_exceptions=True,
        )
        results: List[GateResult] = []
        for agent, res in zip(stage, raw):
            if isinstance(res, BaseException):
                logger.warning("Gate %s failed to report: %s", agent, res)
                res = GateResult(
                    agent=agent,
                    status=GateStatus.FAIL,
                    attempt=state.iteration,
                    blocking_issues=[{
                        "description": f"{agent} did not produce a usable report: {res}",
                        "severity": "high",
                    }],
                    error=f"{type(res).__name__}: {res}",
                )
            results.append(res)
            self._event(state, "gate_result", {
                "agent": agent,
                "status": res.status.value,
                "blocking_issues": res.blocking_issues,
                "error": res.error,
            }, step)
        return results

    async def _run_gates(
        self, unit: WorkUnit, profile: GateProfile, state: _RunState
    ) -> Tuple[GateAction, Optional[str]]:
        """Run the remaining stages; return the outcome and, on escalation, the gate responsible."""
        for stage_idx, stage in enumerate(profile.stages):
            if stage_idx < state.completed_stages:
                continue
            results = await self._run_stage(unit, stage, stage_idx, state)
            decisions = []
            for res in results:
                state.latest[res.agent] = res
                state.history.append(res)
                if not res.passed:
                    state.failures[res.agent] = state.failures.get(res.agent, 0) + 1
                limit = retry_limit(res.agent, self._gates.retry_limits, self._gates.default_retry_limit)
                decision = decide_next(res.agent, res.status, state.failures.get(res.agent, 0),
                                       limit, res.blocking_issues)
                decisions.append(decision)
                self._event(state, "gate_decision", {
                    "agent": decision.agent,
                    "action": decision.action.value,
                    "failures": decision.attempts,
                    "limit": decision.limit,
                })

            failed = [d for d in decisions if d.action != GateAction.PROCEED]
            if not failed:
                state.completed_stages = stage_idx + 1
                self._checkpoint(unit, state)
                continue

            state.blocking_issues = [
                {**issue, "gate": d.agent} for d in failed for issue in d.blocking_issues
            ]
            escalations = [d for d in failed if d.action == GateAction.ESCALATE]
            if escalations:
                return GateAction.ESCALATE, escalations[0].agent
            return GateAction.RETURN_TO_CODER, None
        return GateAction.PROCEED, None

    async def _request_approval(self, unit: WorkUnit, state: _RunState) -> bool:
        if not self._gates.require_user_authorization:
            self._event(state, "authorization", {"user_approved": None, "required": False})
            return True
        summary = {
            "task_id": unit.task_id,
            "description": unit.description,
            "worktree": unit.worktree,
            "iterations": state.iteration,
            "files_modified": (state.coding_report or {}).get("files_modified", []),
            "gates": {a: r.status.value for a, r in state.latest.items()},
        }
        approved = False
        if self._approver is not None:
            approved = bool(await self._approver.approve(summary))
        self._event(state, "authorization", {"user_approved": approved, "required": True})
        return approved

    async def _deploy_branch_manager(self, unit: WorkUnit, state: _RunState) -> Optional[AgentReport]:
        request = {
            "role": "branch-manager",
            "task_id": unit.task_id,
            "description": unit.description,
            "worktree": unit.worktree,
            "files_modified": (state.coding_report or {}).get("files_modified", []),
            "authorization": {"quality_gates": "PASS", "user_authorized": True},
        }
        with self._tracer.start_as_current_span("flightdeck.branch_manager"):
            try:
                text = await self._runner.run(BRANCH_MANAGER, request)
                report = parse_agent_report(BRANCH_MANAGER, text, self._catalog)
            except Exception as exc:
                logger.warning("branch-manager failed: %s", exc)
                self._event(state, "branch_manager_error", {"error": str(exc), "error_type": type(exc).__name__})
                return None
        self._event(state, "branch_manager_complete", report.model_dump(mode="json"))
        return report

    def _finish(
        self,
        state: _RunState,
        status: PipelineStatus,
        branch_report: Optional[Dict[str, Any]] = None,
        escalated_by: Optional[str] = None,
    ) -> PipelineResult:
        self._event(state, "pipeline_complete", {
            "status": status.value,
            "iterations": state.iteration,
            "escalated_by": escalated_by,
            "blocking_issues": state.blocking_issues if status != PipelineStatus.LANDED else [],
        })
        _delete_checkpoint(state.run_dir)
        logger.info("Pipeline %s after %d iteration(s): run_id=%s", status.value, state.iteration,
                    state.run_id.value)
        return PipelineResult(
            run_id=state.run_id,
            status=status,
            iterations=state.iteration,
            gate_results=list(state.history),
            coding_report=state.coding_report,
            branch_report=branch_report,
            blocking_issues=[] if status == PipelineStatus.LANDED else list(state.blocking_issues),
            escalated_by=escalated_by,
            run_dir=state.run_dir,
        )

    def _checkpoint(self, unit: WorkUnit, state: _RunState) -> None:
        """Save progress (non-fatal; failure logs a warning)."""
        try:
            from flightdeck.infrastructure.workspace.run_checkpoint import (
                PipelineCheckpoint,
                save_checkpoint,
            )

            save_checkpoint(state.run_dir, PipelineCheckpoint(
                run_id=state.run_id.value,
                run_dir=state.run_dir,
                task_id=unit.task_id,
                description=unit.description,
                coding_agent=unit.coding_agent,
                work_type=unit.work_type,
                worktree=unit.worktree,
                context=unit.context,
                iteration=state.iteration,
                completed_stages=state.completed_stages,
                failures=dict(state.failures),
                blocking_issues=list(state.blocking_issues),
                coding_report=state.coding_report,
                gate_results=[
                    {
                        "agent": r.agent,
                        "status": r.status.value,
                        "attempt": r.attempt,
                        "blocking_issues": r.blocking_issues,
                        "report": r.report,
                        "error": r.error,
                    }
                    for r in state.latest.values()
                ],
                created_at=state.created_at,
                updated_at=time.time(),
            ))
        except Exception as exc:
            logger.warning("Failed to save checkpoint: %s", exc)


def _delete_checkpoint(run_dir: str) -> None:
    """Delete the run checkpoint (non-fatal)."""
    try:
        from flightdeck.infrastructure.workspace.run_checkpoint import delete_checkpoint
        delete_checkpoint(run_dir)
    except Exception as exc:
        logger.warning("Failed to delete checkpoint: %s", exc)
