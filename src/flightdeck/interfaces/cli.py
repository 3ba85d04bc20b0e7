"""CLI: Typer app for building prompts, validating contracts, running gates and managing worktrees."""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from flightdeck import __version__
from flightdeck.application.build import BuildRecord, BuildStats, PromptBuilder, watch
from flightdeck.application.commit_lint import lint_commit
from flightdeck.application.contracts import run_contracts
from flightdeck.application.gates import QualityGatePipeline, decide_next, resolve_profile, retry_limit
from flightdeck.application.release import bump_version, verify_release
from flightdeck.application.reports import GateReport, parse_agent_report
from flightdeck.config import FlightdeckConfig, load_config, pushover_credentials, workspace_override
from flightdeck.domain import FlightdeckError, PipelineResult, PipelineStatus, build_work_unit
from flightdeck.domain.catalog import orchestration_instructions
from flightdeck.infrastructure.agents import ConsoleApprover, FileAgentRegistry, LLMAgentRunner, StaticApprover
from flightdeck.infrastructure.notify import send_attention
from flightdeck.infrastructure.telemetry import setup_telemetry
from flightdeck.infrastructure.visual import (
    card_footer,
    card_header,
    log_fail,
    log_ok,
    log_step,
    log_warn,
    pipeline_gauge,
    render_gauge,
    worktree_gauge,
)
from flightdeck.infrastructure.workspace import (
    FileSystemRunRepository,
    find_resumable_runs,
    list_runs,
    load_checkpoint,
    read_run_events,
)
from flightdeck.infrastructure.worktree import (
    cleanup_worktree,
    create_worktree,
    list_worktrees,
    worktree_status,
)

app = typer.Typer(help="flightdeck: build agent prompts, enforce quality gates, manage task worktrees.")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose (DEBUG) logging to stderr."),
) -> None:
    _setup_logging(verbose)


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Print FlightdeckError in red and exit with its exit code."""
    try:
        yield
    except FlightdeckError as e:
        rprint(f"[red]{escape(str(e))}[/red]")
        sys.exit(e.exit_code)


def _config() -> FlightdeckConfig:
    """``load_config()``; a bad config file is reported like any other error."""
    with _handle_errors():
        return load_config()


def _workspace_root(config: FlightdeckConfig) -> str:
    return workspace_override() or config.workspace_dir


def _agents_dir(config: FlightdeckConfig) -> Path:
    return Path(config.paths.root_dir) / config.paths.directory_map.get("agents", "agents")


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    p = Path(path)
    if not p.is_file():
        rprint(f"[red]File not found: {path}[/red]")
        sys.exit(1)
    return p.read_text(encoding="utf-8")


@app.command()
def version() -> None:
    """Print the installed version."""
    rprint(__version__)


# ---------------------------------------------------------------------------
# build / validate
# ---------------------------------------------------------------------------

def _print_build_summary(console: Console, stats: BuildStats) -> None:
    for msg in stats.error_messages:
        log_fail(msg)
    if stats.errors:
        console.print(f"[red]Build finished with {stats.errors} error(s)[/red] ({stats.success} file(s) built)")
    else:
        console.print(f"[green]Build complete:[/green] {stats.success} file(s)")


@app.command()
def build(
    type_: Optional[str] = typer.Option(None, "--type", "-t", help="Build one source type (agents|skills|hooks|commands)."),
    watch_: bool = typer.Option(False, "--watch", "-w", help="Rebuild on source changes until interrupted."),
    verbose: bool = typer.Option(False, "--verbose", help="List every file processed."),
) -> None:
    """Render templates from src/ into the generated prompt directories."""
    config = _config()
    console = Console()

    def on_record(rec: BuildRecord) -> None:
        if verbose and rec.kind != "error":
            verb = "compiled" if rec.kind == "ok" else "copied"
            console.print(f"  [dim]{verb}[/dim] {rec.relative_path}")

    builder = PromptBuilder(config.paths, config.catalog.to_catalog(), on_record=on_record)
    with _handle_errors():
        stats = builder.build(type_)
    _print_build_summary(console, stats)

    if watch_:
        console.print(f"[dim]Watching {builder.src_dir} (Ctrl+C to stop)...[/dim]")
        try:
            watch(builder, type_, on_cycle=lambda s: _print_build_summary(console, s))
        except KeyboardInterrupt:
            console.print("[dim]Stopped watching.[/dim]")
        return
    if stats.errors:
        sys.exit(1)


@app.command()
def validate(
    root: Optional[str] = typer.Option(None, "--root", "-r", help="Generated plugin root (default: paths.root_dir)."),
) -> None:
    """Check generated prompts against their structural contracts."""
    config = _config()
    root_path = Path(root) if root else Path(config.paths.root_dir)
    report = run_contracts(
        root_path,
        config.catalog.to_catalog(),
        directory_map=config.paths.directory_map,
        command_contracts=config.contracts.commands,
        agent_sections=config.contracts.agent_sections,
        require_all_agents=config.contracts.require_all_agents,
    )
    if report.ok:
        log_ok(f"All contracts satisfied ({report.checked_files} generated file(s) checked)")
        return
    table = Table(title=f"Contract violations ({len(report.violations)})", show_header=True, header_style="bold")
    table.add_column("File", style="cyan", overflow="fold")
    table.add_column("Contract", style="magenta")
    table.add_column("Line", justify="right")
    table.add_column("Problem", overflow="fold")
    for v in report.violations:
        table.add_row(v.path, v.contract, str(v.line) if v.line else "", v.message)
    Console().print(table)
    sys.exit(1)


# ---------------------------------------------------------------------------
# flightdeck agents
# ---------------------------------------------------------------------------

agents_app = typer.Typer(help="Inspect generated agent definitions.")
app.add_typer(agents_app, name="agents")


@agents_app.command("list")
def agents_list() -> None:
    """List generated agents with their classification."""
    config = _config()
    catalog = config.catalog.to_catalog()
    registry = FileAgentRegistry(_agents_dir(config))
    names = registry.list()
    if not names:
        rprint(f"[dim]No agents found in {registry.agents_dir}/ (run 'flightdeck build' first)[/dim]")
        return
    table = Table(title=f"Agents ({registry.agents_dir})", show_header=True, header_style="bold")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type", style="green")
    table.add_column("Model")
    table.add_column("Gate", justify="center")
    table.add_column("Description", overflow="fold")
    for name in names:
        gate = "✓" if catalog.is_gate_capable(name) else ""
        try:
            d = registry.get(name)
        except FlightdeckError as e:
            table.add_row(name, catalog.agent_type(name), "", gate, f"[red]{escape(str(e))}[/red]")
            continue
        table.add_row(name, catalog.agent_type(name), d.model or "—", gate, d.description[:100])
    Console().print(table)


@agents_app.command("show")
def agents_show(
    name: str = typer.Argument(..., help="Agent name."),
    body: bool = typer.Option(False, "--body", help="Print the full prompt body."),
) -> None:
    """Show one agent's metadata and its post-completion instructions."""
    config = _config()
    catalog = config.catalog.to_catalog()
    with _handle_errors():
        d = FileAgentRegistry(_agents_dir(config)).get(name)
    rprint(Panel.fit(
        f"[bold]Name:[/bold] {d.name}\n"
        f"[bold]Type:[/bold] {catalog.agent_type(d.name)}\n"
        f"[bold]Model:[/bold] {d.model or '—'}\n"
        f"[bold]Tools:[/bold] {', '.join(d.tools) or '—'}\n"
        f"[bold]File:[/bold] {d.path}\n\n"
        f"{escape(d.description)}",
        title=f"[bold]{d.name}[/bold]",
    ))
    rprint("[bold]When this agent completes:[/bold]")
    rprint(escape(orchestration_instructions(d.name, catalog)))
    if body:
        Console().print(Syntax(d.body, "markdown", theme="monokai"))


# ---------------------------------------------------------------------------
# flightdeck gate
# ---------------------------------------------------------------------------

gate_app = typer.Typer(help="Quality gate profiles, decisions and pipeline runs.")
app.add_typer(gate_app, name="gate")


@gate_app.command("profile")
def gate_profile(
    work_type: str = typer.Argument(..., help="Work type, e.g. application_code."),
) -> None:
    """Show the gate stages and retry limits for a work type."""
    config = _config()
    with _handle_errors():
        profile = resolve_profile(work_type, config.gates.profiles)
    table = Table(title=f"Gate profile: {profile.name}", show_header=True, header_style="bold")
    table.add_column("Stage", justify="right")
    table.add_column("Agent", style="cyan")
    table.add_column("Retry limit", justify="right")
    for i, stage in enumerate(profile.stages, start=1):
        for agent in stage:
            limit = retry_limit(agent, config.gates.retry_limits, config.gates.default_retry_limit)
            table.add_row(str(i), agent, str(limit))
    Console().print(table)
    if len(profile.stages) > 1:
        rprint("[dim]Stages run in order; agents within a stage run in parallel.[/dim]")


@gate_app.command("next")
def gate_next(
    agent: str = typer.Argument(..., help="Agent that just completed."),
    report: Optional[str] = typer.Option(None, "--report", "-r", help="File with the agent's JSON report ('-' for stdin)."),
    attempt: int = typer.Option(1, "--attempt", "-a", min=1, help="How many times this gate has now run for the task."),
) -> None:
    """Print what the orchestrator does next after AGENT completes."""
    config = _config()
    catalog = config.catalog.to_catalog()
    rprint(escape(orchestration_instructions(agent, catalog)))
    if report is None:
        return
    text = _read_input(report)
    with _handle_errors():
        parsed = parse_agent_report(
            agent, text, catalog, config.gates.coverage_threshold, as_gate=catalog.is_gate_capable(agent)
        )
    if not isinstance(parsed, GateReport):
        log_ok(f"{agent} report is valid")
        return
    limit = retry_limit(agent, config.gates.retry_limits, config.gates.default_retry_limit)
    failures = attempt if not parsed.passed else 0
    decision = decide_next(agent, parsed.gate_status, failures, limit,
                           [i.model_dump() for i in parsed.blocking_issues])
    colour = {"proceed": "green", "return_to_coder": "yellow", "escalate": "red"}[decision.action.value]
    rprint(f"\n[bold]Gate:[/bold] {agent}  [bold]Status:[/bold] {parsed.gate_status.value}  "
           f"[bold]Attempt:[/bold] {attempt}/{limit}")
    rprint(f"[bold]Decision:[/bold] [{colour}]{decision.action.value}[/{colour}]")
    for issue in decision.blocking_issues:
        log_fail(issue.get("description", ""))


def _render_event(console: Console, event: dict) -> None:
    kind = event.get("kind", "")
    data = event.get("data", {})
    step = event.get("step")
    prefix = f"[dim]{step}[/dim] " if step else ""

    if kind == "coding_start":
        retry = " (retry with blocking issues)" if data.get("retry") else ""
        console.print(f"{prefix}[cyan]▸ coding[/cyan] {data.get('agent')} iteration {data.get('iteration')}{retry}")
    elif kind == "coding_complete":
        files = data.get("files_modified") or []
        console.print(f"{prefix}[green]+ coding complete[/green] ({len(files)} file(s))")
    elif kind == "coding_error":
        console.print(f"{prefix}[red]x coding failed[/red]: {escape(str(data.get('error', '')))}")
    elif kind == "gate_stage_start":
        console.print(f"{prefix}[cyan]▸ gates[/cyan] {', '.join(data.get('agents', []))}")
    elif kind == "gate_result":
        if data.get("status") == "PASS":
            console.print(f"{prefix}[green]+ {data.get('agent')} PASS[/green]")
        else:
            n = len(data.get("blocking_issues") or [])
            console.print(f"{prefix}[red]x {data.get('agent')} FAIL[/red] ({n} blocking issue(s))")
    elif kind == "gate_decision" and data.get("action") != "proceed":
        console.print(f"{prefix}[yellow]~ {data.get('agent')}: {data.get('action')} "
                      f"({data.get('failures')}/{data.get('limit')})[/yellow]")
    elif kind == "authorization_denied":
        console.print(f"[yellow]~ commit not authorized[/yellow]: {'; '.join(data.get('missing', []))}")
    elif kind == "branch_manager_complete":
        console.print(f"[green]+ branch-manager complete[/green] {data.get('commit_sha') or ''}")
    elif kind == "branch_manager_error":
        console.print(f"[red]x branch-manager failed[/red]: {escape(str(data.get('error', '')))}")


async def _run_with_streaming(pipeline_call, event_queue: asyncio.Queue) -> PipelineResult:
    """Run the pipeline in the background and render its events as they arrive."""
    console = Console()
    bg = asyncio.create_task(pipeline_call)
    while True:
        getter = asyncio.create_task(event_queue.get())
        done, _ = await asyncio.wait({getter, bg}, return_when=asyncio.FIRST_COMPLETED)
        if getter in done:
            event = getter.result()
            _render_event(console, event)
            if event.get("kind") == "pipeline_complete":
                break
            continue
        getter.cancel()
        while not event_queue.empty():
            _render_event(console, event_queue.get_nowait())
        break
    return await bg


def _build_pipeline(config: FlightdeckConfig, model_key: Optional[str], yes: bool,
                    event_queue: asyncio.Queue) -> QualityGatePipeline:
    runner = LLMAgentRunner(
        FileAgentRegistry(_agents_dir(config)),
        config.models,
        config.agent_model_map,
        model_key_override=model_key or None,
    )
    return QualityGatePipeline(
        runner=runner,
        run_repository=FileSystemRunRepository(workspace_root=_workspace_root(config)),
        gates=config.gates,
        catalog=config.catalog.to_catalog(),
        approver=StaticApprover(True) if yes else ConsoleApprover(),
        event_queue=event_queue,
    )


def _print_pipeline_result(result: PipelineResult) -> None:
    rprint("")
    rprint(card_header(f"TASK PIPELINE: {result.status.value.upper()}"))
    rprint(render_gauge(pipeline_gauge(result.status)))
    rprint(f"  Iterations: {result.iterations}")
    if result.escalated_by:
        rprint(f"  Escalated by: {result.escalated_by}")
    for issue in result.blocking_issues:
        log_fail(f"[{issue.get('gate', '?')}] {issue.get('description', '')}")
    rprint(f"  Run dir: {result.run_dir}")
    rprint(card_footer())


def _exit_for(result: PipelineResult) -> None:
    if result.status in (PipelineStatus.ESCALATED, PipelineStatus.FAULT):
        sys.exit(1)


@gate_app.command("run")
def gate_run(
    task_id: str = typer.Argument(..., help="Task id, e.g. PROJ-123."),
    description: str = typer.Argument(..., help="What the coding agent should do."),
    agent: str = typer.Option(..., "--agent", help="Coding agent to deploy."),
    work_type: str = typer.Option("application_code", "--work-type", help="Work type selecting the gate profile."),
    worktree: Optional[str] = typer.Option(None, "--worktree", help="Worktree the agents work in."),
    model_key: Optional[str] = typer.Option(None, "--model-key", help="Force one models[] entry for every agent."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Authorize the commit without prompting."),
) -> None:
    """Run coding agent -> quality gates -> authorization -> branch-manager."""
    config = _config()
    setup_telemetry(config)
    try:
        unit = build_work_unit(task_id, description, agent, work_type, worktree)
    except ValueError as e:
        rprint(f"[red]{e}[/red]")
        sys.exit(1)
    event_queue: asyncio.Queue = asyncio.Queue(maxsize=512)
    with _handle_errors():
        pipeline = _build_pipeline(config, model_key, yes, event_queue)
        result = asyncio.run(_run_with_streaming(pipeline.run(unit), event_queue))
    _print_pipeline_result(result)
    _exit_for(result)


@gate_app.command("resume")
def gate_resume(
    run_id: Optional[str] = typer.Argument(None, help="Run to resume; omit to list resumable runs."),
    model_key: Optional[str] = typer.Option(None, "--model-key", help="Force one models[] entry for every agent."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Authorize the commit without prompting."),
) -> None:
    """Resume an interrupted pipeline run from its checkpoint."""
    config = _config()
    workspace = _workspace_root(config)
    if run_id is None:
        runs = find_resumable_runs(workspace)
        if not runs:
            rprint(f"[dim]No resumable runs in {workspace}/runs/[/dim]")
            return
        for r in runs:
            rprint(r)
        return
    checkpoint = load_checkpoint(Path(workspace) / "runs" / run_id)
    if checkpoint is None:
        rprint(f"[red]No checkpoint for run '{run_id}' in {workspace}.[/red]")
        sys.exit(1)
    setup_telemetry(config)
    event_queue: asyncio.Queue = asyncio.Queue(maxsize=512)
    with _handle_errors():
        pipeline = _build_pipeline(config, model_key, yes, event_queue)
        result = asyncio.run(_run_with_streaming(pipeline.resume(checkpoint), event_queue))
    _print_pipeline_result(result)
    _exit_for(result)


# ---------------------------------------------------------------------------
# flightdeck worktree
# ---------------------------------------------------------------------------

worktree_app = typer.Typer(help="Isolated git worktrees per task.")
app.add_typer(worktree_app, name="worktree")


@worktree_app.command("create")
def worktree_create(
    task_id: str = typer.Argument(..., help="Task id, e.g. PROJ-123."),
    description: str = typer.Argument(..., help="Short description; becomes part of the branch name."),
    base_branch: Optional[str] = typer.Option(None, "--base-branch", "-b", help="Branch to start from (default: develop, main, master)."),
    install: Optional[bool] = typer.Option(None, "--install/--no-install", help="Install dependencies in the new worktree."),
) -> None:
    """Create ./trees/<task>-<desc> on a new feature branch."""
    config = _config()
    log_step(f"Creating worktree for {task_id}")
    with _handle_errors():
        created = create_worktree(Path.cwd(), task_id, description, config.worktree,
                                  base_branch=base_branch, install=install)
    for w in created.warnings:
        log_warn(w)
    if created.install is not None and created.install.ok:
        log_ok(created.install.message)
    rprint(card_header("WORKTREE CREATED"))
    rprint(render_gauge("TAKING_OFF"))
    rprint(f"  Path:   {created.path}")
    rprint(f"  Branch: {created.branch}")
    rprint(f"  Base:   {created.base_branch}")
    rprint(card_footer())


@worktree_app.command("list")
def worktree_list(
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
) -> None:
    """List all worktrees with change and merge status."""
    config = _config()
    with _handle_errors():
        infos = list_worktrees(Path.cwd(), config.worktree)
    if as_json:
        typer.echo(json.dumps([dataclasses.asdict(i) for i in infos], indent=2))
        return
    table = Table(title="Worktrees", show_header=True, header_style="bold")
    table.add_column("Path", style="cyan", overflow="fold")
    table.add_column("Branch", style="green")
    table.add_column("Changes", justify="center")
    table.add_column("Unmerged", justify="right")
    table.add_column("Last commit", overflow="fold")
    for i in infos:
        branch = i.branch or ("(detached)" if i.detached else "—")
        if i.is_main:
            branch += " [dim](main)[/dim]"
        changes = "[yellow]yes[/yellow]" if i.has_changes else "no"
        last = f"{i.last_commit or ''} [dim]{i.last_commit_date or ''}[/dim]"
        table.add_row(i.path, branch, changes, str(i.unmerged_commits), last)
    Console().print(table)


@worktree_app.command("status")
def worktree_status_cmd(
    path: str = typer.Argument(".", help="Worktree path."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a card."),
) -> None:
    """Detailed status of one worktree."""
    config = _config()
    with _handle_errors():
        status = worktree_status(Path(path), config.worktree)
    gauge = worktree_gauge(status)
    if as_json:
        typer.echo(json.dumps({**dataclasses.asdict(status), "gauge": gauge}, indent=2))
        if not status.is_valid:
            sys.exit(1)
        return
    rprint(card_header(f"WORKTREE: {Path(status.path).name}"))
    if not status.is_valid:
        log_fail(f"{status.path} is not a valid worktree")
        rprint(render_gauge(gauge))
        rprint(card_footer())
        sys.exit(1)
    rprint(f"  Branch:   {status.branch or '(detached)'} @ {status.head}")
    rprint(f"  Base:     {status.base_branch or '—'}")
    if status.has_changes:
        log_warn(f"{status.change_count} uncommitted change(s)")
    else:
        log_ok("Working tree clean")
    if status.upstream:
        rprint(f"  Upstream: {status.upstream} (ahead {status.ahead}, behind {status.behind})")
    rprint(f"  Unmerged: {status.unmerged_commits} commit(s)")
    if status.last_commit:
        rprint(f"  Last:     {escape(status.last_commit)} [dim]{status.last_commit_date} by {status.last_commit_author}[/dim]")
    if status.dependency_type:
        if status.dependencies_installed:
            log_ok(f"{status.dependency_type} dependencies installed")
        elif status.dependencies_installed is False:
            log_warn(f"{status.dependency_type} dependencies not installed")
        else:
            log_step("Dependency status unknown")
    rprint("")
    rprint(render_gauge(gauge))
    rprint(card_footer())
    if not status.has_changes and status.unmerged_commits == 0:
        rprint(f"Ready for cleanup: flightdeck worktree cleanup {status.path} --delete-branch")


@worktree_app.command("cleanup")
def worktree_cleanup(
    path: str = typer.Argument(..., help="Worktree path."),
    keep_branch: bool = typer.Option(False, "--keep-branch", help="Remove the worktree, keep its branch."),
    delete_branch: bool = typer.Option(False, "--delete-branch", help="Remove the worktree and delete its branch (local and remote)."),
    force: bool = typer.Option(False, "--force", "-f", help="Remove even with uncommitted changes (they are lost)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would happen."),
    skip_lock_check: bool = typer.Option(False, "--skip-lock-check", help="Ignore a worktree lock."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Seconds allowed for worktree removal."),
    network_timeout: Optional[int] = typer.Option(None, "--network-timeout", help="Seconds allowed for remote operations."),
) -> None:
    """Remove a worktree; the branch disposition is mandatory for feature branches."""
    if keep_branch and delete_branch:
        rprint("[red]--keep-branch and --delete-branch are mutually exclusive[/red]")
        sys.exit(1)
    disposition = "keep" if keep_branch else "delete" if delete_branch else None
    config = _config()
    with _handle_errors():
        result = cleanup_worktree(
            Path(path), config.worktree, disposition=disposition, force=force, dry_run=dry_run,
            skip_lock_check=skip_lock_check, timeout_s=timeout, network_timeout_s=network_timeout,
        )
    for w in result.warnings:
        log_warn(w)
    if result.dry_run:
        rprint(card_header("DRY RUN"))
        for action in result.actions:
            log_step(action)
        rprint(card_footer())
        return
    rprint(card_header("WORKTREE CLEANUP"))
    log_ok(f"Removed {result.path}")
    if result.branch_deleted:
        log_ok(f"Deleted branch {result.branch}")
    if result.remote_branch_deleted:
        log_ok(f"Deleted remote branch origin/{result.branch}")
    rprint(render_gauge("LANDED"))
    rprint(card_footer())


# ---------------------------------------------------------------------------
# commits, releases, notifications
# ---------------------------------------------------------------------------

@app.command("commit-lint")
def commit_lint(
    file: str = typer.Argument("-", help="Commit message file (e.g. .git/COMMIT_EDITMSG) or '-' for stdin."),
) -> None:
    """Lint a commit message; usable as a commit-msg hook."""
    config = _config()
    result = lint_commit(_read_input(file), config.commits)
    if result.ok:
        log_ok("Commit message ok" + (" (ignored)" if result.ignored else ""))
        return
    for err in result.errors:
        log_fail(err)
    sys.exit(1)


@app.command("release-verify")
def release_verify(
    root: str = typer.Option(".", "--root", "-r", help="Project root."),
) -> None:
    """Check that every version source and the latest git tag agree."""
    check = verify_release(Path(root))
    for w in check.warnings:
        log_warn(w)
    if check.ok:
        log_ok(check.message)
        return
    rprint(f"[red]{escape(check.message)}[/red]")
    sys.exit(1)


@app.command("release-bump")
def release_bump(
    new_version: str = typer.Argument(..., help="New version, e.g. 1.4.0."),
    root: str = typer.Option(".", "--root", "-r", help="Project root."),
) -> None:
    """Write NEW_VERSION into pyproject.toml, plugin.json and the README badge."""
    with _handle_errors():
        changed = bump_version(Path(root), new_version)
    if not changed:
        rprint(f"[dim]Already at {new_version}[/dim]")
    for name in changed:
        log_ok(f"{name} -> {new_version}")


@app.command()
def notify(
    message: Optional[str] = typer.Argument(None, help="Message text (default: 'Ready for your input')."),
) -> None:
    """Ring the bell and, with Pushover credentials, push a notification."""
    config = _config()
    token, user = pushover_credentials()
    result = send_attention(message, config.notify, token=token, user=user)
    if result.error:
        log_fail(result.error)
        sys.exit(2)
    if result.sent:
        log_ok(f"Notification sent: {result.message}")
    else:
        log_step("Local notification only (set FLIGHTDECK_PUSHOVER_TOKEN and FLIGHTDECK_PUSHOVER_USER to push)")


# ---------------------------------------------------------------------------
# flightdeck logs
# ---------------------------------------------------------------------------

logs_app = typer.Typer(help="Inspect past pipeline runs.")
app.add_typer(logs_app, name="logs")


@logs_app.command("list")
def logs_list(
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace root (default: .flightdeck)."),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of runs to show."),
) -> None:
    """List recent runs (most recent first)."""
    workspace = workspace or _workspace_root(_config())
    summaries = list_runs(workspace, limit=limit)
    if not summaries:
        rprint(f"[dim]No runs found in {workspace}/runs/[/dim]")
        return

    table = Table(title=f"Recent runs ({workspace})", show_header=True, header_style="bold")
    table.add_column("Run ID", style="cyan", no_wrap=True)
    table.add_column("Started", style="dim")
    table.add_column("Task", style="green")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Events", justify="right")

    for s in summaries:
        started = (
            datetime.datetime.fromtimestamp(s.first_event_ts).strftime("%Y-%m-%d %H:%M:%S")
            if s.first_event_ts is not None
            else "—"
        )
        table.add_row(s.run_id, started, s.task_id or "—", s.coding_agent or "—",
                      s.status or "[yellow]incomplete[/yellow]", str(s.event_count))
    Console().print(table)


@logs_app.command("show")
def logs_show(
    run_id: str = typer.Argument(..., help="Run ID to inspect."),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace root (default: .flightdeck)."),
    kinds: str = typer.Option(
        "", "--kinds", "-k",
        help="Comma-separated event kinds to show (e.g. 'gate_result,gate_decision'). Shows all if empty.",
    ),
) -> None:
    """Show the runlog for a specific run (pretty-printed JSON)."""
    workspace = workspace or _workspace_root(_config())
    filter_kinds: Optional[List[str]] = [k.strip() for k in kinds.split(",") if k.strip()] or None
    try:
        events = read_run_events(run_id, workspace, kinds=filter_kinds)
    except FileNotFoundError as e:
        rprint(f"[red]{e}[/red]")
        sys.exit(1)

    console = Console()
    rprint(f"[bold]Run:[/bold] {run_id}  [dim]({len(events)} events)[/dim]")
    for ev in events:
        console.print(Syntax(json.dumps(ev, indent=2, ensure_ascii=False), "json", theme="monokai"))
