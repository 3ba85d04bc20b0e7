"""Terminal vocabulary: status cards, 10-block gauges and prefixed log lines.

Everything prints through a rich ``Console``; rich already drops colour for
``NO_COLOR`` and ``TERM=dumb``.  Warnings and failures go to stderr.
"""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.markup import escape

from flightdeck.config.constants import CARD_RULE_WIDTH, GAUGE_WIDTH
from flightdeck.domain.models import PipelineStatus

GAUGES = {
    "LANDED": "█" * GAUGE_WIDTH,
    "ON_APPROACH": "████████░░",
    "IN_FLIGHT": "██████░░░░",
    "TAKING_OFF": "███░░░░░░░",
    "TAXIING": "░" * GAUGE_WIDTH,
    "FAULT": "░░░░!!░░░░",
}

HEAVY_RULE = "━" * CARD_RULE_WIDTH

_console: Optional[Console] = None
_err_console: Optional[Console] = None


def get_console(stderr: bool = False) -> Console:
    global _console, _err_console
    if stderr:
        if _err_console is None:
            _err_console = Console(stderr=True, highlight=False)
        return _err_console
    if _console is None:
        _console = Console(highlight=False)
    return _console


def gauge_label(state: str) -> str:
    return state.replace("_", " ")


def render_gauge(state: str) -> str:
    if state not in GAUGES:
        raise ValueError(f"unknown gauge state {state!r}; expected one of {', '.join(GAUGES)}")
    return f"  {GAUGES[state]}  {gauge_label(state)}"


def card_header(title: str) -> str:
    return f"  {title}\n  {HEAVY_RULE}"


def card_footer() -> str:
    return f"  {HEAVY_RULE}"


def _line(prefix: str, style: str, message: str, console: Optional[Console], stderr: bool) -> None:
    out = console or get_console(stderr=stderr)
    out.print(f"  [{style}]{prefix}[/{style}] {escape(message)}")


def log_step(message: str, console: Optional[Console] = None) -> None:
    _line("▸", "blue", message, console, stderr=False)


def log_ok(message: str, console: Optional[Console] = None) -> None:
    _line("+", "green", message, console, stderr=False)


def log_warn(message: str, console: Optional[Console] = None) -> None:
    _line("~", "yellow", message, console, stderr=True)


def log_fail(message: str, console: Optional[Console] = None) -> None:
    _line("x", "red", message, console, stderr=True)


def worktree_gauge(status) -> str:
    """Gauge state for a ``WorktreeStatus``."""
    if not status.is_valid:
        return "FAULT"
    if status.has_changes or status.behind > 0 or status.dependencies_installed is False:
        return "IN_FLIGHT"
    if status.unmerged_commits > 0:
        return "ON_APPROACH"
    if not status.branch or status.branch != status.base_branch:
        return "TAXIING"
    return "LANDED"


_PIPELINE_GAUGES = {
    PipelineStatus.LANDED: "LANDED",
    PipelineStatus.DECLINED: "ON_APPROACH",
    PipelineStatus.ESCALATED: "FAULT",
    PipelineStatus.FAULT: "FAULT",
}


def pipeline_gauge(status: PipelineStatus) -> str:
    return _PIPELINE_GAUGES[PipelineStatus(status)]
