"""Approver implementations for the user half of dual authorization."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table


class StaticApprover:
    """Always answers the same way (``--yes`` on the CLI, or tests)."""

    def __init__(self, answer: bool):
        self._answer = answer
        self.calls: list = []

    async def approve(self, summary: Dict[str, Any]) -> bool:
        self.calls.append(summary)
        return self._answer


class ConsoleApprover:
    """Shows the gate summary and asks on the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    def _render(self, summary: Dict[str, Any]) -> None:
        table = Table(title=f"Authorize commit for {summary.get('task_id')}", show_header=True)
        table.add_column("Gate")
        table.add_column("Status")
        for agent, status in (summary.get("gates") or {}).items():
            colour = "green" if status == "PASS" else "red"
            table.add_row(agent, f"[{colour}]{status}[/{colour}]")
        self._console.print(table)
        files = summary.get("files_modified") or []
        if files:
            self._console.print("[dim]Files:[/dim] " + ", ".join(files))

    async def approve(self, summary: Dict[str, Any]) -> bool:
        self._render(summary)
        return await asyncio.to_thread(typer.confirm, "Deploy branch-manager to commit these changes?", default=False)
