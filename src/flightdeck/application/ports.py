"""Ports (abstract interfaces) used by the application layer.

Each port is a ``Protocol`` so the application depends only on the *shape* of the
collaborator, not on a concrete implementation.  Infrastructure adapters must satisfy
these shapes; the application never imports from infrastructure.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from flightdeck.domain import AgentDefinition, LLMResponse, RunId


class ChatClient(Protocol):
    """LLM chat interface (OpenAI chat-completions API)."""

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        *,
        temperature: float = 0.1,
        top_p: float = 0.9,
        max_tokens: int = 4096,
    ) -> LLMResponse: ...


class AgentRegistry(Protocol):
    """Look up agent definitions by name."""

    def list(self) -> List[str]: ...

    def get(self, name: str) -> AgentDefinition:
        """Return the definition; raise FlightdeckError if the agent does not exist."""
        ...


class AgentRunner(Protocol):
    """Deploy one agent with a JSON request and return its final message text.

    The request always carries ``role`` ("coding", "gate", "branch-manager"),
    ``task_id`` and ``description``; coding retries add ``blocking_issues``.
    Implementations may raise; the pipeline treats a raised exception as a
    failed deployment of that agent.
    """

    async def run(self, agent_name: str, request: Dict[str, Any]) -> str: ...


class Approver(Protocol):
    """User authorization before branch-manager commits."""

    async def approve(self, summary: Dict[str, Any]) -> bool: ...


class RunRepository(Protocol):
    """Create runs and append run-log events."""

    def create_run(self) -> tuple[RunId, str, str]:
        """Create a new run directory; return (RunId, run_dir path, workspace path)."""
        ...

    def append_event(
        self,
        run_id: RunId,
        kind: str,
        payload: Dict[str, Any],
        step: Optional[str] = None,
    ) -> None: ...
