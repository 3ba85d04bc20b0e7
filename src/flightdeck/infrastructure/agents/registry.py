"""Agent registry over a directory of generated agent Markdown files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from flightdeck.application.frontmatter import parse_agent_definition
from flightdeck.domain import AgentDefinition, FlightdeckError

logger = logging.getLogger(__name__)


class FileAgentRegistry:
    """Reads ``<agents_dir>/<name>.md`` on demand and caches parsed definitions."""

    def __init__(self, agents_dir: str | Path):
        self._dir = Path(agents_dir)
        self._cache: Dict[str, AgentDefinition] = {}

    @property
    def agents_dir(self) -> Path:
        return self._dir

    def list(self) -> List[str]:
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob("*.md"))

    def get(self, name: str) -> AgentDefinition:
        if name in self._cache:
            return self._cache[name]
        path = self._dir / f"{name}.md"
        if not path.is_file():
            raise FlightdeckError(
                f"Agent {name!r} not found in {self._dir}. Available: {', '.join(self.list()) or '(none)'}"
            )
        definition = parse_agent_definition(path.read_text(encoding="utf-8"), str(path))
        if definition.name != name:
            logger.warning("Agent file %s declares name %r", path, definition.name)
        logger.debug("Loaded agent %s (model=%s, tools=%s)", name, definition.model, ",".join(definition.tools))
        self._cache[name] = definition
        return definition
