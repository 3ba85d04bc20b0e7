"""YAML frontmatter handling for agent, skill and command Markdown files.

Templates are rendered body-only: the frontmatter block is split off first,
kept byte-for-byte, and prepended to the rendered body.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Tuple

import yaml

from flightdeck.domain.errors import FrontmatterError
from flightdeck.domain.models import AgentDefinition

FRONTMATTER_RE = re.compile(r"^---\r?\n(.*?)\r?\n---\r?\n?", re.DOTALL)

_KNOWN_FIELDS = ("name", "description", "model", "color", "tools")


def split_frontmatter(text: str) -> Tuple[Optional[str], str]:
    """Return ``(frontmatter_block, body)``; the block keeps its ``---`` delimiters."""
    m = FRONTMATTER_RE.match(text)
    if not m:
        return None, text
    return m.group(0), text[m.end():]


def extract_frontmatter(text: str) -> Optional[str]:
    """Inner YAML text of the frontmatter block, or None."""
    m = FRONTMATTER_RE.match(text)
    return m.group(1) if m else None


def has_field(frontmatter: str, name: str) -> bool:
    """True if a top-level ``name:`` key starts a line in the frontmatter text."""
    return re.search(rf"^{re.escape(name)}:", frontmatter, re.MULTILINE) is not None


def load_frontmatter(text: str, path: Optional[str] = None) -> Dict[str, Any]:
    raw = extract_frontmatter(text)
    if raw is None:
        raise FrontmatterError("missing YAML frontmatter", path)
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"invalid YAML frontmatter: {exc}", path) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FrontmatterError("frontmatter must be a mapping", path)
    return data


def _normalise_tools(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(t.strip() for t in value.split(",") if t.strip())
    if isinstance(value, (list, tuple)):
        return tuple(str(t).strip() for t in value if str(t).strip())
    raise ValueError(f"tools must be a string or list, got {type(value).__name__}")


def parse_agent_definition(text: str, path: Optional[str] = None) -> AgentDefinition:
    """Parse an agent Markdown file into an AgentDefinition.

    ``name`` and ``description`` are required.  ``tools`` may be a
    comma-separated string (``Read, Grep, Bash``) or a YAML list.
    """
    data = load_frontmatter(text, path)
    for required in ("name", "description"):
        value = data.get(required)
        if not isinstance(value, str) or not value.strip():
            raise FrontmatterError(f"frontmatter field {required!r} is required", path)
    try:
        tools = _normalise_tools(data.get("tools"))
    except ValueError as exc:
        raise FrontmatterError(str(exc), path) from exc
    _, body = split_frontmatter(text)
    model = data.get("model")
    color = data.get("color")
    return AgentDefinition(
        name=data["name"].strip(),
        description=data["description"].strip(),
        model=str(model) if model is not None else None,
        color=str(color) if color is not None else None,
        tools=tools,
        body=body,
        path=path,
        extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
    )
