"""Post-build contracts over generated prompt files.

Every check returns ``Violation`` records instead of raising, so one run
reports every problem.  Prose checks (template residue, leaked undefined
values, required headings) ignore fenced code blocks, where examples are
allowed to show anything.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from flightdeck.application.frontmatter import extract_frontmatter, has_field
from flightdeck.config.schema import CommandContractConfig
from flightdeck.domain.catalog import Catalog

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"^```.*?^```", re.MULTILINE | re.DOTALL)
_HEADING_RE = re.compile(r"^## .+$", re.MULTILINE)

TEMPLATE_RESIDUE = ("{{", "}}", "{%", "%}", "{#", "#}")

_LEAK_PATTERNS = (
    re.compile(r":\s+(undefined|None)\s*$"),
    re.compile(r"=\s*(undefined|None)\s*$"),
    re.compile(r"^\s*(undefined|None)\s*$"),
)

# Built-in role sections: (predicate name on Catalog, heading pattern, label)
ROLE_SECTIONS = (
    ("is_tdd", re.compile(r"TDD"), "TDD protocol section"),
    ("is_coding", re.compile(r"GIT OPERATION PROHIBITIONS", re.IGNORECASE), "git prohibitions section"),
    ("is_review", re.compile(r"Output Requirements", re.IGNORECASE), "output requirements section"),
    ("is_review", re.compile(r"Required JSON", re.IGNORECASE), "required JSON schema section"),
    ("is_gate_capable", re.compile(r"GATE_MODE"), "GATE_MODE section"),
    ("is_planning", re.compile(r"^## Scope"), "scope boundary section"),
)


@dataclass
class Violation:
    path: str
    contract: str
    message: str
    line: Optional[int] = None

    def __str__(self) -> str:
        loc = f"{self.path}:{self.line}" if self.line else self.path
        return f"{loc} [{self.contract}] {self.message}"


@dataclass
class ContractReport:
    violations: List[Violation] = field(default_factory=list)
    checked_files: int = 0

    @property
    def ok(self) -> bool:
        return not self.violations


def strip_code_blocks(content: str) -> str:
    return _CODE_BLOCK_RE.sub("", content)


def _prose_lines(content: str) -> Iterable[tuple]:
    """Yield ``(line_number, line)`` for lines outside fenced code blocks."""
    in_block = False
    for n, line in enumerate(content.splitlines(), start=1):
        if line.startswith("```"):
            in_block = not in_block
            continue
        if not in_block:
            yield n, line


def has_section(content: str, pattern: "re.Pattern[str]") -> bool:
    """True if a level-2 heading outside code blocks matches ``pattern``."""
    headings = _HEADING_RE.findall(strip_code_blocks(content))
    return any(pattern.search(h) for h in headings)


def _rel(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

def check_frontmatter_fields(path: Path, root: Path, required: Sequence[str], contract: str) -> List[Violation]:
    content = path.read_text(encoding="utf-8")
    fm = extract_frontmatter(content)
    rel = _rel(path, root)
    if fm is None:
        return [Violation(rel, contract, "missing YAML frontmatter")]
    return [
        Violation(rel, contract, f"frontmatter lacks required field {name!r}")
        for name in required
        if not has_field(fm, name)
    ]


def check_template_residue(path: Path, root: Path) -> List[Violation]:
    rel = _rel(path, root)
    out = []
    for n, line in _prose_lines(path.read_text(encoding="utf-8")):
        for tag in TEMPLATE_RESIDUE:
            if tag in line:
                out.append(Violation(rel, "template-residue", f"unrendered template tag {tag!r}", n))
                break
    return out


def check_undefined_leaks(path: Path, root: Path) -> List[Violation]:
    rel = _rel(path, root)
    out = []
    for n, line in _prose_lines(path.read_text(encoding="utf-8")):
        if any(p.search(line) for p in _LEAK_PATTERNS):
            out.append(Violation(rel, "undefined-leak", f"leaked empty value: {line.strip()!r}", n))
    return out


def check_hooks_json(path: Path, root: Path) -> List[Violation]:
    """hooks.json: {"hooks": {Category: [{"matcher": str, "hooks": [{"type": str, "command": str}]}]}}."""
    rel = _rel(path, root)
    contract = "hooks-json"
    if not path.is_file():
        return [Violation(rel, contract, "hooks.json not found")]
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        return [Violation(rel, contract, f"invalid JSON: {exc.msg}", exc.lineno)]
    hooks = data.get("hooks") if isinstance(data, dict) else None
    if not isinstance(hooks, dict):
        return [Violation(rel, contract, "top-level 'hooks' object is required")]
    out: List[Violation] = []
    for category, entries in hooks.items():
        if not isinstance(entries, list):
            out.append(Violation(rel, contract, f"{category}: must be a list"))
            continue
        for i, entry in enumerate(entries):
            where = f"{category}[{i}]"
            if not isinstance(entry, dict):
                out.append(Violation(rel, contract, f"{where}: must be an object"))
                continue
            if not isinstance(entry.get("matcher"), str):
                out.append(Violation(rel, contract, f"{where}: 'matcher' must be a string"))
            inner = entry.get("hooks")
            if not isinstance(inner, list):
                out.append(Violation(rel, contract, f"{where}: 'hooks' must be a list"))
                continue
            for j, hook in enumerate(inner):
                if not isinstance(hook, dict):
                    out.append(Violation(rel, contract, f"{where}.hooks[{j}]: must be an object"))
                    continue
                for key in ("type", "command"):
                    if not isinstance(hook.get(key), str):
                        out.append(Violation(rel, contract, f"{where}.hooks[{j}]: {key!r} must be a string"))
    return out


def check_agent_sections(
    agents_dir: Path,
    root: Path,
    catalog: Catalog,
    extra_sections: Optional[Mapping[str, Sequence[str]]] = None,
    require_all: bool = True,
) -> List[Violation]:
    out: List[Violation] = []
    extra = extra_sections or {}
    for name in catalog.all_agents():
        path = agents_dir / f"{name}.md"
        if not path.is_file():
            if require_all:
                out.append(Violation(_rel(path, root), "agent-sections", f"no generated file for agent {name!r}"))
            continue
        content = path.read_text(encoding="utf-8")
        required = [
            (pattern, label)
            for predicate, pattern, label in ROLE_SECTIONS
            if getattr(catalog, predicate)(name)
        ]
        for key in (catalog.agent_type(name), name):
            required.extend((re.compile(p, re.IGNORECASE), f"section matching {p!r}") for p in extra.get(key, ()))
        for pattern, label in required:
            if not has_section(content, pattern):
                out.append(Violation(_rel(path, root), "agent-sections", f"missing {label}"))
    return out


def check_catalog_consistency(catalog: Catalog) -> List[Violation]:
    return [
        Violation("<catalog>", "catalog", f"TDD agent {name!r} is not a coding agent")
        for name in catalog.tdd_agents
        if not catalog.is_coding(name)
    ]


def check_commands(
    commands_dir: Path,
    root: Path,
    contracts: Mapping[str, CommandContractConfig],
) -> List[Violation]:
    out: List[Violation] = []
    for path in sorted(commands_dir.glob("*.md")):
        out.extend(check_frontmatter_fields(path, root, ("description",), "command-frontmatter"))
    for name, contract in contracts.items():
        path = commands_dir / f"{name}.md"
        rel = _rel(path, root)
        if not path.is_file():
            out.append(Violation(rel, "command-sections", f"no generated file for command {name!r}"))
            continue
        content = path.read_text(encoding="utf-8")
        for section in contract.sections:
            if not has_section(content, re.compile(section, re.IGNORECASE)):
                out.append(Violation(rel, "command-sections", f"missing section matching {section!r}"))
        for text in contract.required_text:
            if text not in content:
                out.append(Violation(rel, "command-sections", f"missing required text {text!r}"))
    return out


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def run_contracts(
    root: Path,
    catalog: Catalog,
    directory_map: Optional[Mapping[str, str]] = None,
    command_contracts: Optional[Mapping[str, CommandContractConfig]] = None,
    agent_sections: Optional[Mapping[str, Sequence[str]]] = None,
    require_all_agents: bool = True,
) -> ContractReport:
    """Run every contract against the generated tree under ``root``."""
    root = Path(root)
    dirs: Dict[str, str] = dict(directory_map or {"agents": "agents", "skills": "skills", "commands": "commands", "hooks": "hooks"})
    agents_dir = root / dirs.get("agents", "agents")
    skills_dir = root / dirs.get("skills", "skills")
    commands_dir = root / dirs.get("commands", "commands")
    hooks_dir = root / dirs.get("hooks", "hooks")

    report = ContractReport()
    report.violations.extend(check_catalog_consistency(catalog))

    for path in sorted(agents_dir.rglob("*.md")) if agents_dir.is_dir() else []:
        report.violations.extend(check_frontmatter_fields(path, root, ("name", "description"), "agent-frontmatter"))
    for path in sorted(skills_dir.rglob("SKILL.md")) if skills_dir.is_dir() else []:
        report.violations.extend(check_frontmatter_fields(path, root, ("name",), "skill-frontmatter"))

    generated: List[Path] = []
    for d in (agents_dir, skills_dir, commands_dir):
        if d.is_dir():
            generated.extend(sorted(d.rglob("*.md")))
    for path in generated:
        report.violations.extend(check_template_residue(path, root))
        report.violations.extend(check_undefined_leaks(path, root))
    report.checked_files = len(generated)

    report.violations.extend(check_hooks_json(hooks_dir / "hooks.json", root))
    report.violations.extend(
        check_agent_sections(agents_dir, root, catalog, agent_sections, require_all_agents)
    )
    if commands_dir.is_dir():
        report.violations.extend(check_commands(commands_dir, root, command_contracts or {}))

    logger.debug("Contracts: %d files, %d violations", report.checked_files, len(report.violations))
    return report
