"""Tests for post-build contracts over generated prompt files."""
from __future__ import annotations

import json
import re
from pathlib import Path

import pytest

from flightdeck.application.contracts import (
    check_agent_sections,
    check_catalog_consistency,
    check_commands,
    check_frontmatter_fields,
    check_hooks_json,
    check_template_residue,
    check_undefined_leaks,
    has_section,
    run_contracts,
    strip_code_blocks,
)
from flightdeck.config.schema import CommandContractConfig
from flightdeck.domain.catalog import Catalog


CATALOG = Catalog.from_mapping(
    {"coding": ["bug-fixer"], "review": ["code-reviewer"], "planning": ["workflow-planner"]},
    tdd_agents=["bug-fixer"],
    gate_capable_agents=["code-reviewer"],
)

BUG_FIXER = """---
name: bug-fixer
description: Fixes bugs
---
## TDD Protocol
Red, green, refactor.

## GIT OPERATION PROHIBITIONS
Never commit.
"""

CODE_REVIEWER = """---
name: code-reviewer
description: Reviews code
---
## Output Requirements
JSON only.

## Required JSON Schema
```json
{"gate_status": "PASS"}
```

## GATE_MODE
Return PASS or FAIL.
"""

PLANNER = """---
name: workflow-planner
description: Plans work
---
## Scope Boundaries
Plans only.
"""

HOOKS = {"hooks": {"Stop": [{"matcher": "", "hooks": [{"type": "command", "command": "notify.sh"}]}]}}


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def generated(tmp_path) -> Path:
    _write(tmp_path / "agents" / "bug-fixer.md", BUG_FIXER)
    _write(tmp_path / "agents" / "code-reviewer.md", CODE_REVIEWER)
    _write(tmp_path / "agents" / "workflow-planner.md", PLANNER)
    _write(tmp_path / "skills" / "worktree-manager" / "SKILL.md", "---\nname: worktree-manager\n---\nUse it.\n")
    _write(tmp_path / "commands" / "takeoff.md", "---\ndescription: Start a task\n---\n## Steps\nLANDED\n")
    _write(tmp_path / "hooks" / "hooks.json", json.dumps(HOOKS))
    return tmp_path


def test_clean_tree_passes(generated):
    report = run_contracts(generated, CATALOG)
    assert report.ok, [str(v) for v in report.violations]
    assert report.checked_files == 5


def test_helpers_ignore_code_blocks():
    content = "## Real\n```\n## Fake\n```\n"
    assert "Fake" not in strip_code_blocks(content)
    assert has_section(content, re.compile("Real"))
    assert not has_section(content, re.compile("Fake"))


def test_missing_frontmatter_field(tmp_path):
    path = _write(tmp_path / "agents" / "x.md", "---\nname: x\n---\nbody\n")
    violations = check_frontmatter_fields(path, tmp_path, ("name", "description"), "agent-frontmatter")
    assert len(violations) == 1
    assert "description" in violations[0].message
    assert violations[0].path == "agents/x.md"


def test_missing_frontmatter_block(tmp_path):
    path = _write(tmp_path / "x.md", "no frontmatter\n")
    assert check_frontmatter_fields(path, tmp_path, ("name",), "c")[0].message == "missing YAML frontmatter"


def test_template_residue_outside_code_blocks_only(tmp_path):
    path = _write(tmp_path / "a.md", "ok\n{{ AGENT_NAME }}\n```\n{% raw %}\n```\n")
    violations = check_template_residue(path, tmp_path)
    assert [v.line for v in violations] == [2]


def test_undefined_leaks(tmp_path):
    path = _write(tmp_path / "a.md", "Agent: None\nType = undefined\nfine: value\n```\nx: None\n```\n")
    violations = check_undefined_leaks(path, tmp_path)
    assert [v.line for v in violations] == [1, 2]


def test_hooks_json_missing(tmp_path):
    assert "not found" in check_hooks_json(tmp_path / "hooks" / "hooks.json", tmp_path)[0].message


def test_hooks_json_invalid(tmp_path):
    path = _write(tmp_path / "hooks.json", "{not json")
    assert "invalid JSON" in check_hooks_json(path, tmp_path)[0].message


def test_hooks_json_structure(tmp_path):
    path = _write(tmp_path / "hooks.json", json.dumps({
        "hooks": {
            "Stop": [{"matcher": 1, "hooks": [{"type": "command"}]}],
            "PreToolUse": "oops",
        }
    }))
    messages = [v.message for v in check_hooks_json(path, tmp_path)]
    assert "Stop[0]: 'matcher' must be a string" in messages
    assert "Stop[0].hooks[0]: 'command' must be a string" in messages
    assert "PreToolUse: must be a list" in messages


def test_agent_sections_role_rules(generated):
    _write(generated / "agents" / "bug-fixer.md", "---\nname: bug-fixer\ndescription: d\n---\n## TDD\n")
    _write(generated / "agents" / "code-reviewer.md", CODE_REVIEWER.replace("## GATE_MODE", "GATE_MODE"))
    messages = {(Path(v.path).name, v.message) for v in
                check_agent_sections(generated / "agents", generated, CATALOG)}
    assert ("bug-fixer.md", "missing git prohibitions section") in messages
    assert ("code-reviewer.md", "missing GATE_MODE section") in messages
    assert len(messages) == 2


def test_agent_sections_missing_file(generated):
    (generated / "agents" / "workflow-planner.md").unlink()
    violations = check_agent_sections(generated / "agents", generated, CATALOG)
    assert "no generated file" in violations[0].message
    assert check_agent_sections(generated / "agents", generated, CATALOG, require_all=False) == []


def test_agent_sections_extra_by_category_and_name(generated):
    extra = {"planning": ["Deliverables"], "bug-fixer": ["Regression"]}
    violations = check_agent_sections(generated / "agents", generated, CATALOG, extra)
    paths = sorted(Path(v.path).name for v in violations)
    assert paths == ["bug-fixer.md", "workflow-planner.md"]


def test_catalog_consistency():
    bad = Catalog.from_mapping({"coding": ["a"], "review": ["b"]}, tdd_agents=["b"])
    assert "not a coding agent" in check_catalog_consistency(bad)[0].message
    assert check_catalog_consistency(CATALOG) == []


def test_commands_contracts(generated):
    contracts = {
        "takeoff": CommandContractConfig(sections=["Steps", "Rollback"], required_text=["LANDED", "FAULT"]),
        "land": CommandContractConfig(),
    }
    messages = [v.message for v in check_commands(generated / "commands", generated, contracts)]
    assert "missing section matching 'Rollback'" in messages
    assert "missing required text 'FAULT'" in messages
    assert "no generated file for command 'land'" in messages
    assert len(messages) == 3


def test_command_without_description(generated):
    _write(generated / "commands" / "bad.md", "---\nname: bad\n---\n")
    report = run_contracts(generated, CATALOG)
    assert [v.contract for v in report.violations] == ["command-frontmatter"]


def test_run_contracts_collects_everything(generated):
    (generated / "hooks" / "hooks.json").unlink()
    _write(generated / "skills" / "broken" / "SKILL.md", "no frontmatter {{ x }}\n")
    report = run_contracts(generated, CATALOG)
    contracts = sorted(v.contract for v in report.violations)
    assert contracts == ["hooks-json", "skill-frontmatter", "template-residue"]
    assert not report.ok
