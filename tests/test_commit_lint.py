"""Tests for conventional-commit linting with Ref footers."""
from __future__ import annotations

import pytest

from flightdeck.application.commit_lint import lint_commit, parse_commit
from flightdeck.config.schema import CommitLintConfig

GOOD = "feat(auth): add login form\n\nValidates the email field.\n\nRef: proj-a1b2\n"


def test_parse_commit():
    msg = parse_commit(GOOD)
    assert msg.type == "feat"
    assert msg.scope == "auth"
    assert msg.subject == "add login form"
    assert msg.body == "Validates the email field."
    assert msg.footers == {"Ref": "proj-a1b2"}
    assert not msg.breaking


def test_parse_breaking_markers():
    assert parse_commit("feat!: drop python 3.10\n\nRef: p-1").breaking
    msg = parse_commit("refactor: new config\n\nBREAKING CHANGE: keys renamed\nRef: p-1")
    assert msg.breaking
    assert msg.footers["BREAKING CHANGE"] == "keys renamed"


def test_good_commit_passes():
    result = lint_commit(GOOD)
    assert result.ok, result.errors


def test_missing_ref_footer():
    result = lint_commit("fix: handle empty page")
    assert not result.ok
    assert "work-tracking reference" in result.errors[0]


def test_ref_must_be_on_its_own_line():
    assert not lint_commit("fix: x\n\nSee Ref: proj-a1b2 for details").ok


def test_chore_is_exempt():
    assert lint_commit("chore: bump dependencies").ok


def test_exemptions_are_configurable():
    cfg = CommitLintConfig(exempt_types=[])
    result = lint_commit("chore: bump dependencies", cfg)
    assert "exempt types: none" in result.errors[0]


def test_bad_header():
    result = lint_commit("Updated some stuff\n\nRef: proj-1")
    assert len(result.errors) == 1
    assert "must look like 'type(scope): subject'" in result.errors[0]


def test_unknown_type():
    result = lint_commit("wip: half done\n\nRef: proj-1")
    assert result.errors == ["Type 'wip' is not one of: " + ", ".join(CommitLintConfig().allowed_types)]


def test_subject_period():
    assert lint_commit("docs: fix typo.\n\nRef: proj-1").errors == ["Subject must not end with a period"]


def test_header_too_long():
    header = "fix: " + "x" * 120
    errors = lint_commit(f"{header}\n\nRef: proj-1").errors
    assert errors == [f"Header is {len(header)} characters; maximum is 100"]


@pytest.mark.parametrize("raw", [
    "Merge branch 'feature/T-1' into main",
    'Revert "feat: add login form"',
    "fixup! feat: add login form",
    "squash! fix: handle empty page",
])
def test_git_generated_messages_are_ignored(raw):
    result = lint_commit(raw)
    assert result.ok and result.ignored


def test_empty_message():
    assert lint_commit("# Please enter the commit message\n\n").errors == ["Commit message is empty"]


def test_comments_and_scissors_are_stripped():
    raw = (
        "fix: handle empty page\n"
        "# comment from git\n\n"
        "Ref: proj-a1b2\n"
        "# ------------------------ >8 ------------------------\n"
        "diff --git a/x b/x\n"
    )
    assert lint_commit(raw).ok
