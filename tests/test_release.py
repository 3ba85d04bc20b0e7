"""Tests for release version checks and bumping."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from flightdeck.application.release import (
    PLUGIN_JSON,
    PYPROJECT,
    README,
    bump_version,
    collect_versions,
    format_mismatch_report,
    majority_version,
    read_badge_version,
    read_git_tag,
    read_plugin_version,
    read_pyproject_version,
    verify_release,
)
from flightdeck.domain.errors import GitError, ReleaseError


def _project(root: Path, pyproject="1.2.0", plugin="1.2.0", badge="1.2.0") -> Path:
    (root / PYPROJECT).write_text(f'[project]\nname = "demo"\nversion = "{pyproject}"\n', encoding="utf-8")
    (root / ".claude-plugin").mkdir(exist_ok=True)
    (root / PLUGIN_JSON).write_text(json.dumps({"name": "demo", "version": plugin}), encoding="utf-8")
    (root / README).write_text(
        f"# demo\n\n![Version](https://img.shields.io/badge/version-{badge}-orange)\n", encoding="utf-8"
    )
    return root


def _tag(value):
    def run(args):
        assert list(args) == ["git", "describe", "--tags", "--abbrev=0"]
        if isinstance(value, Exception):
            raise value
        return value + "\n"
    return run


def test_collect_versions(tmp_path):
    assert collect_versions(_project(tmp_path)) == {PYPROJECT: "1.2.0", PLUGIN_JSON: "1.2.0", README: "1.2.0"}


def test_read_badge_version():
    assert read_badge_version("badge/version-2.0.0-rc.1-orange") == "2.0.0-rc.1"
    assert read_badge_version("no badge") is None


def test_read_git_tag_strips_v():
    assert read_git_tag(_tag("v1.2.0")) == "1.2.0"
    assert read_git_tag(_tag("1.2.0")) == "1.2.0"


def test_read_git_tag_without_tags():
    with pytest.raises(ReleaseError, match="No git tag found"):
        read_git_tag(_tag(GitError(["git", "describe"], 128, "No names found")))


def test_majority_version_ties_go_to_first():
    assert majority_version({"a": "1.0.0", "b": "2.0.0", "c": "2.0.0"}) == "2.0.0"
    assert majority_version({"a": "1.0.0", "b": "2.0.0"}) == "1.0.0"


def test_mismatch_report():
    report = format_mismatch_report({PYPROJECT: "1.2.0", PLUGIN_JSON: "1.1.0", README: "1.2.0"})
    assert "[MISMATCH]  .claude-plugin/plugin.json: 1.1.0" in report
    assert "[OK]" in report
    assert report.endswith("Expected all files to report version: 1.2.0")
    assert format_mismatch_report({PYPROJECT: "1.2.0", README: "1.2.0"}) == ""


def test_verify_release_passes(tmp_path):
    check = verify_release(_project(tmp_path), runner=_tag("v1.2.0"))
    assert check.ok
    assert check.version == "1.2.0"
    assert check.warnings == []


def test_verify_release_missing_file(tmp_path):
    _project(tmp_path)
    (tmp_path / PLUGIN_JSON).unlink()
    check = verify_release(tmp_path, runner=_tag("v1.2.0"))
    assert not check.ok
    assert check.message.startswith("release verify failed: Missing required file: .claude-plugin/plugin.json")


def test_verify_release_missing_badge(tmp_path):
    _project(tmp_path)
    (tmp_path / README).write_text("# demo\n", encoding="utf-8")
    assert "Version badge not found" in verify_release(tmp_path, runner=_tag("v1.2.0")).message


def test_verify_release_file_mismatch(tmp_path):
    check = verify_release(_project(tmp_path, badge="1.1.9"), runner=_tag("v1.2.0"))
    assert not check.ok
    assert "[MISMATCH]  README.md: 1.1.9" in check.message


def test_verify_release_tag_mismatch(tmp_path):
    check = verify_release(_project(tmp_path), runner=_tag("v1.1.0"))
    assert not check.ok
    assert "git tag mismatch" in check.message
    assert "Expected git tag v1.2.0" in check.message


def test_verify_release_without_tag_warns(tmp_path):
    check = verify_release(_project(tmp_path), runner=_tag(OSError("git not found")))
    assert check.ok
    assert check.message.endswith("(git tag unavailable)")
    assert len(check.warnings) == 1


def test_bump_version(tmp_path):
    _project(tmp_path)
    changed = bump_version(tmp_path, "1.3.0")
    assert changed == [PYPROJECT, PLUGIN_JSON, README]
    assert collect_versions(tmp_path) == {PYPROJECT: "1.3.0", PLUGIN_JSON: "1.3.0", README: "1.3.0"}
    assert 'name = "demo"' in (tmp_path / PYPROJECT).read_text(encoding="utf-8")


def test_bump_only_touches_stale_files(tmp_path):
    _project(tmp_path, badge="1.1.0")
    assert bump_version(tmp_path, "1.2.0") == [README]


def test_bump_rejects_non_semver(tmp_path):
    _project(tmp_path)
    with pytest.raises(ReleaseError, match="not a semantic version"):
        bump_version(tmp_path, "v1.3")


def test_bump_updates_project_table_not_earlier_version_keys(tmp_path):
    _project(tmp_path)
    (tmp_path / PYPROJECT).write_text(
        '[tool.bumpversion]\nversion = "0.0.1"\n\n[project]\nname = "demo"\nversion = "1.2.0"\n\n'
        '[tool.other]\nversion = "9.9.9"\n',
        encoding="utf-8",
    )
    bump_version(tmp_path, "1.3.0")
    text = (tmp_path / PYPROJECT).read_text(encoding="utf-8")
    assert collect_versions(tmp_path)[PYPROJECT] == "1.3.0"
    assert 'version = "0.0.1"' in text
    assert 'version = "9.9.9"' in text


def test_bump_without_project_version_line_raises(tmp_path):
    _project(tmp_path)
    (tmp_path / PYPROJECT).write_text('[project]\nname = "demo"\n', encoding="utf-8")
    with pytest.raises(ReleaseError, match=r"\[project\]"):
        bump_version(tmp_path, "1.3.0")


def test_bump_writes_nothing_when_badge_missing(tmp_path):
    _project(tmp_path)
    (tmp_path / README).write_text("# demo\n", encoding="utf-8")
    with pytest.raises(ReleaseError, match="Version badge not found"):
        bump_version(tmp_path, "1.3.0")
    assert read_pyproject_version(tmp_path) == "1.2.0"
    assert read_plugin_version(tmp_path) == "1.2.0"


def test_bump_corrupt_plugin_json_is_release_error(tmp_path):
    _project(tmp_path)
    (tmp_path / PLUGIN_JSON).write_text("{not json", encoding="utf-8")
    with pytest.raises(ReleaseError, match="not valid JSON"):
        bump_version(tmp_path, "1.3.0")
    assert read_pyproject_version(tmp_path) == "1.2.0"
