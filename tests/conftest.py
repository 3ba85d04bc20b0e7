"""Pytest fixtures and helpers for flightdeck tests."""
from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

# Repo root (parent of tests/)
REPO_ROOT = Path(__file__).resolve().parent.parent


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return stripped stdout; fails the test on error."""
    p = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True)
    assert p.returncode == 0, f"git {' '.join(args)} failed: {p.stderr}"
    return p.stdout.strip()


@pytest.fixture(autouse=True)
def _reset_config_cache(monkeypatch):
    """Clear the load_config LRU cache and reset _env before (and after) every test.

    Each test gets a fresh config load, so setting FLIGHTDECK_CONFIG_PATH with
    monkeypatch works without tests bleeding into each other.
    """
    from flightdeck.config import loader as config_loader
    for var in ("FLIGHTDECK_CONFIG_PATH", "FLIGHTDECK_WORKSPACE",
                "FLIGHTDECK_PUSHOVER_TOKEN", "FLIGHTDECK_PUSHOVER_USER"):
        monkeypatch.delenv(var, raising=False)
    config_loader.load_config.cache_clear()
    config_loader._env = None
    yield
    config_loader.load_config.cache_clear()
    config_loader._env = None


@pytest.fixture
def git_repo(tmp_path, monkeypatch) -> Path:
    """A real repository on ``main`` with one commit; skips when git is missing."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    for key, value in (("GIT_AUTHOR_NAME", "Test"), ("GIT_AUTHOR_EMAIL", "test@example.com"),
                       ("GIT_COMMITTER_NAME", "Test"), ("GIT_COMMITTER_EMAIL", "test@example.com")):
        monkeypatch.setenv(key, value)
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "main")
    git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("# demo\n", encoding="utf-8")
    git(repo, "add", "README.md")
    git(repo, "commit", "-q", "-m", "chore: initial commit")
    return repo.resolve()
