"""Subprocess wrapper for git (and the occasional installer command).

``CommandResult`` keeps the full output for parsing; only the text that goes
into error messages and warnings (``summary``, ``GitError``) is truncated.
``check=True`` turns a non-zero exit into ``GitError``; a timeout or missing
executable always raises.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from flightdeck.config.constants import GIT_DEFAULT_TIMEOUT_S, MAX_COMMAND_OUTPUT_CHARS
from flightdeck.domain.errors import GitError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    cmd: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def display(self) -> str:
        return " ".join(shlex.quote(x) for x in self.cmd)

    @property
    def summary(self) -> str:
        """Truncated stderr (or stdout) for messages."""
        return _truncate((self.stderr or self.stdout).strip())


def _truncate(s: str, limit: int = MAX_COMMAND_OUTPUT_CHARS) -> str:
    if len(s) <= limit:
        return s
    return s[:limit] + f"\n... [truncated {len(s) - limit} chars]"


def run_cmd(
    cmd: Sequence[str],
    cwd: Optional[Path | str] = None,
    timeout_s: float = GIT_DEFAULT_TIMEOUT_S,
    check: bool = False,
    timeout_hint: str = "",
) -> CommandResult:
    if not cmd:
        raise ValueError("Empty command")
    cmd = list(cmd)
    logger.debug("run %s (cwd=%s)", " ".join(cmd), cwd)
    try:
        p = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired as exc:
        raise GitError(cmd, -1, f"timed out after {timeout_s:g}s", hint=timeout_hint) from exc
    except FileNotFoundError as exc:
        raise GitError(cmd, 127, f"{cmd[0]}: command not found") from exc
    result = CommandResult(cmd=cmd, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
    if check and not result.ok:
        raise GitError(cmd, result.returncode, result.summary)
    return result


def run_git(
    args: Sequence[str],
    cwd: Optional[Path | str] = None,
    timeout_s: float = GIT_DEFAULT_TIMEOUT_S,
    check: bool = True,
    timeout_hint: str = "",
) -> CommandResult:
    return run_cmd(["git", *args], cwd=cwd, timeout_s=timeout_s, check=check, timeout_hint=timeout_hint)


def git_output(args: Sequence[str], cwd: Optional[Path | str] = None, timeout_s: float = GIT_DEFAULT_TIMEOUT_S) -> str:
    """Stripped stdout of a git command that must succeed."""
    return run_git(args, cwd=cwd, timeout_s=timeout_s).stdout.strip()


def git_ok(args: Sequence[str], cwd: Optional[Path | str] = None) -> bool:
    return run_git(args, cwd=cwd, check=False).ok


def is_git_repo(path: Path | str) -> bool:
    return git_ok(["rev-parse", "--git-dir"], cwd=path)


def repo_toplevel(path: Path | str) -> Path:
    return Path(git_output(["rev-parse", "--show-toplevel"], cwd=path))


def branch_exists(repo: Path | str, branch: str) -> bool:
    return git_ok(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=repo)


def current_branch(path: Path | str) -> Optional[str]:
    """Checked-out branch name, or None when HEAD is detached."""
    result = run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=path, check=False)
    if not result.ok:
        return None
    return result.stdout.strip() or None


def status_porcelain(path: Path | str) -> List[str]:
    out = run_git(["status", "--porcelain"], cwd=path).stdout
    return [line for line in out.splitlines() if line.strip()]
