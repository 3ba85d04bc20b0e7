"""Domain and application errors."""

from __future__ import annotations

from typing import Optional, Sequence


class FlightdeckError(Exception):
    """Base for flightdeck errors. ``exit_code`` is what the CLI exits with."""
    exit_code = 1


class ConfigError(FlightdeckError):
    """The config file cannot be read, parsed or validated."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Invalid config {path}: {message}")


class FrontmatterError(FlightdeckError):
    """YAML frontmatter is missing, malformed, or lacks a required field."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class BuildError(FlightdeckError):
    """Template build cannot proceed (unknown type, unclassified agent)."""
    pass


class ReportError(FlightdeckError):
    """Agent output does not contain a valid report for its role."""

    def __init__(self, agent: str, message: str):
        self.agent = agent
        super().__init__(f"{agent}: {message}")


class GateError(FlightdeckError):
    """Quality gate configuration or sequencing problem."""
    pass


class AuthorizationError(FlightdeckError):
    """Commit attempted without both quality gate and user authorization."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__("Commit not authorized: " + "; ".join(self.missing))


class WorktreeError(FlightdeckError):
    """Worktree operation refused or failed.

    Exit codes: 1 generic failure, 2 safety check failed (uncommitted changes,
    locked worktree), 3 branch disposition required.
    """

    def __init__(self, message: str, exit_code: int = 1):
        self.exit_code = exit_code
        super().__init__(message)


class GitError(FlightdeckError):
    """A git command exited non-zero or timed out."""

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = "", hint: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        self.hint = hint
        msg = f"`{' '.join(self.cmd)}` failed (exit {returncode})"
        if stderr.strip():
            msg += f": {stderr.strip()}"
        if hint:
            msg += f"\n{hint}"
        super().__init__(msg)


class ReleaseError(FlightdeckError):
    """A version source is missing or unreadable."""
    pass
