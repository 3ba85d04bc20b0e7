"""Git worktree lifecycle: create, list, status, cleanup.

Each task gets its own worktree under ``./trees`` on a dedicated branch, so
coding agents never touch the main checkout.  Cleanup is deliberately strict:
the caller must say what happens to the branch, uncommitted work blocks
removal unless forced, and protected branches are never deleted.

Exit codes carried by ``WorktreeError``: 1 generic, 2 safety check, 3 branch
disposition required.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from flightdeck.config.constants import MIN_TIMEOUT_S
from flightdeck.config.schema import WorktreeConfig
from flightdeck.domain.errors import GitError, WorktreeError
from flightdeck.infrastructure.git import (
    branch_exists,
    current_branch,
    git_output,
    is_git_repo,
    repo_toplevel,
    run_git,
    status_porcelain,
)

from .dependencies import InstallResult, dependency_status, install_dependencies
from .naming import worktree_name

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_SAFETY = 2
EXIT_DISPOSITION = 3


@dataclass
class WorktreeCreated:
    path: str
    branch: str
    base_branch: str
    install: Optional[InstallResult] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class WorktreeInfo:
    path: str
    head: Optional[str]
    branch: Optional[str]
    detached: bool = False
    locked: bool = False
    is_main: bool = False
    has_changes: bool = False
    unmerged_commits: int = 0
    last_commit: Optional[str] = None
    last_commit_date: Optional[str] = None


@dataclass
class WorktreeStatus:
    path: str
    exists: bool
    is_valid: bool
    branch: Optional[str] = None
    head: Optional[str] = None
    base_branch: Optional[str] = None
    has_changes: bool = False
    change_count: int = 0
    upstream: Optional[str] = None
    ahead: int = 0
    behind: int = 0
    unmerged_commits: int = 0
    last_commit: Optional[str] = None
    last_commit_date: Optional[str] = None
    last_commit_author: Optional[str] = None
    dependency_type: Optional[str] = None
    dependencies_installed: Optional[bool] = None
    locked: bool = False


@dataclass
class CleanupResult:
    path: str
    branch: Optional[str]
    dry_run: bool
    actions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    removed: bool = False
    branch_deleted: bool = False
    remote_branch_deleted: bool = False


def _warn(warnings: List[str], message: str) -> None:
    logger.warning(message)
    warnings.append(message)


def _absolute_git_path(worktree: Path, flag: str) -> Path:
    p = Path(git_output(["rev-parse", flag], cwd=worktree))
    return p if p.is_absolute() else (worktree / p).resolve()


def detect_base_branch(repo: Path | str, candidates: Sequence[str]) -> str:
    """First of ``candidates`` that exists locally."""
    for name in candidates:
        if branch_exists(repo, name):
            return name
    raise WorktreeError(f"No base branch found (tried {', '.join(candidates)}); pass --base-branch")


def _count(args: Sequence[str], cwd: Path) -> int:
    result = run_git(args, cwd=cwd, check=False)
    try:
        return int(result.stdout.strip()) if result.ok else 0
    except ValueError:
        return 0


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

def create_worktree(
    repo: Path | str,
    task_id: str,
    description: str,
    config: Optional[WorktreeConfig] = None,
    base_branch: Optional[str] = None,
    install: Optional[bool] = None,
) -> WorktreeCreated:
    cfg = config or WorktreeConfig()
    repo = Path(repo).resolve()
    if not is_git_repo(repo):
        raise WorktreeError(f"{repo} is not inside a git repository")
    if f"/{cfg.root}/" in repo.as_posix() + "/":
        raise WorktreeError(
            f"Already inside a worktree ({repo}); run from the main repository root"
        )
    top = repo_toplevel(repo)
    name = worktree_name(top, task_id, description, cfg.root, cfg.branch_prefix)

    if base_branch:
        if not branch_exists(top, base_branch):
            raise WorktreeError(f"Base branch {base_branch!r} does not exist")
        base = base_branch
    else:
        base = detect_base_branch(top, cfg.base_branches)

    if name.path.exists():
        raise WorktreeError(f"Worktree path already exists: {name.path}")
    if branch_exists(top, name.branch):
        raise WorktreeError(
            f"Branch {name.branch!r} already exists; clean up the old worktree or pick a new description"
        )

    created = WorktreeCreated(path=str(name.path), branch=name.branch, base_branch=base)
    prior = run_git(["log", "--oneline", f"--grep={task_id.strip()}", base], cwd=top, check=False)
    if prior.ok and prior.stdout.strip():
        n = len(prior.stdout.strip().splitlines())
        _warn(created.warnings, f"{n} existing commit(s) on {base} mention {task_id.strip()}")

    name.path.parent.mkdir(parents=True, exist_ok=True)
    run_git(["worktree", "add", str(name.path), "-b", name.branch, base], cwd=top)
    logger.info("Created worktree %s on %s from %s", name.path, name.branch, base)

    if install if install is not None else cfg.install_dependencies:
        created.install = install_dependencies(name.path)
        if not created.install.ok:
            _warn(created.warnings, f"Dependency installation failed: {created.install.message}")

    actual = current_branch(name.path)
    if actual != name.branch:
        raise WorktreeError(f"Worktree is on {actual!r}, expected {name.branch!r}")
    if status_porcelain(name.path):
        _warn(created.warnings, "New worktree is not clean (dependency install may have changed tracked files)")
    return created


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------

def parse_worktree_porcelain(text: str) -> List[Dict[str, object]]:
    """Parse ``git worktree list --porcelain`` into one dict per worktree."""
    entries: List[Dict[str, object]] = []
    current: Dict[str, object] = {}
    for line in text.splitlines() + [""]:
        if not line.strip():
            if current:
                entries.append(current)
                current = {}
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            current = {"path": value, "head": None, "branch": None, "detached": False, "locked": False}
        elif key == "HEAD":
            current["head"] = value
        elif key == "branch":
            current["branch"] = value[len("refs/heads/"):] if value.startswith("refs/heads/") else value
        elif key == "detached":
            current["detached"] = True
        elif key == "locked":
            current["locked"] = True
    return entries


def list_worktrees(repo: Path | str, config: Optional[WorktreeConfig] = None) -> List[WorktreeInfo]:
    cfg = config or WorktreeConfig()
    repo = Path(repo).resolve()
    if not is_git_repo(repo):
        raise WorktreeError(f"{repo} is not inside a git repository")
    out = run_git(["worktree", "list", "--porcelain"], cwd=repo).stdout
    try:
        base: Optional[str] = detect_base_branch(repo, cfg.base_branches)
    except WorktreeError:
        base = None
    infos: List[WorktreeInfo] = []
    for i, entry in enumerate(parse_worktree_porcelain(out)):
        path = Path(str(entry["path"]))
        info = WorktreeInfo(
            path=str(path),
            head=entry["head"],
            branch=entry["branch"],
            detached=bool(entry["detached"]),
            locked=bool(entry["locked"]),
            is_main=i == 0,
        )
        if path.is_dir():
            info.has_changes = bool(status_porcelain(path))
            if base and info.branch and info.branch != base:
                info.unmerged_commits = _count(["rev-list", "--count", f"{base}..{info.branch}"], repo)
            log = run_git(["log", "-1", "--format=%s%x1f%cr"], cwd=path, check=False)
            if log.ok and log.stdout.strip():
                info.last_commit, _, info.last_commit_date = log.stdout.strip().partition("\x1f")
        infos.append(info)
    return infos


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

def worktree_status(path: Path | str, config: Optional[WorktreeConfig] = None) -> WorktreeStatus:
    cfg = config or WorktreeConfig()
    path = Path(path).resolve()
    status = WorktreeStatus(path=str(path), exists=path.is_dir(), is_valid=False)
    if not status.exists or not is_git_repo(path):
        return status
    status.is_valid = True
    status.branch = current_branch(path)
    status.head = git_output(["rev-parse", "--short", "HEAD"], cwd=path)
    changes = status_porcelain(path)
    status.change_count = len(changes)
    status.has_changes = bool(changes)

    upstream = run_git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"], cwd=path, check=False)
    if upstream.ok and upstream.stdout.strip():
        status.upstream = upstream.stdout.strip()
        counts = run_git(["rev-list", "--left-right", "--count", "@{upstream}...HEAD"], cwd=path, check=False)
        parts = counts.stdout.split()
        if counts.ok and len(parts) == 2:
            status.behind, status.ahead = int(parts[0]), int(parts[1])

    try:
        status.base_branch = detect_base_branch(path, cfg.base_branches)
    except WorktreeError:
        status.base_branch = None
    if status.base_branch and status.branch and status.branch != status.base_branch:
        status.unmerged_commits = _count(["rev-list", "--count", f"{status.base_branch}..HEAD"], path)

    log = run_git(["log", "-1", "--format=%s%x1f%cr%x1f%an"], cwd=path, check=False)
    if log.ok and log.stdout.strip():
        fields = log.stdout.strip().split("\x1f")
        status.last_commit, status.last_commit_date, status.last_commit_author = (fields + [None, None])[:3]

    status.dependency_type, status.dependencies_installed = dependency_status(path)
    status.locked = (_absolute_git_path(path, "--git-dir") / "locked").exists()
    return status


# ---------------------------------------------------------------------------
# cleanup
# ---------------------------------------------------------------------------

def cleanup_worktree(
    path: Path | str,
    config: Optional[WorktreeConfig] = None,
    disposition: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
    skip_lock_check: bool = False,
    timeout_s: Optional[int] = None,
    network_timeout_s: Optional[int] = None,
) -> CleanupResult:
    """Remove a worktree and deal with its branch.

    ``disposition`` is ``"keep"`` or ``"delete"``; it is required unless the
    branch is protected or HEAD is detached.
    """
    cfg = config or WorktreeConfig()
    if disposition not in (None, "keep", "delete"):
        raise WorktreeError(f"Unknown branch disposition {disposition!r}; use keep or delete")
    remove_timeout = timeout_s if timeout_s is not None else cfg.remove_timeout_s
    net_timeout = network_timeout_s if network_timeout_s is not None else cfg.network_timeout_s
    if remove_timeout < MIN_TIMEOUT_S or net_timeout < MIN_TIMEOUT_S:
        raise WorktreeError(f"Timeouts must be at least {MIN_TIMEOUT_S} seconds")

    wt = Path(path).resolve()
    if not wt.is_dir():
        raise WorktreeError(f"Worktree directory does not exist: {wt}", EXIT_ERROR)
    if not is_git_repo(wt):
        raise WorktreeError(f"{wt} is not a git worktree", EXIT_ERROR)
    project_root = _absolute_git_path(wt, "--git-common-dir").parent
    if wt == project_root.resolve():
        raise WorktreeError("Refusing to remove the main worktree", EXIT_ERROR)

    branch = current_branch(wt)
    protected = branch in cfg.protected_branches if branch else False
    result = CleanupResult(path=str(wt), branch=branch, dry_run=dry_run)

    if branch and not protected and disposition is None:
        raise WorktreeError(
            f"Branch disposition required for non-protected branch {branch!r}: "
            "pass --keep-branch or --delete-branch",
            EXIT_DISPOSITION,
        )

    if not force:
        if status_porcelain(wt):
            raise WorktreeError(
                "Worktree has uncommitted changes; commit or stash them, or pass --force (changes will be lost)",
                EXIT_SAFETY,
            )
        if branch and not protected:
            try:
                base: Optional[str] = detect_base_branch(project_root, cfg.base_branches)
            except WorktreeError:
                base = None
            unmerged = _count(["rev-list", "--count", f"{base}..{branch}"], project_root) if base else 0
            if unmerged:
                msg = f"Branch has {unmerged} unmerged commit(s)"
                if disposition == "delete":
                    msg += "; they will be lost when the branch is deleted"
                _warn(result.warnings, msg)

    if not skip_lock_check and not force:
        if (_absolute_git_path(wt, "--git-dir") / "locked").exists():
            raise WorktreeError(
                f"Worktree {wt} is locked; unlock it (git worktree unlock) or pass --skip-lock-check",
                EXIT_SAFETY,
            )

    remote_exists = False
    if branch and not protected and disposition == "delete":
        try:
            remote = run_git(["ls-remote", "--exit-code", "--heads", "origin", branch], cwd=project_root,
                             check=False, timeout_s=net_timeout)
            remote_exists = remote.ok
        except GitError as exc:
            _warn(result.warnings, f"Could not check remote branch: {exc}")

    result.actions.append(f"Remove worktree {wt}")
    if not branch:
        result.actions.append("Branch disposition: n/a (detached HEAD)")
    elif protected:
        result.actions.append(f"Branch disposition: skip (protected branch {branch!r})")
    elif disposition == "keep":
        result.actions.append(f"Branch disposition: keep {branch!r}")
    else:
        result.actions.append(f"Branch disposition: delete {branch!r} (local)")
        if remote_exists:
            result.actions.append(f"Branch disposition: delete {branch!r} (remote)")
    result.actions.append("Prune stale worktree entries")
    if dry_run:
        return result

    remove_args = ["worktree", "remove", str(wt)] + (["--force"] if force else [])
    run_git(remove_args, cwd=project_root, timeout_s=remove_timeout,
            timeout_hint=f"Large worktrees may need a longer --timeout (current {remove_timeout}s).")
    result.removed = True
    logger.info("Removed worktree %s", wt)

    if branch and not protected and disposition == "delete":
        if run_git(["branch", "-d", branch], cwd=project_root, check=False).ok:
            result.branch_deleted = True
        elif run_git(["branch", "-D", branch], cwd=project_root, check=False).ok:
            result.branch_deleted = True
            _warn(result.warnings, f"Branch {branch!r} was not fully merged; force-deleted")
        else:
            _warn(result.warnings, f"Could not delete branch {branch!r}")
        if remote_exists:
            try:
                pushed = run_git(["push", "origin", "--delete", branch], cwd=project_root,
                                 check=False, timeout_s=net_timeout)
                result.remote_branch_deleted = pushed.ok
                if not pushed.ok:
                    _warn(result.warnings, f"Could not delete remote branch {branch!r}: {pushed.summary}")
            except GitError as exc:
                _warn(result.warnings, f"Remote branch deletion timed out: {exc}")

    run_git(["worktree", "prune"], cwd=project_root, check=False)
    return result
