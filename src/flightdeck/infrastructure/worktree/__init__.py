from .dependencies import InstallPlan, InstallResult, dependency_status, detect_install_plan, install_dependencies
from .manager import (
    CleanupResult,
    WorktreeCreated,
    WorktreeInfo,
    WorktreeStatus,
    cleanup_worktree,
    create_worktree,
    detect_base_branch,
    list_worktrees,
    parse_worktree_porcelain,
    worktree_status,
)
from .naming import WorktreeName, normalize_description, worktree_name

__all__ = [
    "CleanupResult",
    "InstallPlan",
    "InstallResult",
    "WorktreeCreated",
    "WorktreeInfo",
    "WorktreeName",
    "WorktreeStatus",
    "cleanup_worktree",
    "create_worktree",
    "dependency_status",
    "detect_base_branch",
    "detect_install_plan",
    "install_dependencies",
    "list_worktrees",
    "normalize_description",
    "parse_worktree_porcelain",
    "worktree_name",
    "worktree_status",
]
