"""Attention notifications: terminal bell plus an optional Pushover push.

A notification never breaks a pipeline: HTTP and network errors are logged
and reported in the returned ``NotifyResult``.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import httpx

from flightdeck.config.schema import NotifyConfig
from flightdeck.domain.errors import GitError
from flightdeck.infrastructure.git import run_git

logger = logging.getLogger(__name__)

FALLBACK_CONTEXT = "flightdeck"
_GENERIC_DIRS = {"workspace", "app", "src"}


@dataclass
class NotifyResult:
    message: str
    sent: bool
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _git_context(cwd: Path) -> str:
    try:
        if not run_git(["rev-parse", "--is-inside-work-tree"], cwd=cwd, check=False).ok:
            return ""
        head = run_git(["symbolic-ref", "--short", "HEAD"], cwd=cwd, check=False)
        if not head.ok:
            head = run_git(["rev-parse", "--short", "HEAD"], cwd=cwd, check=False)
        branch = head.stdout.strip() if head.ok else ""
        remote = run_git(["remote", "get-url", "origin"], cwd=cwd, check=False)
    except GitError:
        return ""
    name = ""
    if remote.ok and remote.stdout.strip():
        name = remote.stdout.strip().rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        if name.endswith(".git"):
            name = name[: -len(".git")]
    if name and branch:
        return f"{name} ({branch})"
    if name:
        return name
    if branch:
        return f"branch: {branch}"
    return ""


def project_context(cwd: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if env is None else env
    context = _git_context(Path(cwd or Path.cwd()))
    if not context and env.get("PROJECT_NAME"):
        context = env["PROJECT_NAME"]
    if not context and env.get("CLAUDE_PROJECT_DIR"):
        base = Path(env["CLAUDE_PROJECT_DIR"]).name
        if base not in _GENERIC_DIRS:
            context = base
    return context or FALLBACK_CONTEXT


def compose_message(context: str, message: Optional[str] = None) -> str:
    if context == FALLBACK_CONTEXT:
        return message or "Your attention is required"
    return f"{context}\n{message or 'Ready for your input'}"


def ring_bell() -> None:
    sys.stderr.write("\a")
    sys.stderr.flush()


def send_attention(
    message: Optional[str] = None,
    config: Optional[NotifyConfig] = None,
    token: Optional[str] = None,
    user: Optional[str] = None,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> NotifyResult:
    cfg = config or NotifyConfig()
    text = compose_message(project_context(cwd, env), message)
    if not cfg.enabled:
        return NotifyResult(text, sent=False)
    if cfg.sound:
        ring_bell()
    if not token or not user:
        logger.info("Pushover credentials not configured; local notification only")
        return NotifyResult(text, sent=False)

    payload = {"token": token, "user": user, "message": text, "title": cfg.title_prefix}
    try:
        with httpx.Client(timeout=cfg.timeout_s, transport=transport) as client:
            resp = client.post(cfg.pushover_url, data=payload)
            resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        error = f"Pushover API returned HTTP {exc.response.status_code}; check the app token and user key"
        logger.warning(error)
        return NotifyResult(text, sent=False, error=error)
    except httpx.HTTPError as exc:
        error = f"Pushover API unreachable: {exc}"
        logger.warning(error)
        return NotifyResult(text, sent=False, error=error)
    logger.info("Notification sent")
    return NotifyResult(text, sent=True)
