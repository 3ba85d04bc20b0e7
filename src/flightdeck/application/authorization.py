"""Dual authorization: branch-manager commits only when every gate passed and the user approved."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from flightdeck.domain.errors import AuthorizationError
from flightdeck.domain.models import GateResult


@dataclass(frozen=True)
class CommitAuthorization:
    gates_passed: bool
    user_approved: bool
    approver: Optional[str] = None


def authorize_commit(
    gate_results: Sequence[GateResult],
    user_approved: bool,
    require_user: bool = True,
    approver: Optional[str] = None,
) -> CommitAuthorization:
    """Return the authorization, or raise AuthorizationError naming what is missing.

    ``gate_results`` must be the latest result of every gate in the profile;
    an empty sequence never authorizes.
    """
    missing = []
    if not gate_results:
        missing.append("no quality gate has run")
    failed = [r.agent for r in gate_results if not r.passed]
    if failed:
        missing.append(f"gates not passed: {', '.join(failed)}")
    if require_user and not user_approved:
        missing.append("user has not approved the commit")
    if missing:
        raise AuthorizationError(missing)
    return CommitAuthorization(gates_passed=True, user_approved=user_approved, approver=approver)
