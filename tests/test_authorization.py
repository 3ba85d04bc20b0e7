"""Tests for dual commit authorization."""
from __future__ import annotations

import pytest

from flightdeck.application.authorization import authorize_commit
from flightdeck.domain.errors import AuthorizationError
from flightdeck.domain.models import GateResult, GateStatus


def _result(agent: str, status: GateStatus) -> GateResult:
    return GateResult(agent=agent, status=status, attempt=1)


PASSED = [_result("test-runner", GateStatus.PASS), _result("code-reviewer", GateStatus.PASS)]


def test_both_authorizations_present():
    auth = authorize_commit(PASSED, user_approved=True, approver="alice")
    assert auth.gates_passed and auth.user_approved
    assert auth.approver == "alice"


def test_user_not_approved():
    with pytest.raises(AuthorizationError) as exc:
        authorize_commit(PASSED, user_approved=False)
    assert exc.value.missing == ["user has not approved the commit"]


def test_failed_gate_blocks_even_with_user_approval():
    results = [_result("test-runner", GateStatus.PASS), _result("security-auditor", GateStatus.FAIL)]
    with pytest.raises(AuthorizationError, match="gates not passed: security-auditor"):
        authorize_commit(results, user_approved=True)


def test_no_gates_never_authorizes():
    with pytest.raises(AuthorizationError, match="no quality gate has run"):
        authorize_commit([], user_approved=True)


def test_both_missing_are_reported():
    with pytest.raises(AuthorizationError) as exc:
        authorize_commit([_result("test-runner", GateStatus.FAIL)], user_approved=False)
    assert len(exc.value.missing) == 2
    assert str(exc.value).startswith("Commit not authorized: ")


def test_user_requirement_can_be_waived():
    auth = authorize_commit(PASSED, user_approved=False, require_user=False)
    assert auth.gates_passed
    assert not auth.user_approved
