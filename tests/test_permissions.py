from __future__ import annotations

import pytest

from constructrs.services.permissions import (
    PROJECT_CREATE,
    REPORT_CREATE,
    REPORT_DELETE,
    REPORT_EDIT_ANY,
    REPORTS_ADMIN_VIEW,
    USER_MANAGE,
    Caller,
    can,
    is_manager_tier,
)


@pytest.mark.parametrize(
    ("role", "action", "expected"),
    [
        ("admin", REPORT_DELETE, True),
        ("admin", USER_MANAGE, True),
        ("project_manager", REPORT_EDIT_ANY, True),
        ("project_manager", REPORT_DELETE, False),
        ("supervisor", REPORTS_ADMIN_VIEW, True),
        ("supervisor", PROJECT_CREATE, False),
        ("inspector", REPORT_CREATE, True),
        ("inspector", REPORTS_ADMIN_VIEW, False),
        ("employee", REPORT_EDIT_ANY, False),
        ("unknown", REPORT_CREATE, False),
    ],
)
def test_role_policy(role: str, action: str, expected: bool) -> None:
    assert can(Caller(id="a" * 24, role=role), action) is expected


def test_explicit_permissions_extend_role() -> None:
    caller = Caller(id="a" * 24, role="employee", permissions=(REPORT_DELETE,))
    assert can(caller, REPORT_DELETE)
    assert not can(caller, USER_MANAGE)


def test_anonymous_caller_has_nothing() -> None:
    assert not can(None, REPORT_CREATE)
    assert not is_manager_tier(None)


def test_manager_tier() -> None:
    assert is_manager_tier(Caller(id="a" * 24, role="project_manager"))
    assert not is_manager_tier(Caller(id="a" * 24, role="supervisor"))
