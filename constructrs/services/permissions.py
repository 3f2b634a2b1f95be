"""
Single role/action policy table.

Both the route dependencies and the report lifecycle consult ``can`` so the
role lists live in exactly one place.
"""
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from ..models.models import User


# Actions
REPORT_CREATE = "report:create"
REPORT_READ = "report:read"
REPORT_EDIT_ANY = "report:edit_any"
REPORT_REGENERATE = "report:regenerate"
REPORT_DELETE = "report:delete"
REPORTS_ADMIN_VIEW = "reports:admin_view"
PROJECT_READ = "project:read"
PROJECT_CREATE = "project:create"
PROJECT_UPDATE = "project:update"
PROJECT_ASSIGN = "project:assign"
PROJECT_DELETE = "project:delete"
USER_READ = "user:read"
USER_MANAGE = "user:manage"

MANAGER_TIER = frozenset({"admin", "project_manager"})

_ALL = "*"

ROLE_POLICY: Dict[str, FrozenSet[str]] = {
    "admin": frozenset({_ALL}),
    "project_manager": frozenset({
        REPORT_CREATE, REPORT_READ, REPORT_EDIT_ANY, REPORT_REGENERATE, REPORTS_ADMIN_VIEW,
        PROJECT_READ, PROJECT_CREATE, PROJECT_UPDATE, PROJECT_ASSIGN, PROJECT_DELETE,
        USER_READ,
    }),
    "supervisor": frozenset({
        REPORT_CREATE, REPORT_READ, REPORT_REGENERATE, REPORTS_ADMIN_VIEW,
        PROJECT_READ, PROJECT_UPDATE, PROJECT_ASSIGN,
        USER_READ,
    }),
    "inspector": frozenset({REPORT_CREATE, REPORT_READ, PROJECT_READ}),
    "employee": frozenset({REPORT_CREATE, REPORT_READ, PROJECT_READ}),
}


@dataclass(frozen=True)
class Caller:
    """Authenticated identity handed to every lifecycle operation."""

    id: str
    role: str
    permissions: Tuple[str, ...] = field(default_factory=tuple)
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "Caller":
        return cls(
            id=user.id,
            role=user.role,
            permissions=tuple(user.permissions or ()),
            email=user.email,
            name=user.name,
        )


def allowed_actions(role: str, extra: Iterable[str] = ()) -> FrozenSet[str]:
    return ROLE_POLICY.get(role, frozenset()) | frozenset(extra)


def can(caller: Optional[Caller], action: str) -> bool:
    if caller is None:
        return False
    actions = allowed_actions(caller.role, caller.permissions)
    return _ALL in actions or action in actions


def is_manager_tier(caller: Optional[Caller]) -> bool:
    return caller is not None and caller.role in MANAGER_TIER
