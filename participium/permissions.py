"""Closed role set and the permission table every role check goes through."""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from .errors import InsufficientRights


class UserRole(str, Enum):
    CITIZEN = "citizen"
    ADMINISTRATOR = "administrator"
    PUBLIC_RELATIONS_OFFICER = "municipal public relations officer"
    TECHNICAL_STAFF = "technical staff member"
    EXTERNAL_MAINTAINER = "external maintainer"
    DEPARTMENT_DIRECTOR = "department director"


class Permission(str, Enum):
    CREATE_REPORT = "create_report"
    LINK_TELEGRAM = "link_telegram"
    # approve, reject and see reports still pending approval
    REVIEW_REPORTS = "review_reports"
    WORK_ASSIGNED_REPORTS = "work_assigned_reports"
    DELEGATE_EXTERNAL = "delegate_external"
    WORK_EXTERNAL_REPORTS = "work_external_reports"
    RECEIVE_ASSIGNMENTS = "receive_assignments"
    MANAGE_USERS = "manage_users"


ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.CITIZEN: frozenset({Permission.CREATE_REPORT, Permission.LINK_TELEGRAM}),
    UserRole.ADMINISTRATOR: frozenset({Permission.MANAGE_USERS}),
    UserRole.PUBLIC_RELATIONS_OFFICER: frozenset({Permission.REVIEW_REPORTS}),
    UserRole.TECHNICAL_STAFF: frozenset(
        {
            Permission.WORK_ASSIGNED_REPORTS,
            Permission.DELEGATE_EXTERNAL,
            Permission.RECEIVE_ASSIGNMENTS,
        }
    ),
    UserRole.EXTERNAL_MAINTAINER: frozenset({Permission.WORK_EXTERNAL_REPORTS}),
    UserRole.DEPARTMENT_DIRECTOR: frozenset(),
}


def parse_role(value: Union[str, UserRole, None]) -> UserRole:
    """Return the UserRole for `value`; unknown names raise ValueError."""
    if isinstance(value, UserRole):
        return value
    return UserRole((value or "").strip().lower())


def has_permission(role: Union[str, UserRole, None], permission: Permission) -> bool:
    try:
        parsed = parse_role(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS[parsed]


def require_permission(user, permission: Permission, message: Optional[str] = None) -> None:
    if not has_permission(getattr(user, "role", None), permission):
        raise InsufficientRights(message or "Insufficient rights")


__all__ = [
    "UserRole",
    "Permission",
    "ROLE_PERMISSIONS",
    "parse_role",
    "has_permission",
    "require_permission",
]
