"""Pick the staff member who receives a newly approved report.

Selectors resolve a (department, role) pair to the users holding it and apply
a policy. Finding nobody is a normal outcome and returns None; a department or
role that does not exist is malformed input and raises.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .config import get_settings
from .domain import ACTIVE_STATUSES
from .errors import BadRequest, NotFound
from .models import Department, DepartmentRole, Report, User
from .permissions import UserRole

logger = logging.getLogger("participium.assignment")


class AssignmentSelector(ABC):
    policy_name = "base"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _department_role(self, department: str, role: str) -> DepartmentRole:
        if not (department or "").strip() or not (role or "").strip():
            raise BadRequest("Department and role are required")
        result = await self.session.exec(select(Department).where(Department.name == department))
        dept = result.first()
        if dept is None:
            raise NotFound(f"Department '{department}' not found")
        result = await self.session.exec(
            select(DepartmentRole).where(
                DepartmentRole.department_id == dept.id,
                DepartmentRole.name == role,
            )
        )
        dept_role = result.first()
        if dept_role is None:
            raise NotFound(f"Role '{role}' not found in department '{department}'")
        return dept_role

    async def candidates(self, department: str, role: str) -> List[User]:
        """Staff members holding the department role, lowest id first."""
        dept_role = await self._department_role(department, role)
        result = await self.session.exec(
            select(User)
            .where(
                User.department_role_id == dept_role.id,
                User.role == UserRole.TECHNICAL_STAFF.value,
            )
            .order_by(User.id)
        )
        return list(result.all())

    async def select(self, department: str, role: str) -> Optional[User]:
        staff = await self.candidates(department, role)
        if not staff:
            logger.info("No staff member holds %s / %s", department, role)
            return None
        chosen = await self.choose(department, role, staff)
        logger.info(
            "Selected staff member %s for %s / %s (policy=%s)",
            chosen.id, department, role, self.policy_name,
        )
        return chosen

    @abstractmethod
    async def choose(self, department: str, role: str, staff: List[User]) -> User:
        """Pick one member of a non-empty candidate list."""


class FixedSelector(AssignmentSelector):
    """Always the first staff member holding the role."""

    policy_name = "fixed"

    async def choose(self, department: str, role: str, staff: List[User]) -> User:
        return staff[0]


class LeastLoadedSelector(AssignmentSelector):
    """Staff member with the fewest active reports; ties go to the lowest id."""

    policy_name = "least_loaded"

    async def choose(self, department: str, role: str, staff: List[User]) -> User:
        ids = [user.id for user in staff]
        result = await self.session.exec(
            select(Report.assignee_id, func.count(Report.id))
            .where(
                Report.assignee_id.in_(ids),
                Report.status.in_([status.value for status in ACTIVE_STATUSES]),
            )
            .group_by(Report.assignee_id)
        )
        load = {assignee_id: count for assignee_id, count in result.all()}
        return min(staff, key=lambda user: (load.get(user.id, 0), user.id))


class RoundRobinSelector(AssignmentSelector):
    """Cycle through the staff of each department role, process-wide."""

    policy_name = "round_robin"
    _cursors: Dict[Tuple[str, str], int] = defaultdict(int)

    async def choose(self, department: str, role: str, staff: List[User]) -> User:
        key = (department, role)
        index = RoundRobinSelector._cursors[key] % len(staff)
        RoundRobinSelector._cursors[key] = index + 1
        return staff[index]

    @classmethod
    def reset(cls) -> None:
        cls._cursors.clear()


SELECTORS = {
    FixedSelector.policy_name: FixedSelector,
    LeastLoadedSelector.policy_name: LeastLoadedSelector,
    RoundRobinSelector.policy_name: RoundRobinSelector,
}


def get_selector(session: AsyncSession, policy: Optional[str] = None) -> AssignmentSelector:
    policy = (policy or get_settings().assignment_policy).lower()
    try:
        selector_cls = SELECTORS[policy]
    except KeyError:
        raise ValueError(f"Unknown assignment policy '{policy}'. Allowed: {', '.join(sorted(SELECTORS))}") from None
    return selector_cls(session)


__all__ = [
    "AssignmentSelector",
    "FixedSelector",
    "LeastLoadedSelector",
    "RoundRobinSelector",
    "get_selector",
]
