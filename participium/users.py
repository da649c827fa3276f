"""User lookups used by the bot and the admin routes."""

from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .errors import NotFound
from .models import Department, DepartmentRole, User


def normalize_telegram_username(username: Optional[str]) -> Optional[str]:
    """Telegram usernames are case-insensitive and may be typed with a leading @."""
    if not username:
        return None
    return username.strip().lstrip("@").lower() or None


async def get_user_by_telegram_username(session: AsyncSession, username: Optional[str]) -> Optional[User]:
    normalized = normalize_telegram_username(username)
    if not normalized:
        return None
    result = await session.exec(select(User).where(User.telegram_username == normalized))
    return result.first()


async def get_user_by_username(session: AsyncSession, username: str) -> Optional[User]:
    result = await session.exec(select(User).where(User.username == username))
    return result.first()


async def find_department_role(session: AsyncSession, department: str, role: str) -> DepartmentRole:
    result = await session.exec(
        select(DepartmentRole)
        .join(Department, Department.id == DepartmentRole.department_id)
        .where(Department.name == department, DepartmentRole.name == role)
    )
    dept_role = result.first()
    if dept_role is None:
        raise NotFound(f"Role '{role}' not found in department '{department}'")
    return dept_role
