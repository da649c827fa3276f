from typing import Optional, List
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

from sqlalchemy import Column, JSON, UniqueConstraint

from .domain import ReportStatus
from .permissions import UserRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Department(SQLModel, table=True):
    __tablename__ = "departments"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column_kwargs={"unique": True})


class DepartmentRole(SQLModel, table=True):
    """A technical role inside a department, e.g. 'Electrical staff member'."""
    __tablename__ = "department_roles"
    __table_args__ = (UniqueConstraint("department_id", "name"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    department_id: int = Field(foreign_key="departments.id", index=True)
    name: str


class User(SQLModel, table=True):
    __tablename__ = "users"
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(sa_column_kwargs={"unique": True})
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    password_hash: Optional[str] = None
    # One of permissions.UserRole values
    role: str = Field(default=UserRole.CITIZEN.value)
    # Only technical staff members belong to a department role
    department_role_id: Optional[int] = Field(default=None, foreign_key="department_roles.id", index=True)
    telegram_username: Optional[str] = Field(default=None, sa_column_kwargs={"unique": True})
    telegram_chat_id: Optional[int] = None
    # Citizens registering with an email confirm it with a mailed code
    email_verified: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default_factory=utcnow)


class Report(SQLModel, table=True):
    __tablename__ = "reports"
    id: Optional[int] = Field(default=None, primary_key=True)
    # Kept for audit even when the report is anonymous; never exposed in that case.
    reporter_id: int = Field(foreign_key="users.id", index=True)
    title: str
    description: str
    category: str
    latitude: float
    longitude: float
    address: Optional[str] = None
    photos: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_anonymous: bool = Field(default=False)
    status: str = Field(default=ReportStatus.PENDING_APPROVAL.value, index=True)
    assignee_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    external_maintainer_id: Optional[int] = Field(default=None, foreign_key="users.id")
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = Field(default_factory=utcnow, index=True)
    updated_at: Optional[datetime] = Field(default_factory=utcnow)


class TelegramLinkCode(SQLModel, table=True):
    """Short-lived code a citizen sends to the bot with /link."""
    __tablename__ = "telegram_link_codes"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    code: str = Field(index=True)
    expires_at: datetime
    used: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    """In-app inbox entry telling a reporter that their report changed status."""
    __tablename__ = "notifications"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    report_id: int = Field(foreign_key="reports.id", index=True)
    message: str
    old_status: Optional[str] = None
    new_status: str
    is_read: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default_factory=utcnow, index=True)


class EmailVerificationCode(SQLModel, table=True):
    """Hashed one-time code mailed to a citizen after registration."""
    __tablename__ = "email_verification_codes"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    code_hash: str
    expires_at: datetime
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    used: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default_factory=utcnow)
