"""Request and response bodies of the HTTP API (camelCase on the wire)."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Notification, Report, User


class LocationPublic(BaseModel):
    latitude: float
    longitude: float


class ReportCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    # Loosely typed so the lifecycle engine reports location problems itself.
    location: Optional[Any] = None
    address: Optional[str] = None
    photos: Optional[Any] = None
    isAnonymous: bool = False


class ApproveRequest(BaseModel):
    category: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str
    reason: Optional[str] = None
    externalMaintainerId: Optional[int] = None


class ReportPublic(BaseModel):
    id: int
    title: str
    description: str
    category: str
    location: LocationPublic
    address: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    isAnonymous: bool
    status: str
    reporterId: Optional[int] = None
    assigneeId: Optional[int] = None
    externalMaintainerId: Optional[int] = None
    rejectionReason: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class ApprovalResponse(ReportPublic):
    noOfficerFound: bool = False


class UserPublic(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    role: str
    departmentRoleId: Optional[int] = None
    telegramUsername: Optional[str] = None
    emailVerified: bool = False


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8)
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class MunicipalUserCreate(RegisterRequest):
    role: str
    department: Optional[str] = None
    departmentRole: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    username: str
    code: str


class ResendCodeRequest(BaseModel):
    username: str


class NotificationPublic(BaseModel):
    id: int
    reportId: int
    message: str
    oldStatus: Optional[str] = None
    newStatus: str
    isRead: bool
    createdAt: Optional[datetime] = None


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def report_to_public(report: Report) -> Dict[str, Any]:
    """Map a Report row to its public DTO; anonymous reports hide the reporter."""
    return ReportPublic(
        id=report.id,
        title=report.title,
        description=report.description,
        category=report.category,
        location=LocationPublic(latitude=report.latitude, longitude=report.longitude),
        address=report.address,
        photos=list(report.photos or []),
        isAnonymous=report.is_anonymous,
        status=report.status,
        reporterId=None if report.is_anonymous else report.reporter_id,
        assigneeId=report.assignee_id,
        externalMaintainerId=report.external_maintainer_id,
        rejectionReason=report.rejection_reason,
        createdAt=_utc(report.created_at),
        updatedAt=_utc(report.updated_at),
    ).model_dump(mode="json")


def user_to_public(user: User) -> Dict[str, Any]:
    return UserPublic(
        id=user.id,
        username=user.username,
        email=user.email,
        firstName=user.first_name,
        lastName=user.last_name,
        role=user.role,
        departmentRoleId=user.department_role_id,
        telegramUsername=user.telegram_username,
        emailVerified=bool(user.email_verified),
    ).model_dump(mode="json")


def notification_to_public(notification: Notification) -> Dict[str, Any]:
    return NotificationPublic(
        id=notification.id,
        reportId=notification.report_id,
        message=notification.message,
        oldStatus=notification.old_status,
        newStatus=notification.new_status,
        isRead=notification.is_read,
        createdAt=_utc(notification.created_at),
    ).model_dump(mode="json")
