"""Report routes: creation, review queue, assignment work list and status changes."""

from __future__ import annotations

from typing import List, Optional
import logging

from fastapi import APIRouter, Body, Depends, Query

from ..auth import get_current_user
from ..database import get_session
from ..domain import ReportCategory, parse_report_id
from ..lifecycle import ReportService
from ..models import Report, User
from ..notifications import record_status_change
from ..schemas import (
    ApprovalResponse,
    ApproveRequest,
    RejectRequest,
    ReportCreate,
    ReportPublic,
    StatusUpdateRequest,
    report_to_public,
)
from ..telegram_notifier import get_notifier

logger = logging.getLogger("participium.routes.reports")

router = APIRouter(prefix="/reports", tags=["reports"])


def get_report_service(session=Depends(get_session)) -> ReportService:
    return ReportService(session)


async def _notify_reporter(service: ReportService, report: Report, old_status: str) -> None:
    await record_status_change(service.session, report, old_status)
    reporter = await service.session.get(User, report.reporter_id)
    await get_notifier().notify_status_change(report, reporter, old_status)


@router.post("", status_code=201, response_model=ReportPublic)
async def create_report(
    payload: ReportCreate,
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    report = await service.create_report(
        user,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        location=payload.location,
        photos=payload.photos,
        is_anonymous=payload.isAnonymous,
        address=payload.address,
    )
    return report_to_public(report)


@router.get("", response_model=List[ReportPublic])
async def list_reports(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    reports = await service.get_all_reports(user, status=status, category=category)
    return [report_to_public(report) for report in reports]


@router.get("/categories", response_model=List[str])
async def list_categories():
    return [category.value for category in ReportCategory]


@router.get("/assigned/me", response_model=List[ReportPublic])
async def my_assigned_reports(
    status: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    reports = await service.get_my_assigned_reports(user, status=status)
    return [report_to_public(report) for report in reports]


@router.get("/{report_id}", response_model=ReportPublic)
async def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    report = await service.get_report(report_id, user)
    return report_to_public(report)


@router.put("/{report_id}/approve", response_model=ApprovalResponse)
async def approve_report(
    report_id: str,
    body: Optional[ApproveRequest] = Body(None),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    new_category = body.category if body else None
    result = await service.approve_report(report_id, user, new_category)
    if not result.no_officer_found:
        await _notify_reporter(service, result.report, "Pending Approval")
    return {**report_to_public(result.report), "noOfficerFound": result.no_officer_found}


@router.put("/{report_id}/reject", response_model=ReportPublic)
async def reject_report(
    report_id: str,
    body: RejectRequest,
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    report = await service.reject_report(report_id, body.reason, user)
    await _notify_reporter(service, report, "Pending Approval")
    return report_to_public(report)


@router.put("/{report_id}/status", response_model=ReportPublic)
async def update_report_status(
    report_id: str,
    body: StatusUpdateRequest,
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    before = await service.session.get(Report, parse_report_id(report_id))
    old_status = before.status if before else None
    report = await service.update_report_status(
        report_id,
        body.status,
        user,
        reason=body.reason,
        external_maintainer_id=body.externalMaintainerId,
    )
    await _notify_reporter(service, report, old_status)
    return report_to_public(report)
