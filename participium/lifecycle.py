"""Report lifecycle engine.

`ReportService` is the only code that changes a report's status. It keeps
`status`, `assignee_id` and `rejection_reason` consistent and returns the
updated report from every mutation.

Status changes are written with a conditional UPDATE on the expected current
status, so two concurrent approve/reject calls cannot both succeed: the loser
sees a zero row count, reloads the row and fails its guard.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional
import logging

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .assignment import AssignmentSelector, get_selector
from .domain import (
    ReportCategory,
    ReportStatus,
    parse_report_id,
    parse_status,
    validate_category,
    validate_description,
    validate_location,
    validate_title,
)
from .errors import BadRequest, InsufficientRights, NotFound
from .models import Report, User, utcnow
from .observability import (
    approvals_without_officer_total,
    report_transitions_total,
    reports_created_total,
)
from .permissions import Permission, UserRole, has_permission, require_permission
from .photo_utils import validate_photos
from .routing_table import resolve_route
from .storage import LocalPhotoStorage

logger = logging.getLogger("participium.lifecycle")

PENDING_VISIBILITY_MESSAGE = "Only Municipal Public Relations Officers can view pending reports"

# Assigned is only reachable through approve_report, which also picks the assignee.
ALLOWED_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.PENDING_APPROVAL: frozenset({ReportStatus.REJECTED}),
    ReportStatus.ASSIGNED: frozenset(
        {ReportStatus.IN_PROGRESS, ReportStatus.SUSPENDED, ReportStatus.IN_EXTERNAL_MAINTENANCE}
    ),
    ReportStatus.IN_PROGRESS: frozenset({ReportStatus.SUSPENDED, ReportStatus.RESOLVED}),
    ReportStatus.SUSPENDED: frozenset({ReportStatus.IN_PROGRESS}),
    ReportStatus.IN_EXTERNAL_MAINTENANCE: frozenset(
        {ReportStatus.IN_PROGRESS, ReportStatus.SUSPENDED, ReportStatus.RESOLVED}
    ),
    ReportStatus.REJECTED: frozenset(),
    ReportStatus.RESOLVED: frozenset(),
}


def can_transition(old_status: ReportStatus, new_status: ReportStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(old_status, frozenset())


@dataclass
class ApprovalResult:
    """Outcome of approve_report.

    When no staff member holds the routed department role the report stays
    Pending Approval and `no_officer_found` is set so the approver can be warned.
    """

    report: Report
    no_officer_found: bool = False
    assignee: Optional[User] = None


class ReportService:
    def __init__(
        self,
        session: AsyncSession,
        selector: Optional[AssignmentSelector] = None,
        storage: Optional[LocalPhotoStorage] = None,
    ):
        self.session = session
        self.selector = selector or get_selector(session)
        self.storage = storage or LocalPhotoStorage()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    async def _get_report(self, report_id: Any) -> Report:
        report = await self.session.get(Report, parse_report_id(report_id))
        if report is None:
            raise NotFound("Report not found")
        return report

    @staticmethod
    def _ensure_pending(report: Report, verb: str) -> None:
        if report.status != ReportStatus.PENDING_APPROVAL.value:
            raise BadRequest(f"Cannot {verb} report with status {report.status}")

    async def _write(self, report: Report, expected: ReportStatus, **values: Any) -> Optional[Report]:
        """Apply `values` only if the stored status is still `expected`.

        Returns the refreshed report, or None when another writer changed the
        status first (the report is refreshed either way).
        """
        values["updated_at"] = utcnow()
        stmt = (
            update(Report)
            .where(Report.id == report.id, Report.status == expected.value)
            .values(**values)
        )
        conn = await self.session.connection()
        result = await conn.execute(stmt)
        if result.rowcount == 0:
            await self.session.rollback()
            await self.session.refresh(report)
            logger.info(
                "Report %s changed concurrently (expected %s, found %s)",
                report.id, expected.value, report.status,
            )
            return None
        await self.session.commit()
        await self.session.refresh(report)
        new_status = values.get("status")
        if new_status and new_status != expected.value:
            report_transitions_total.labels(from_status=expected.value, to_status=new_status).inc()
        return report

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------
    async def create_report(
        self,
        reporter: User,
        *,
        title: Optional[str],
        description: Optional[str],
        category: Any,
        location: Any,
        photos: Any,
        is_anonymous: bool = False,
        address: Optional[str] = None,
        source: str = "web",
    ) -> Report:
        require_permission(reporter, Permission.CREATE_REPORT, "Only citizens can create reports")
        title = validate_title(title)
        description = validate_description(description)
        point = validate_location(location)
        category = validate_category(category)
        decoded = validate_photos(photos)

        report = Report(
            reporter_id=reporter.id,
            title=title,
            description=description,
            category=category.value,
            latitude=point.latitude,
            longitude=point.longitude,
            address=(address or "").strip() or None,
            is_anonymous=bool(is_anonymous),
            status=ReportStatus.PENDING_APPROVAL.value,
        )
        self.session.add(report)
        await self.session.flush()

        stored: List[str] = []
        try:
            for photo in decoded:
                stored.append(self.storage.save(report.id, photo))
            report.photos = stored
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            for url in stored:
                self.storage.delete(url)
            raise
        await self.session.refresh(report)

        reports_created_total.labels(source=source).inc()
        logger.info(
            "Report %s created by user %s (category=%s, photos=%s, source=%s)",
            report.id, reporter.id, report.category, len(stored), source,
        )
        return report

    # ------------------------------------------------------------------
    # review
    # ------------------------------------------------------------------
    async def approve_report(
        self,
        report_id: Any,
        approver: User,
        new_category: Optional[Any] = None,
    ) -> ApprovalResult:
        require_permission(
            approver,
            Permission.REVIEW_REPORTS,
            "Only Municipal Public Relations Officers can approve reports",
        )
        report = await self._get_report(report_id)
        self._ensure_pending(report, "approve")

        category: ReportCategory = validate_category(
            new_category if new_category is not None else report.category
        )
        route = resolve_route(category)
        staff = await self.selector.select(route.department, route.role)

        if staff is None:
            approvals_without_officer_total.labels(category=category.value).inc()
            logger.warning(
                "Report %s approved by %s but no staff member holds %s / %s; keeping it pending",
                report.id, approver.id, route.department, route.role,
            )
            if category.value != report.category:
                updated = await self._write(report, ReportStatus.PENDING_APPROVAL, category=category.value)
                if updated is None:
                    raise BadRequest(f"Cannot approve report with status {report.status}")
            return ApprovalResult(report=report, no_officer_found=True)

        updated = await self._write(
            report,
            ReportStatus.PENDING_APPROVAL,
            status=ReportStatus.ASSIGNED.value,
            category=category.value,
            assignee_id=staff.id,
            rejection_reason=None,
        )
        if updated is None:
            raise BadRequest(f"Cannot approve report with status {report.status}")
        logger.info("Report %s approved by %s and assigned to %s", report.id, approver.id, staff.id)
        return ApprovalResult(report=updated, assignee=staff)

    async def reject_report(self, report_id: Any, reason: Optional[str], approver: User) -> Report:
        require_permission(
            approver,
            Permission.REVIEW_REPORTS,
            "Only Municipal Public Relations Officers can reject reports",
        )
        report = await self._get_report(report_id)
        self._ensure_pending(report, "reject")
        reason = (reason or "").strip()
        if not reason:
            raise BadRequest("Rejection reason is required")

        updated = await self._write(
            report,
            ReportStatus.PENDING_APPROVAL,
            status=ReportStatus.REJECTED.value,
            rejection_reason=reason,
            assignee_id=None,
        )
        if updated is None:
            raise BadRequest(f"Cannot reject report with status {report.status}")
        logger.info("Report %s rejected by %s", report.id, approver.id)
        return updated

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    async def get_report(self, report_id: Any, actor: User) -> Report:
        report = await self._get_report(report_id)
        if (
            report.status == ReportStatus.PENDING_APPROVAL.value
            and not has_permission(actor.role, Permission.REVIEW_REPORTS)
            and report.reporter_id != actor.id
        ):
            # Pending reports do not exist for anyone but reviewers and their author.
            raise NotFound("Report not found")
        return report

    async def get_all_reports(
        self,
        actor: User,
        status: Optional[Any] = None,
        category: Optional[Any] = None,
    ) -> List[Report]:
        status = parse_status(status) if status else None
        category = validate_category(category) if category else None
        can_review = has_permission(actor.role, Permission.REVIEW_REPORTS)

        if status == ReportStatus.PENDING_APPROVAL and not can_review:
            raise InsufficientRights(PENDING_VISIBILITY_MESSAGE)

        statement = select(Report)
        if status is not None:
            statement = statement.where(Report.status == status.value)
        elif not can_review:
            statement = statement.where(Report.status != ReportStatus.PENDING_APPROVAL.value)
        if category is not None:
            statement = statement.where(Report.category == category.value)
        statement = statement.order_by(Report.created_at.desc(), Report.id.desc())

        result = await self.session.exec(statement)
        return list(result.all())

    async def get_my_assigned_reports(self, actor: User, status: Optional[Any] = None) -> List[Report]:
        """Reports assigned to `actor`, newest first (ties broken by id)."""
        status = parse_status(status) if status else None
        if has_permission(actor.role, Permission.WORK_EXTERNAL_REPORTS):
            column = Report.external_maintainer_id
        else:
            column = Report.assignee_id

        statement = select(Report).where(column == actor.id)
        if status is not None:
            statement = statement.where(Report.status == status.value)
        statement = statement.order_by(Report.created_at.desc(), Report.id.desc())

        result = await self.session.exec(statement)
        return list(result.all())

    # ------------------------------------------------------------------
    # work on assigned reports
    # ------------------------------------------------------------------
    @staticmethod
    def _ensure_can_work(report: Report, actor: User, current: ReportStatus) -> None:
        is_assignee = report.assignee_id == actor.id and has_permission(
            actor.role, Permission.WORK_ASSIGNED_REPORTS
        )
        is_external = (
            current == ReportStatus.IN_EXTERNAL_MAINTENANCE
            and report.external_maintainer_id == actor.id
            and has_permission(actor.role, Permission.WORK_EXTERNAL_REPORTS)
        )
        if not (is_assignee or is_external):
            raise InsufficientRights("Only the staff member assigned to this report can update its status")

    async def _external_maintainer(self, maintainer_id: Any) -> User:
        if maintainer_id is None:
            raise BadRequest("An external maintainer is required to delegate a report")
        try:
            maintainer = await self.session.get(User, int(maintainer_id))
        except (TypeError, ValueError):
            raise BadRequest("Invalid external maintainer ID") from None
        if maintainer is None:
            raise NotFound("External maintainer not found")
        if maintainer.role != UserRole.EXTERNAL_MAINTAINER.value:
            raise BadRequest("The selected user is not an external maintainer")
        return maintainer

    async def update_report_status(
        self,
        report_id: Any,
        new_status: Any,
        actor: User,
        reason: Optional[str] = None,
        external_maintainer_id: Optional[Any] = None,
    ) -> Report:
        new_status = parse_status(new_status)
        report = await self._get_report(report_id)
        current = ReportStatus(report.status)

        if not can_transition(current, new_status):
            raise BadRequest(f"Cannot change status from {current.value} to {new_status.value}")

        if current == ReportStatus.PENDING_APPROVAL:
            # The only legal move out of Pending Approval here is a rejection.
            return await self.reject_report(report.id, reason, actor)

        self._ensure_can_work(report, actor, current)

        values: Dict[str, Any] = {"status": new_status.value}
        if new_status == ReportStatus.IN_EXTERNAL_MAINTENANCE:
            require_permission(
                actor,
                Permission.DELEGATE_EXTERNAL,
                "Only technical staff can delegate reports to external maintainers",
            )
            maintainer = await self._external_maintainer(external_maintainer_id)
            values["external_maintainer_id"] = maintainer.id

        updated = await self._write(report, current, **values)
        if updated is None:
            raise BadRequest(f"Cannot change status from {report.status} to {new_status.value}")
        logger.info(
            "Report %s moved from %s to %s by %s",
            report.id, current.value, new_status.value, actor.id,
        )
        return updated


__all__ = ["ALLOWED_TRANSITIONS", "ApprovalResult", "ReportService", "can_transition"]
