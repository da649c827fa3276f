"""In-app notification inbox.

Every status change of a report leaves an entry in its reporter's inbox,
whether or not a Telegram account is linked. Entries are only ever read
by their owner.
"""
import logging
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .errors import NotFound
from .models import Notification, Report, User

logger = logging.getLogger("participium.notifications")


def format_inbox_message(report: Report, old_status: Optional[str]) -> str:
    if old_status:
        message = f'Report #{report.id} "{report.title}" moved from {old_status} to {report.status}'
    else:
        message = f'Report #{report.id} "{report.title}" is now {report.status}'
    if report.rejection_reason:
        message += f". Reason: {report.rejection_reason}"
    return message


async def record_status_change(
    session: AsyncSession, report: Report, old_status: Optional[str]
) -> Optional[Notification]:
    """Add an inbox entry for the reporter; nothing when the status did not move."""
    if old_status == report.status:
        return None
    notification = Notification(
        user_id=report.reporter_id,
        report_id=report.id,
        message=format_inbox_message(report, old_status),
        old_status=old_status,
        new_status=report.status,
    )
    session.add(notification)
    await session.commit()
    await session.refresh(notification)
    logger.info("Queued inbox notification %s for user %s", notification.id, report.reporter_id)
    return notification


async def list_notifications(
    session: AsyncSession, user: User, unread_only: bool = False
) -> List[Notification]:
    stmt = select(Notification).where(Notification.user_id == user.id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
    result = await session.exec(stmt)
    return list(result.all())


async def mark_read(session: AsyncSession, user: User, notification_id: int) -> Notification:
    notification = await session.get(Notification, notification_id)
    # Someone else's entry is reported exactly like a missing one
    if notification is None or notification.user_id != user.id:
        raise NotFound("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        await session.commit()
        await session.refresh(notification)
    return notification


async def mark_all_read(session: AsyncSession, user: User) -> int:
    """Mark every unread entry of `user` as read and return how many changed."""
    stmt = (
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    conn = await session.connection()
    result = await conn.execute(stmt)
    await session.commit()
    logger.info("Marked %s notifications read for user %s", result.rowcount, user.id)
    return result.rowcount
