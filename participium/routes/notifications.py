"""Notification inbox routes: every logged-in user reads only their own entries."""

from typing import List

from fastapi import APIRouter, Depends, Query

from ..auth import get_current_user
from ..database import get_session
from ..models import User
from ..notifications import list_notifications, mark_all_read, mark_read
from ..schemas import NotificationPublic, notification_to_public

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationPublic])
async def my_notifications(
    unread: bool = Query(False),
    user: User = Depends(get_current_user),
    session=Depends(get_session),
):
    notifications = await list_notifications(session, user, unread_only=unread)
    return [notification_to_public(notification) for notification in notifications]


@router.patch("/read-all")
async def read_all(user: User = Depends(get_current_user), session=Depends(get_session)):
    updated = await mark_all_read(session, user)
    return {"updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationPublic)
async def read_one(
    notification_id: int,
    user: User = Depends(get_current_user),
    session=Depends(get_session),
):
    notification = await mark_read(session, user, notification_id)
    return notification_to_public(notification)
