"""Telegram account-linking routes for logged-in citizens."""

from fastapi import APIRouter, Depends

from ..auth import require
from ..database import get_session
from ..models import User
from ..permissions import Permission
from ..telegram_link import generate_link_code, get_link_status, unlink_telegram

router = APIRouter(prefix="/telegram", tags=["telegram"])

_citizens_only = require(Permission.LINK_TELEGRAM, "Only citizens can link a Telegram account")


@router.post("/link-code", status_code=201)
async def create_link_code(user: User = Depends(_citizens_only), session=Depends(get_session)):
    link_code = await generate_link_code(session, user)
    status = await get_link_status(session, user)
    return {"code": link_code.code, "expiresAt": status["activeCode"]["expiresAt"]}


@router.get("/status")
async def link_status(user: User = Depends(_citizens_only), session=Depends(get_session)):
    return await get_link_status(session, user)


@router.delete("/link")
async def unlink(user: User = Depends(_citizens_only), session=Depends(get_session)):
    user = await unlink_telegram(session, user)
    return await get_link_status(session, user)
