"""Telegram account linking codes.

A logged-in citizen asks for a code on the web client and sends it to the bot
with `/link <code>`. Codes are 6 digits, expire after a few minutes and can be
used once. Verification never tells the caller *why* a code was refused.
"""
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from .config import get_settings
from .models import TelegramLinkCode, User
from .users import normalize_telegram_username

logger = logging.getLogger("participium.telegram_link")

LINK_CODE_LENGTH = 6
_MAX_GENERATION_ATTEMPTS = 10


def generate_code() -> str:
    """Generate a secure random 6-digit code."""
    # Random number between 100000 and 999999
    return str(secrets.randbelow(900000) + 100000)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_active(link_code: TelegramLinkCode, now: datetime) -> bool:
    return not link_code.used and _as_utc(link_code.expires_at) > now


async def _active_codes_for_user(session: AsyncSession, user_id: int):
    result = await session.exec(
        select(TelegramLinkCode).where(
            TelegramLinkCode.user_id == user_id,
            TelegramLinkCode.used == False,  # noqa: E712
        )
    )
    now = datetime.now(timezone.utc)
    return [code for code in result.all() if _is_active(code, now)]


async def _code_in_use(session: AsyncSession, code: str) -> bool:
    result = await session.exec(
        select(TelegramLinkCode).where(
            TelegramLinkCode.code == code,
            TelegramLinkCode.used == False,  # noqa: E712
        )
    )
    now = datetime.now(timezone.utc)
    return any(_is_active(existing, now) for existing in result.all())


async def generate_link_code(
    session: AsyncSession,
    user: User,
    expiry_minutes: Optional[int] = None,
) -> TelegramLinkCode:
    """Create a fresh code for `user`, invalidating the previous unused ones."""
    expiry_minutes = expiry_minutes or get_settings().link_code_ttl_minutes

    for previous in await _active_codes_for_user(session, user.id):
        previous.used = True
        session.add(previous)

    for _ in range(_MAX_GENERATION_ATTEMPTS):
        code = generate_code()
        if not await _code_in_use(session, code):
            break
    else:
        raise RuntimeError("Could not generate a unique link code")

    link_code = TelegramLinkCode(
        user_id=user.id,
        code=code,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=expiry_minutes),
    )
    session.add(link_code)
    await session.commit()
    await session.refresh(link_code)

    logger.info("Created Telegram link code for user %s", user.id)
    return link_code


async def get_link_status(session: AsyncSession, user: User) -> Dict[str, Any]:
    active = await _active_codes_for_user(session, user.id)
    active.sort(key=lambda code: _as_utc(code.expires_at), reverse=True)
    active_code = None
    if active:
        active_code = {"code": active[0].code, "expiresAt": _as_utc(active[0].expires_at).isoformat()}
    return {
        "isLinked": bool(user.telegram_username),
        "telegramUsername": user.telegram_username,
        "activeCode": active_code,
    }


async def _consume_code(session: AsyncSession, link_code: TelegramLinkCode) -> bool:
    """Mark `link_code` used unless another request already did."""
    stmt = (
        update(TelegramLinkCode)
        .where(TelegramLinkCode.id == link_code.id, TelegramLinkCode.used == False)  # noqa: E712
        .values(used=True)
    )
    conn = await session.connection()
    result = await conn.execute(stmt)
    if result.rowcount == 0:
        await session.rollback()
        return False
    return True


async def verify_link_code(
    session: AsyncSession,
    code: str,
    telegram_username: str,
    chat_id: Optional[int] = None,
) -> Optional[User]:
    """Consume `code` and link the Telegram account to its owner.

    Returns the linked user, or None for an unknown, expired or used code.
    """
    username = normalize_telegram_username(telegram_username)
    if not username or not code or len(code) != LINK_CODE_LENGTH or not (code.isascii() and code.isdigit()):
        return None

    now = datetime.now(timezone.utc)
    result = await session.exec(
        select(TelegramLinkCode)
        .where(TelegramLinkCode.code == code, TelegramLinkCode.used == False)  # noqa: E712
        .order_by(TelegramLinkCode.created_at.desc())
    )
    link_code = next((candidate for candidate in result.all() if _is_active(candidate, now)), None)
    if link_code is None:
        logger.warning("Telegram link refused for @%s", username)
        return None

    user = await session.get(User, link_code.user_id)
    if user is None:
        return None
    if not await _consume_code(session, link_code):
        logger.warning("Telegram link code for @%s was consumed concurrently", username)
        return None

    # A Telegram account can be linked to a single platform account.
    result = await session.exec(
        select(User).where(User.telegram_username == username, User.id != user.id)
    )
    for other in result.all():
        other.telegram_username = None
        other.telegram_chat_id = None
        session.add(other)
    await session.flush()

    user.telegram_username = username
    user.telegram_chat_id = chat_id
    session.add(user)
    await session.commit()
    await session.refresh(user)
    await session.refresh(link_code)

    logger.info("Linked Telegram account @%s to user %s", username, user.id)
    return user


async def unlink_telegram(session: AsyncSession, user: User) -> User:
    user.telegram_username = None
    user.telegram_chat_id = None
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Unlinked Telegram account from user %s", user.id)
    return user
