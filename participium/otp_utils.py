"""One-time codes confirming a citizen's email address after registration."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from . import auth
from .config import get_settings
from .email_service import send_verification_email
from .errors import BadRequest, TooManyRequests
from .models import EmailVerificationCode, User
from .telegram_link import generate_code

logger = logging.getLogger("participium.otp_utils")

OTP_MAX_ATTEMPTS = 3
OTP_RATE_LIMIT_WINDOW_HOURS = 1
OTP_RATE_LIMIT_MAX_REQUESTS = 3


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def create_verification_code(
    session: AsyncSession, user: User, expiry_minutes: Optional[int] = None
) -> str:
    """Store a hashed code for `user` and return the plain one for the email.

    Raises TooManyRequests after OTP_RATE_LIMIT_MAX_REQUESTS codes in the window.
    """
    expiry_minutes = expiry_minutes or get_settings().email_code_ttl_minutes
    now = datetime.now(timezone.utc)
    window_start = now - timedelta(hours=OTP_RATE_LIMIT_WINDOW_HOURS)

    result = await session.exec(
        select(EmailVerificationCode).where(EmailVerificationCode.user_id == user.id)
    )
    previous = result.all()
    # Replaced codes still count towards the limit
    recent = [otp for otp in previous if _as_utc(otp.created_at) >= window_start]
    if len(recent) >= OTP_RATE_LIMIT_MAX_REQUESTS:
        logger.warning("Verification code rate limit exceeded for user %s", user.id)
        raise TooManyRequests("Too many verification codes requested. Please try again later.")

    for existing in previous:
        if not existing.used:
            existing.used = True
            session.add(existing)

    code = generate_code()
    session.add(
        EmailVerificationCode(
            user_id=user.id,
            code_hash=auth.get_password_hash(code),
            expires_at=now + timedelta(minutes=expiry_minutes),
            max_attempts=OTP_MAX_ATTEMPTS,
        )
    )
    await session.commit()

    logger.info("Created email verification code for user %s", user.id)
    return code


async def send_verification_code(session: AsyncSession, user: User) -> bool:
    """Issue a fresh code and mail it. False when the email could not be sent."""
    if not user.email:
        raise BadRequest("No email address to verify")
    if user.email_verified:
        raise BadRequest("Email already verified")
    code = await create_verification_code(session, user)
    return await send_verification_email(user.email, code, get_settings().email_code_ttl_minutes)


async def _consume(session: AsyncSession, otp: EmailVerificationCode) -> bool:
    stmt = (
        update(EmailVerificationCode)
        .where(EmailVerificationCode.id == otp.id, EmailVerificationCode.used == False)  # noqa: E712
        .values(used=True, attempts=EmailVerificationCode.attempts + 1)
    )
    conn = await session.connection()
    result = await conn.execute(stmt)
    if result.rowcount == 0:
        await session.rollback()
        return False
    return True


async def verify_email_code(session: AsyncSession, user: User, code: str) -> User:
    """Check `code` against the latest live code of `user` and mark the email verified."""
    if user.email_verified:
        return user

    now = datetime.now(timezone.utc)
    result = await session.exec(
        select(EmailVerificationCode)
        .where(EmailVerificationCode.user_id == user.id, EmailVerificationCode.used == False)  # noqa: E712
        .order_by(EmailVerificationCode.created_at.desc())
    )
    otp = next((candidate for candidate in result.all() if _as_utc(candidate.expires_at) > now), None)
    if otp is None:
        logger.warning("Email verification failed for user %s: no valid code", user.id)
        raise BadRequest("Invalid or expired verification code. Please request a new code.")

    code = (code or "").strip()
    if not auth.verify_password(code, otp.code_hash):
        otp.attempts += 1
        if otp.attempts >= otp.max_attempts:
            otp.used = True
        session.add(otp)
        await session.commit()
        remaining = otp.max_attempts - otp.attempts
        logger.warning(
            "Email verification failed for user %s: wrong code (attempt %s/%s)",
            user.id, otp.attempts, otp.max_attempts,
        )
        if remaining > 0:
            raise BadRequest(f"Invalid verification code. {remaining} attempt(s) remaining.")
        raise BadRequest("Too many failed attempts. Please request a new verification code.")

    if not await _consume(session, otp):
        raise BadRequest("Invalid or expired verification code. Please request a new code.")

    user.email_verified = True
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("Email verified for user %s", user.id)
    return user
