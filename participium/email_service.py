"""Email service for sending registration verification codes."""

import logging
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from .config import get_settings

logger = logging.getLogger("participium.email_service")


async def send_email(
    to_email: str, subject: str, html_body: str, text_body: Optional[str] = None
) -> bool:
    """
    Send an email over SMTP.

    Returns True when the message was handed to the SMTP server. Without an
    SMTP_HOST the message is only logged, which is what development and the
    test suite rely on.
    """
    settings = get_settings()
    if not text_body:
        text_body = re.sub(r"<[^>]+>", "", html_body)
        text_body = text_body.replace("&nbsp;", " ").replace("&amp;", "&")

    if not settings.smtp_host:
        logger.info("[DEV MODE] Would send email to %s: %s", to_email, subject)
        logger.info("Body: %s", text_body)
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.email_from
    message["To"] = to_email
    message.attach(MIMEText(text_body, "plain"))
    message.attach(MIMEText(html_body, "html"))

    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or None,
            password=settings.smtp_password or None,
            start_tls=settings.smtp_use_tls,
        )
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        return False

    logger.info("Email sent successfully to %s: %s", to_email, subject)
    return True


async def send_verification_email(email: str, code: str, expiry_minutes: int) -> bool:
    """Mail the registration code to a new citizen."""
    subject = "Verify your email for Participium"

    html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .code {{ font-size: 32px; font-weight: bold; text-align: center; letter-spacing: 8px; color: #4CAF50; padding: 20px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h2>Welcome to Participium!</h2>
            <p>In order to complete your registration, please enter the following code:</p>
            <div class="code">{code}</div>
            <p><strong>The code will expire in {expiry_minutes} minutes.</strong></p>
            <p>If you did not sign up, please ignore this email.</p>
        </div>
    </body>
    </html>
    """

    text_body = f"""
    Welcome to Participium!

    In order to complete your registration, please enter the following code:

    {code}

    The code will expire in {expiry_minutes} minutes.

    If you did not sign up, please ignore this email.
    """

    return await send_email(email, subject, html_body, text_body)
