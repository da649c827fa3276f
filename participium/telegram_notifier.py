"""
Telegram notifications to reporters when their report changes status.
"""
import html
import logging
from typing import Optional, List
from datetime import datetime, timezone
from telegram import Bot
from telegram.error import TelegramError
from pydantic import BaseModel

from .config import get_settings
from .models import Report, User

logger = logging.getLogger("participium.telegram_notifier")

STATUS_EMOJI = {
    "Pending Approval": "📝",
    "Assigned": "📌",
    "In Progress": "🔧",
    "Suspended": "⏸️",
    "Rejected": "❌",
    "Resolved": "✅",
    "In External Maintenance": "🏗️",
}


class NotificationConfig(BaseModel):
    """Configuration for notification settings."""
    enabled: bool = True
    max_messages: int = 30
    rate_limit_seconds: int = 60


class RateLimiter:
    """Sliding-window limiter for outgoing messages."""

    def __init__(self, max_requests: int = 30, time_window_seconds: int = 60):
        self.max_requests = max_requests
        self.time_window_seconds = time_window_seconds
        self.requests: List[datetime] = []

    def is_allowed(self) -> bool:
        now = datetime.now(timezone.utc)
        cutoff = now.timestamp() - self.time_window_seconds
        self.requests = [req for req in self.requests if req.timestamp() > cutoff]
        if len(self.requests) >= self.max_requests:
            return False
        self.requests.append(now)
        return True


class TelegramNotifier:
    """Sends status-change messages to reporters with a linked Telegram account."""

    def __init__(self, bot: Optional[Bot] = None, config: Optional[NotificationConfig] = None):
        self.config = config or NotificationConfig(enabled=get_settings().notifications_enabled)
        self.rate_limiter = RateLimiter(self.config.max_messages, self.config.rate_limit_seconds)
        self.bot = bot
        if self.bot is None:
            self._initialize_bot()

    def _initialize_bot(self):
        token = get_settings().telegram_bot_token
        if not token:
            logger.info("TELEGRAM_BOT_TOKEN not configured. Telegram notifications disabled.")
            self.config.enabled = False
            return
        self.bot = Bot(token=token)

    @staticmethod
    def format_status_message(report: Report, old_status: str) -> str:
        emoji = STATUS_EMOJI.get(report.status, "📄")
        lines = [
            f"{emoji} <b>Report #{report.id} updated</b>",
            "",
            f"<b>Title:</b> {html.escape(report.title)}",
            f"<b>Status:</b> {html.escape(old_status)} → {html.escape(report.status)}",
        ]
        if report.rejection_reason:
            lines.append(f"<b>Reason:</b> {html.escape(report.rejection_reason)}")
        return "\n".join(lines)

    async def notify_status_change(self, report: Report, reporter: Optional[User], old_status: str) -> bool:
        """Tell the reporter about a status change. Never raises."""
        if not self.config.enabled or not self.bot:
            return False
        if old_status == report.status:
            return False
        if reporter is None or not reporter.telegram_chat_id:
            logger.debug("Reporter of report %s has no linked Telegram chat", report.id)
            return False
        if not self.rate_limiter.is_allowed():
            logger.warning("Rate limit exceeded for Telegram notifications")
            return False

        try:
            await self.bot.send_message(
                chat_id=reporter.telegram_chat_id,
                text=self.format_status_message(report, old_status),
                parse_mode="HTML",
            )
        except TelegramError as e:
            logger.error("Failed to send Telegram notification for report %s: %s", report.id, e)
            return False
        logger.info("Sent status notification for report %s to user %s", report.id, reporter.id)
        return True


_notifier: Optional[TelegramNotifier] = None


def get_notifier() -> TelegramNotifier:
    global _notifier
    if _notifier is None:
        _notifier = TelegramNotifier()
    return _notifier
