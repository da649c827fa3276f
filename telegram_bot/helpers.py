"""Resilient reply helpers shared by the command handlers and the wizard."""

import logging

from telegram import Update

logger = logging.getLogger("telegram_bot.helpers")


async def safe_reply_to_update(update: Update | object, text: str, **kwargs) -> None:
    """Attempt to reply to the user in a resilient way. Swallows network/send errors.

    Uses Update.effective_message.reply_text when available.
    """
    try:
        if isinstance(update, Update) and update.effective_message:
            await update.effective_message.reply_text(text, **kwargs)
        else:
            logger.debug("safe_reply_to_update: no effective_message available on update; skipping reply")
    except Exception:
        logger.warning("safe_reply_to_update: failed to send message to user")


async def safe_answer_callback(query) -> None:
    """Acknowledge a callback query so the client stops showing the spinner."""
    try:
        await query.answer()
    except Exception:
        logger.warning("safe_answer_callback: failed to answer callback query")
