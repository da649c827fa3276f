import asyncio
import logging
import re

from telegram import Update
from telegram.request import HTTPXRequest
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from participium.config import get_settings
from participium.database import init_db
from participium.geocoding import close_client

from . import constants as c
from .gateway import EngineGateway
from .helpers import safe_reply_to_update
from .sessions import InMemorySessionStore, SessionStore
from .wizard import ReportWizard

# Set up logging for the bot process
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger("telegram_bot")

LINK_CODE_RE = re.compile(c.LINK_CODE_PATTERN)


# --- Command Handlers (Basic) ---


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handles the /start command."""
    await safe_reply_to_update(update, c.WELCOME_MESSAGE, parse_mode="HTML")


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handles the /help command."""
    await safe_reply_to_update(update, c.HELP_MESSAGE, parse_mode="HTML")


async def unknown_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    logger.info(
        "unknown_command invoked. message=%s",
        update.effective_message.text if update.effective_message else None,
    )
    await safe_reply_to_update(
        update,
        "Sorry, I didn't recognize that command. "
        "Please use /newreport to submit a report or /help to see available commands.",
    )


async def link_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/link <code>: link this Telegram account to a Participium account.

    Every failure after the format checks gets the same reply, so the user
    cannot tell an unknown code from an expired or used one.
    """
    username = update.effective_user.username if update.effective_user else None
    if not username:
        await safe_reply_to_update(update, c.NO_USERNAME_LINK_MESSAGE)
        return

    args = context.args or []
    if len(args) != 1:
        await safe_reply_to_update(update, c.LINK_USAGE_MESSAGE)
        return

    code = args[0].strip()
    if not LINK_CODE_RE.match(code):
        await safe_reply_to_update(update, c.LINK_CODE_FORMAT_MESSAGE)
        return

    gateway: EngineGateway = context.bot_data["gateway"]
    chat_id = update.effective_chat.id if update.effective_chat else None
    try:
        user = await gateway.link_account(code, username, chat_id)
    except Exception as exc:
        logger.exception("Error linking Telegram account @%s: %s", username, exc)
        user = None

    if user is None:
        await safe_reply_to_update(update, c.LINK_FAILURE_MESSAGE)
        return
    await safe_reply_to_update(update, c.LINK_SUCCESS_MESSAGE.format(username=user.username))


async def global_error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log exceptions and notify the user with a friendly message when possible."""
    logger.exception("Unhandled exception in update: %s", context.error)
    await safe_reply_to_update(update, c.UNKNOWN_ERROR_MESSAGE)


async def sweep_sessions(store: SessionStore, interval: float) -> None:
    """Periodically drop idle wizard sessions."""
    while True:
        await asyncio.sleep(interval)
        try:
            await store.sweep_expired()
        except Exception as exc:
            logger.exception("Session sweep failed: %s", exc)


def register_handlers(application: Application, wizard: ReportWizard) -> None:
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("newreport", wizard.start))
    application.add_handler(CommandHandler("cancel", wizard.cancel))
    application.add_handler(CommandHandler("link", link_command))
    # Registered after the known commands so it only catches the rest.
    application.add_handler(MessageHandler(filters.COMMAND, unknown_command))

    application.add_handler(MessageHandler(filters.LOCATION, wizard.handle_location))
    application.add_handler(MessageHandler(filters.PHOTO, wizard.handle_photo))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, wizard.handle_text))
    application.add_handler(CallbackQueryHandler(wizard.handle_callback))

    application.add_error_handler(global_error_handler)


def build_application(token: str, store: SessionStore = None, gateway: EngineGateway = None) -> Application:
    settings = get_settings()
    if store is None:
        store = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    gateway = gateway or EngineGateway()
    wizard = ReportWizard(store, gateway)

    async def post_init(application: Application) -> None:
        await init_db()
        application.bot_data["sweeper"] = asyncio.create_task(
            sweep_sessions(store, settings.session_sweep_seconds)
        )

    async def post_shutdown(application: Application) -> None:
        sweeper = application.bot_data.pop("sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
        await close_client()

    request = HTTPXRequest(
        connection_pool_size=32,
        connect_timeout=20.0,
        read_timeout=30.0,
    )
    get_updates_request = HTTPXRequest(connect_timeout=20.0, read_timeout=60.0)

    application = (
        Application.builder()
        .token(token)
        .request(request)
        .get_updates_request(get_updates_request)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    application.bot_data["gateway"] = gateway
    application.bot_data["store"] = store
    register_handlers(application, wizard)
    return application


def main() -> None:
    """Start the bot."""
    token = get_settings().telegram_bot_token
    if not token:
        raise ValueError("TELEGRAM_BOT_TOKEN not found. Set it in the environment or the .env file.")

    application = build_application(token)
    logger.info("Bot is initialized. Polling for updates...")

    try:
        application.run_polling(allowed_updates=Update.ALL_TYPES)
    except Exception as exc:
        logger.exception("Unexpected error while polling: %s", exc)
    finally:
        logger.info("Bot application stopped.")


if __name__ == "__main__":
    main()
