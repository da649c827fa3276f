from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import Chat, Message, Update, User
from telegram.ext import CallbackQueryHandler, CommandHandler, ContextTypes

from participium.domain import GeoPoint, ReportCategory, ReportStatus
from participium.errors import BadRequest, NotFound
from participium.models import User as PlatformUser
from participium.telegram_link import generate_link_code
from telegram_bot import constants as c
from telegram_bot.gateway import EngineGateway
from telegram_bot.main import build_application, help_command, link_command, start_command, unknown_command
from telegram_bot.sessions import ReportDraft

from factories import image_bytes


@pytest.fixture
def mock_update_context():
    update = MagicMock(spec=Update)
    update.effective_user = MagicMock(spec=User)
    update.effective_user.username = "mario"
    update.effective_chat = MagicMock(spec=Chat)
    update.effective_chat.id = 999
    update.effective_message = MagicMock(spec=Message)
    update.effective_message.reply_text = AsyncMock()
    update.effective_message.text = "/link"

    context = MagicMock(spec=ContextTypes.DEFAULT_TYPE)
    context.args = []
    gateway = MagicMock()
    gateway.link_account = AsyncMock(return_value=None)
    context.bot_data = {"gateway": gateway}
    return update, context


def last_reply(update):
    return update.effective_message.reply_text.call_args[0][0]


@pytest.mark.asyncio
async def test_start_and_help_use_html(mock_update_context):
    update, context = mock_update_context
    await start_command(update, context)
    assert update.effective_message.reply_text.call_args.kwargs["parse_mode"] == "HTML"
    assert last_reply(update) == c.WELCOME_MESSAGE

    await help_command(update, context)
    assert last_reply(update) == c.HELP_MESSAGE


@pytest.mark.asyncio
async def test_unknown_command(mock_update_context):
    update, context = mock_update_context
    update.effective_message.text = "/dance"
    await unknown_command(update, context)
    assert "didn't recognize" in last_reply(update)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "args, expected",
    [
        ([], c.LINK_USAGE_MESSAGE),
        (["123456", "extra"], c.LINK_USAGE_MESSAGE),
        (["12345"], c.LINK_CODE_FORMAT_MESSAGE),
        (["abcdef"], c.LINK_CODE_FORMAT_MESSAGE),
        (["١٢٣٤٥٦"], c.LINK_CODE_FORMAT_MESSAGE),
    ],
)
async def test_link_rejects_bad_input(mock_update_context, args, expected):
    update, context = mock_update_context
    context.args = args
    await link_command(update, context)
    assert last_reply(update) == expected
    context.bot_data["gateway"].link_account.assert_not_awaited()


@pytest.mark.asyncio
async def test_link_requires_username(mock_update_context):
    update, context = mock_update_context
    update.effective_user.username = None
    context.args = ["123456"]
    await link_command(update, context)
    assert last_reply(update) == c.NO_USERNAME_LINK_MESSAGE


@pytest.mark.asyncio
async def test_link_success(mock_update_context):
    update, context = mock_update_context
    context.args = ["123456"]
    gateway = context.bot_data["gateway"]
    gateway.link_account.return_value = MagicMock(username="mrossi")

    await link_command(update, context)

    gateway.link_account.assert_awaited_once_with("123456", "mario", 999)
    assert "mrossi" in last_reply(update)
    assert last_reply(update).startswith("✅ Telegram account linked")


@pytest.mark.asyncio
async def test_link_failure_is_generic(mock_update_context):
    update, context = mock_update_context
    context.args = ["123456"]
    await link_command(update, context)
    assert last_reply(update) == c.LINK_FAILURE_MESSAGE

    context.bot_data["gateway"].link_account.side_effect = RuntimeError("db down")
    await link_command(update, context)
    assert last_reply(update) == c.LINK_FAILURE_MESSAGE


def test_build_application_registers_handlers():
    application = build_application("123456:TEST-TOKEN", gateway=MagicMock())
    handlers = application.handlers[0]
    commands = set()
    for handler in handlers:
        if isinstance(handler, CommandHandler):
            commands |= set(handler.commands)
    assert commands == {"start", "help", "newreport", "cancel", "link"}
    assert any(isinstance(handler, CallbackQueryHandler) for handler in handlers)
    assert "store" in application.bot_data


@pytest.mark.asyncio
async def test_gateway_submits_through_the_engine(make_user):
    citizen, _ = await make_user("citizen", telegram_username="mario", telegram_chat_id=1)
    gateway = EngineGateway()

    user = await gateway.find_user_by_telegram_username("@Mario")
    assert user.id == citizen.id

    draft = ReportDraft(
        location=GeoPoint(45.0703, 7.6869),
        address="Via Roma 1",
        title="Lamp post off",
        description="Dark street",
        category=ReportCategory.PUBLIC_LIGHTING,
        photos=[image_bytes("JPEG")],
    )
    report = await gateway.submit_report(citizen.id, draft)
    assert report.status == ReportStatus.PENDING_APPROVAL.value
    assert len(report.photos) == 1

    with pytest.raises(NotFound):
        await gateway.submit_report(9999, draft)

    draft.location = GeoPoint(41.9028, 12.4964)
    with pytest.raises(BadRequest):
        await gateway.submit_report(citizen.id, draft)


@pytest.mark.asyncio
async def test_gateway_links_account(session, make_user):
    citizen, _ = await make_user("citizen")
    link_code = await generate_link_code(session, await session.get(PlatformUser, citizen.id))

    user = await EngineGateway().link_account(link_code.code, "Mario", 31337)
    assert user.id == citizen.id
    assert user.telegram_chat_id == 31337
