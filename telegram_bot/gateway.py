"""Bridge between the bot and the backend engine.

The bot runs in the same process family as the API and talks to the database
directly through the lifecycle engine, so reports created from Telegram go
through exactly the same validation as the HTTP path.
"""

from typing import Optional
import logging

from participium.database import async_session_factory
from participium.errors import NotFound
from participium.lifecycle import ReportService
from participium.models import Report, User
from participium.photo_utils import encode_data_uri
from participium.telegram_link import verify_link_code
from participium.users import get_user_by_telegram_username

from .sessions import ReportDraft

logger = logging.getLogger("telegram_bot.gateway")


class EngineGateway:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory or async_session_factory

    async def find_user_by_telegram_username(self, username: str) -> Optional[User]:
        async with self.session_factory() as session:
            return await get_user_by_telegram_username(session, username)

    async def submit_report(self, user_id: int, draft: ReportDraft) -> Report:
        async with self.session_factory() as session:
            reporter = await session.get(User, user_id)
            if reporter is None:
                raise NotFound("User not found")
            service = ReportService(session)
            return await service.create_report(
                reporter,
                title=draft.title,
                description=draft.description,
                category=draft.category,
                location=draft.location,
                photos=[encode_data_uri(photo) for photo in draft.photos],
                is_anonymous=draft.is_anonymous,
                address=draft.address,
                source="telegram",
            )

    async def link_account(self, code: str, telegram_username: str, chat_id: Optional[int]) -> Optional[User]:
        async with self.session_factory() as session:
            return await verify_link_code(session, code, telegram_username, chat_id)
