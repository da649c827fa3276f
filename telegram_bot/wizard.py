"""The /newreport conversation.

Each chat owns one ConversationSession. Handlers only act on input that
matches the session's current step; anything else is dropped (stray
callbacks are acknowledged so the client stops waiting). A failed
submission never drops the session: the user is sent back to the step that
owns the rejected field, or asked to retry from the confirmation step.
"""

from typing import Optional
import logging
import re

from telegram import Update
from telegram.ext import ContextTypes
from telegram.helpers import escape_markdown

from participium.domain import (
    BoundingBox,
    GeoPoint,
    municipal_boundary,
    validate_description,
    validate_location,
    validate_title,
)
from participium.errors import (
    BadRequest,
    InsufficientRights,
    ParticipiumError,
    Unauthorized,
    ValidationReason,
)
from participium.geocoding import geocode, reverse_geocode
from participium.observability import wizard_submissions_total

from . import constants as c
from .constants import WizardStep
from .gateway import EngineGateway
from .helpers import safe_answer_callback, safe_reply_to_update
from .sessions import ConversationSession, SessionStore

logger = logging.getLogger("telegram_bot.wizard")

COORDINATES_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*[,;]\s*(-?\d+(?:\.\d+)?)\s*$")

LOCATION_REASONS = {
    ValidationReason.LOCATION_MISSING,
    ValidationReason.INVALID_COORDINATES,
    ValidationReason.OUT_OF_BOUNDS,
}
PHOTO_REASONS = {
    ValidationReason.PHOTO_COUNT,
    ValidationReason.PHOTO_FORMAT,
    ValidationReason.PHOTO_INVALID,
}

# Step that owns the field a validation reason refers to.
RECOVERY_STEPS = {
    ValidationReason.LOCATION_MISSING: WizardStep.WAITING_LOCATION,
    ValidationReason.INVALID_COORDINATES: WizardStep.WAITING_LOCATION,
    ValidationReason.OUT_OF_BOUNDS: WizardStep.WAITING_LOCATION,
    ValidationReason.INVALID_TITLE: WizardStep.WAITING_TITLE,
    ValidationReason.INVALID_DESCRIPTION: WizardStep.WAITING_DESCRIPTION,
    ValidationReason.INVALID_CATEGORY: WizardStep.WAITING_CATEGORY,
    ValidationReason.PHOTO_COUNT: WizardStep.WAITING_PHOTOS,
    ValidationReason.PHOTO_FORMAT: WizardStep.WAITING_PHOTOS,
    ValidationReason.PHOTO_INVALID: WizardStep.WAITING_PHOTOS,
}


def parse_coordinates(text: str) -> Optional[dict]:
    """Parse "lat, lon" free text. Returns None when the text is not a coordinate pair."""
    match = COORDINATES_RE.match(text or "")
    if not match:
        return None
    return {"latitude": float(match.group(1)), "longitude": float(match.group(2))}


def error_message(exc: BadRequest, city: str) -> str:
    """User-facing text for a validation failure."""
    reason = exc.reason
    if reason == ValidationReason.LOCATION_MISSING:
        return c.INVALID_LOCATION_MESSAGE
    if reason == ValidationReason.INVALID_COORDINATES:
        return c.INVALID_COORDINATES_MESSAGE
    if reason == ValidationReason.OUT_OF_BOUNDS:
        return c.OUT_OF_BOUNDS_MESSAGE.format(city=city)
    if reason == ValidationReason.INVALID_CATEGORY:
        return c.INVALID_CATEGORY_MESSAGE
    if reason == ValidationReason.PHOTO_COUNT:
        return c.PHOTO_COUNT_MESSAGE
    if reason == ValidationReason.PHOTO_FORMAT:
        return c.PHOTO_FORMAT_MESSAGE
    if reason == ValidationReason.PHOTO_INVALID:
        return c.PHOTO_INVALID_MESSAGE
    if reason in (ValidationReason.INVALID_TITLE, ValidationReason.INVALID_DESCRIPTION):
        return f"❌ Error: {exc.message}."
    return c.GENERIC_SUBMIT_ERROR


def format_summary(session: ConversationSession) -> str:
    draft = session.draft

    def md(value) -> str:
        return escape_markdown(str(value))

    location = draft.location
    lines = [
        "📋 *Report Summary*",
        "",
        f"📍 *Location*: {location.latitude:.6f}, {location.longitude:.6f}" if location else "📍 *Location*: -",
        f"🏠 *Address*: {md(draft.address or 'Not available')}",
        f"🏷️ *Title*: {md(draft.title)}",
        f"📝 *Description*: {md(draft.description)}",
        f"🗂️ *Category*: {md(draft.category.value if draft.category else '-')}",
        f"🖼️ *Photos*: {len(draft.photos)}",
        f"👤 *Anonymous*: {'Yes' if draft.is_anonymous else 'No'}",
        "",
        c.CONFIRM_PROMPT,
    ]
    return "\n".join(lines)


class ReportWizard:
    def __init__(
        self,
        store: SessionStore,
        gateway: EngineGateway,
        geocoder=geocode,
        reverse_geocoder=reverse_geocode,
        boundary: Optional[BoundingBox] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.geocoder = geocoder
        self.reverse_geocoder = reverse_geocoder
        self.boundary = boundary or municipal_boundary()

    @property
    def city(self) -> str:
        return self.boundary.name

    # ------------------------------------------------------------------
    # prompts
    # ------------------------------------------------------------------
    async def _prompt(self, update: Update, session: ConversationSession) -> None:
        step = session.step
        if step == WizardStep.WAITING_LOCATION:
            await safe_reply_to_update(update, c.LOCATION_PROMPT.format(city=self.city))
        elif step == WizardStep.WAITING_TITLE:
            await safe_reply_to_update(update, c.TITLE_PROMPT)
        elif step == WizardStep.WAITING_DESCRIPTION:
            await safe_reply_to_update(update, c.DESCRIPTION_PROMPT)
        elif step == WizardStep.WAITING_CATEGORY:
            await safe_reply_to_update(update, c.CATEGORY_PROMPT, reply_markup=c.category_keyboard())
        elif step == WizardStep.WAITING_PHOTOS:
            await safe_reply_to_update(update, c.PHOTOS_PROMPT, reply_markup=c.done_keyboard())
        elif step == WizardStep.WAITING_ANONYMOUS:
            await safe_reply_to_update(update, c.ANONYMOUS_PROMPT, reply_markup=c.anonymous_keyboard())
        elif step == WizardStep.WAITING_CONFIRMATION:
            await safe_reply_to_update(
                update,
                format_summary(session),
                parse_mode="Markdown",
                reply_markup=c.confirm_keyboard(),
            )

    async def _advance(self, update: Update, session: ConversationSession, step: WizardStep) -> None:
        session.step = step
        await self.store.save(session)
        await self._prompt(update, session)

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------
    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """/newreport: check the Telegram account is linked, then ask for the location."""
        chat_id = update.effective_chat.id
        username = update.effective_user.username if update.effective_user else None
        if not username:
            logger.info("Report attempt without a Telegram username, chat %s", chat_id)
            await safe_reply_to_update(update, c.NO_USERNAME_MESSAGE)
            return

        user = await self.gateway.find_user_by_telegram_username(username)
        if user is None:
            logger.info("Report attempt from unlinked Telegram account @%s", username)
            await safe_reply_to_update(update, c.ACCESS_DENIED_MESSAGE)
            return

        async with self.store.lock(chat_id):
            session = ConversationSession(chat_id=chat_id, user_id=user.id)
            await self.store.save(session)
            logger.info("Started report wizard for user %s in chat %s", user.id, chat_id)
            await self._prompt(update, session)

    async def cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        async with self.store.lock(chat_id):
            session = await self.store.get(chat_id)
            if session is None:
                await safe_reply_to_update(update, c.NOTHING_TO_CANCEL_MESSAGE)
                return
            await self.store.delete(chat_id)
        wizard_submissions_total.labels(outcome="cancelled").inc()
        await safe_reply_to_update(update, c.REPORT_CANCELLED_MESSAGE)

    # ------------------------------------------------------------------
    # location
    # ------------------------------------------------------------------
    async def _accept_location(
        self,
        update: Update,
        session: ConversationSession,
        value,
        address: Optional[str] = None,
    ) -> None:
        try:
            point = validate_location(value, self.boundary)
        except BadRequest as e:
            await safe_reply_to_update(update, error_message(e, self.city))
            return
        session.draft.location = point
        session.draft.address = address or await self.reverse_geocoder(point)
        await self._advance(update, session, WizardStep.WAITING_TITLE)

    async def handle_location(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        async with self.store.lock(chat_id):
            session = await self.store.get(chat_id)
            if session is None or session.step != WizardStep.WAITING_LOCATION:
                return
            location = update.effective_message.location
            await self._accept_location(
                update,
                session,
                {"latitude": location.latitude, "longitude": location.longitude},
            )

    async def _location_from_text(self, update: Update, session: ConversationSession, text: str) -> None:
        coordinates = parse_coordinates(text)
        if coordinates is not None:
            await self._accept_location(update, session, coordinates)
            return

        result = await self.geocoder(text, self.boundary)
        if result is None:
            await safe_reply_to_update(update, c.ADDRESS_NOT_FOUND_MESSAGE)
            return
        await self._accept_location(
            update,
            session,
            GeoPoint(result.point.latitude, result.point.longitude),
            address=result.address,
        )

    # ------------------------------------------------------------------
    # text
    # ------------------------------------------------------------------
    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        text = update.effective_message.text or ""
        async with self.store.lock(chat_id):
            session = await self.store.get(chat_id)
            if session is None:
                return
            step = session.step

            if step == WizardStep.WAITING_LOCATION:
                await self._location_from_text(update, session, text)
            elif step == WizardStep.WAITING_TITLE:
                try:
                    session.draft.title = validate_title(text)
                except BadRequest as e:
                    await safe_reply_to_update(
                        update,
                        c.EMPTY_TITLE_MESSAGE if not text.strip() else error_message(e, self.city),
                    )
                    return
                await self._advance(update, session, WizardStep.WAITING_DESCRIPTION)
            elif step == WizardStep.WAITING_DESCRIPTION:
                try:
                    session.draft.description = validate_description(text)
                except BadRequest as e:
                    await safe_reply_to_update(
                        update,
                        c.EMPTY_DESCRIPTION_MESSAGE if not text.strip() else error_message(e, self.city),
                    )
                    return
                await self._advance(update, session, WizardStep.WAITING_CATEGORY)
            elif step == WizardStep.WAITING_PHOTOS:
                if text.strip().lower() == "done":
                    await self._finish_photos(update, session)
                else:
                    await safe_reply_to_update(update, c.PHOTO_EXPECTED, reply_markup=c.done_keyboard())
            else:
                logger.debug("Ignoring text in chat %s at step %s", chat_id, step.value)

    # ------------------------------------------------------------------
    # photos
    # ------------------------------------------------------------------
    async def handle_photo(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        chat_id = update.effective_chat.id
        async with self.store.lock(chat_id):
            session = await self.store.get(chat_id)
            if session is None or session.step != WizardStep.WAITING_PHOTOS:
                return
            photos = session.draft.photos
            if len(photos) >= c.MAX_PHOTOS:
                await safe_reply_to_update(update, c.PHOTO_LIMIT_REACHED, reply_markup=c.done_keyboard())
                return

            # Telegram sends several sizes; the last one is the largest.
            file_id = update.effective_message.photo[-1].file_id
            try:
                file = await context.bot.get_file(file_id)
                data = await file.download_as_bytearray()
            except Exception as exc:
                logger.exception("Failed to download photo %s in chat %s: %s", file_id, chat_id, exc)
                await safe_reply_to_update(update, c.PHOTO_INVALID_MESSAGE, reply_markup=c.done_keyboard())
                return

            photos.append(bytes(data))
            await self.store.save(session)
            if len(photos) >= c.MAX_PHOTOS:
                await safe_reply_to_update(update, c.PHOTO_LIMIT_REACHED, reply_markup=c.done_keyboard())
            else:
                await safe_reply_to_update(
                    update,
                    c.PHOTO_RECEIVED.format(count=len(photos)),
                    reply_markup=c.done_keyboard(),
                )

    async def _finish_photos(self, update: Update, session: ConversationSession) -> None:
        if not session.draft.photos:
            await safe_reply_to_update(update, c.NO_PHOTOS_MESSAGE, reply_markup=c.done_keyboard())
            return
        await self._advance(update, session, WizardStep.WAITING_ANONYMOUS)

    # ------------------------------------------------------------------
    # inline keyboard callbacks
    # ------------------------------------------------------------------
    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        chat_id = update.effective_chat.id
        data = query.data or ""
        await safe_answer_callback(query)

        async with self.store.lock(chat_id):
            session = await self.store.get(chat_id)
            if session is None:
                return
            step = session.step

            if step == WizardStep.WAITING_CATEGORY and data.startswith(c.CATEGORY_PREFIX):
                await self._choose_category(update, session, data)
            elif step == WizardStep.WAITING_PHOTOS and data == c.DONE:
                await self._finish_photos(update, session)
            elif step == WizardStep.WAITING_ANONYMOUS and data in (c.ANON_YES, c.ANON_NO):
                session.draft.is_anonymous = data == c.ANON_YES
                await self._advance(update, session, WizardStep.WAITING_CONFIRMATION)
            elif step == WizardStep.WAITING_CONFIRMATION and data == c.CONFIRM_YES:
                await self._submit(update, session)
            elif step == WizardStep.WAITING_CONFIRMATION and data == c.CONFIRM_NO:
                await self.store.delete(chat_id)
                wizard_submissions_total.labels(outcome="cancelled").inc()
                await safe_reply_to_update(update, c.REPORT_CANCELLED_MESSAGE)
            else:
                logger.debug("Ignoring callback %r in chat %s at step %s", data, chat_id, step.value)

    async def _choose_category(self, update: Update, session: ConversationSession, data: str) -> None:
        try:
            index = int(data[len(c.CATEGORY_PREFIX):])
        except ValueError:
            return
        if not 0 <= index < len(c.CATEGORIES):
            return
        session.draft.category = c.CATEGORIES[index]
        await self._advance(update, session, WizardStep.WAITING_PHOTOS)

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------
    async def _submit(self, update: Update, session: ConversationSession) -> None:
        try:
            report = await self.gateway.submit_report(session.user_id, session.draft)
        except BadRequest as e:
            logger.info("Report from chat %s rejected: %s", session.chat_id, e.message)
            wizard_submissions_total.labels(outcome="invalid").inc()
            await self._recover(update, session, e)
            return
        except (Unauthorized, InsufficientRights) as e:
            logger.warning("User %s may not create reports: %s", session.user_id, e.message)
            wizard_submissions_total.labels(outcome="error").inc()
            await safe_reply_to_update(update, c.NOT_AUTHORIZED_MESSAGE)
            await self._prompt(update, session)
            return
        except ParticipiumError as e:
            logger.warning("Report from chat %s failed: %s", session.chat_id, e.message)
            wizard_submissions_total.labels(outcome="error").inc()
            await self._retry(update, session)
            return
        except Exception as exc:
            logger.exception("Unexpected error creating report for chat %s: %s", session.chat_id, exc)
            wizard_submissions_total.labels(outcome="error").inc()
            await self._retry(update, session)
            return

        await self.store.delete(session.chat_id)
        wizard_submissions_total.labels(outcome="created").inc()
        logger.info("Report %s created from chat %s", report.id, session.chat_id)
        await safe_reply_to_update(update, c.REPORT_CREATED_MESSAGE.format(report_id=report.id))

    async def _retry(self, update: Update, session: ConversationSession) -> None:
        await safe_reply_to_update(update, c.GENERIC_SUBMIT_ERROR)
        await safe_reply_to_update(update, c.RETRY_PROMPT, reply_markup=c.confirm_keyboard())

    async def _recover(self, update: Update, session: ConversationSession, exc: BadRequest) -> None:
        """Send the user back to the step owning the rejected field."""
        step = RECOVERY_STEPS.get(exc.reason)
        if step is None:
            await self._retry(update, session)
            return

        await safe_reply_to_update(update, error_message(exc, self.city))
        draft = session.draft
        if exc.reason in LOCATION_REASONS:
            draft.location = None
            draft.address = None
        elif exc.reason in PHOTO_REASONS:
            draft.photos = []
            await safe_reply_to_update(update, c.SEND_PHOTOS_AGAIN)
        await self._advance(update, session, step)


__all__ = ["ReportWizard", "parse_coordinates", "error_message", "format_summary"]
