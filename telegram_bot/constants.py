"""Wizard steps, callback payloads, keyboards and message texts used by the bot."""

from enum import Enum
from typing import List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from participium.domain import ReportCategory


class WizardStep(str, Enum):
    WAITING_LOCATION = "waiting_location"
    WAITING_TITLE = "waiting_title"
    WAITING_DESCRIPTION = "waiting_description"
    WAITING_CATEGORY = "waiting_category"
    WAITING_PHOTOS = "waiting_photos"
    WAITING_ANONYMOUS = "waiting_anonymous"
    WAITING_CONFIRMATION = "waiting_confirmation"


# ---------------------------------------------------------------------------
# Callback payloads
# ---------------------------------------------------------------------------
CATEGORY_PREFIX = "cat_"
DONE = "done"
ANON_YES = "anon_yes"
ANON_NO = "anon_no"
CONFIRM_YES = "confirm_yes"
CONFIRM_NO = "confirm_no"

# Index order of the category keyboard (cat_<index>)
CATEGORIES: List[ReportCategory] = list(ReportCategory)

MAX_PHOTOS = 3
LINK_CODE_PATTERN = r"^[0-9]{6}$"

# ---------------------------------------------------------------------------
# Message texts
# ---------------------------------------------------------------------------
WELCOME_MESSAGE = (
    "Welcome to the <b>Participium</b> bot! 👋\n\n"
    "Report problems in your city directly from Telegram.\n\n"
    "🔹 <b>/newreport</b> - Submit a new report\n"
    "🔹 <b>/link &lt;code&gt;</b> - Link this Telegram account to your Participium account\n"
    "🔹 <b>/cancel</b> - Cancel the report you are writing\n"
    "🔹 <b>/help</b> - Show available commands"
)

HELP_MESSAGE = (
    "<b>Available Commands:</b>\n"
    "🔹 <b>/newreport</b> - Start a new report (location, title, description, category, photos).\n"
    "🔹 <b>/link &lt;code&gt;</b> - Link your account with the 6-digit code from the Participium website.\n"
    "🔹 <b>/cancel</b> - Discard the report in progress.\n"
    "🔹 <b>/help</b> - Show this list of commands."
)

NO_USERNAME_MESSAGE = (
    "You must have a Telegram username set in your profile to create reports. "
    "Please set a username in Telegram settings and try again."
)
NO_USERNAME_LINK_MESSAGE = "You must have a Telegram username set in your profile to link the account."
ACCESS_DENIED_MESSAGE = (
    "❌ Access denied!\n\n"
    "You must be registered on the Participium platform to create reports via Telegram.\n\n"
    "Visit the website, register and link your account with /link before using this bot."
)

LOCATION_PROMPT = (
    "Send your location on the {city} map using the paperclip.\n\n"
    "Alternatively, you can write an address (e.g. \"Via Roma 1, {city}\") or enter coordinates "
    "in the format \"latitude, longitude\" (e.g. 45.0703, 7.6869)."
)
TITLE_PROMPT = "Great! Now write a title for your report."
DESCRIPTION_PROMPT = "Now describe the issue."
CATEGORY_PROMPT = "Choose a category:"
PHOTOS_PROMPT = "Send up to 3 photos of the problem, then press \"Done\"."
PHOTO_RECEIVED = "Photo received ({count}/3). Send more photos or press \"Done\" to continue."
PHOTO_LIMIT_REACHED = "You have reached the limit of 3 photos. Press \"Done\" to continue."
PHOTO_EXPECTED = "Please send photos or press \"Done\" to continue."
NO_PHOTOS_MESSAGE = "You must attach at least one photo before pressing \"Done\"."
ANONYMOUS_PROMPT = "Do you want the report to be anonymous?"
CONFIRM_PROMPT = "Do you want to confirm the creation of the report?"

EMPTY_TITLE_MESSAGE = "The title cannot be empty. Please enter a valid title."
EMPTY_DESCRIPTION_MESSAGE = "The description cannot be empty. Please enter a valid description."
ADDRESS_NOT_FOUND_MESSAGE = (
    "❌ Address not found or invalid.\n"
    "Try again with coordinates (e.g. 45.0703, 7.6869) or a different address."
)

INVALID_LOCATION_MESSAGE = "❌ Error: Invalid location."
INVALID_COORDINATES_MESSAGE = (
    "❌ Error: Invalid coordinates. Latitude must be between -90 and 90, "
    "longitude between -180 and 180."
)
OUT_OF_BOUNDS_MESSAGE = "❌ Error: The location must be within the boundaries of {city}."
INVALID_CATEGORY_MESSAGE = "❌ Error: Invalid category. Please choose one from the list."
PHOTO_COUNT_MESSAGE = "❌ Error: You must attach between 1 and 3 valid photos."
PHOTO_FORMAT_MESSAGE = "❌ Error: Unsupported photo format. Use JPEG, PNG or WebP."
PHOTO_INVALID_MESSAGE = "❌ Error: Invalid photo."
NOT_AUTHORIZED_MESSAGE = "❌ Error: Not authorized to create reports."
GENERIC_SUBMIT_ERROR = "❌ Error creating the report. Please try again later."
SEND_PHOTOS_AGAIN = "Please send the photos again."
RETRY_PROMPT = "Press \"Confirm\" to try again or \"Cancel\" to discard the report."

REPORT_CREATED_MESSAGE = (
    "✅ Report #{report_id} created successfully!\n\n"
    "It will be reviewed by the municipality. You will get a message here when its status changes."
)
REPORT_CANCELLED_MESSAGE = "Report creation cancelled. Use /newreport to start again."
NOTHING_TO_CANCEL_MESSAGE = "There is no report in progress. Use /newreport to start one."

LINK_USAGE_MESSAGE = (
    "Correct format: /link <code>\n\n"
    "Generate a verification code from the Participium website and enter it here."
)
LINK_CODE_FORMAT_MESSAGE = "The code must be 6 numeric digits."
LINK_SUCCESS_MESSAGE = (
    "✅ Telegram account linked to the Participium user {username}.\n\n"
    "You can now create reports with /newreport."
)
LINK_FAILURE_MESSAGE = "❌ Error linking the account. The code may be invalid or expired; generate a new one and try again."

UNKNOWN_ERROR_MESSAGE = "⚠️ Oops, something went wrong while processing your request. Please try again in a moment."


# ---------------------------------------------------------------------------
# Keyboards
# ---------------------------------------------------------------------------
def category_keyboard() -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(category.value, callback_data=f"{CATEGORY_PREFIX}{index}")]
        for index, category in enumerate(CATEGORIES)
    ]
    return InlineKeyboardMarkup(keyboard)


def done_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Done", callback_data=DONE)]])


def anonymous_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton("Yes", callback_data=ANON_YES)],
            [InlineKeyboardButton("No", callback_data=ANON_NO)],
        ]
    )


def confirm_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton("Confirm", callback_data=CONFIRM_YES)],
            [InlineKeyboardButton("Cancel", callback_data=CONFIRM_NO)],
        ]
    )
