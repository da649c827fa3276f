"""
Photo utilities for report attachments.

Photos travel as `data:image/<type>;base64,<payload>` URIs from both the web
client and the bot. Uses Pillow (PIL) to check that the payload really is an
image of an accepted format.
"""

from dataclasses import dataclass
from PIL import Image, UnidentifiedImageError
import base64
import binascii
import io
import logging
import re
from typing import Any, List, Optional

from .config import get_settings
from .errors import BadRequest, ValidationReason

logger = logging.getLogger("participium.photo_utils")

MIN_PHOTOS = 1
# Pillow format name -> MIME type
ALLOWED_FORMATS = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}

_DATA_URI_RE = re.compile(r"^data:(?P<mime>image/[a-zA-Z0-9.+-]+);base64,(?P<payload>.+)$", re.DOTALL)


@dataclass(frozen=True)
class DecodedPhoto:
    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        return EXTENSIONS[self.mime_type]


def _invalid(index: int) -> BadRequest:
    return BadRequest(f"Photo #{index} is not a valid image data URI", reason=ValidationReason.PHOTO_INVALID)


def _unsupported(index: int) -> BadRequest:
    return BadRequest(
        f"Photo #{index} has an unsupported format. Allowed: JPEG, PNG, WebP",
        reason=ValidationReason.PHOTO_FORMAT,
    )


def decode_data_uri(value: Any, index: int = 1, max_bytes: Optional[int] = None) -> DecodedPhoto:
    """Decode and verify a single photo data URI."""
    if not isinstance(value, str):
        raise _invalid(index)
    match = _DATA_URI_RE.match(value.strip())
    if not match:
        raise _invalid(index)

    declared = match.group("mime").lower()
    if declared not in ALLOWED_MIME_TYPES:
        raise _unsupported(index)

    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except (binascii.Error, ValueError):
        raise _invalid(index) from None

    max_bytes = max_bytes or get_settings().max_photo_bytes
    if not data or len(data) > max_bytes:
        raise BadRequest(
            f"Photo #{index} is not a valid image data URI (size must be at most {max_bytes} bytes)",
            reason=ValidationReason.PHOTO_INVALID,
        )

    try:
        img = Image.open(io.BytesIO(data))
        img.verify()
        image_format = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.info("Photo #%s failed image verification: %s", index, e)
        raise _invalid(index) from None

    if image_format not in ALLOWED_FORMATS:
        raise _unsupported(index)
    return DecodedPhoto(data=data, mime_type=ALLOWED_FORMATS[image_format])


def validate_photos(photos: Any, min_count: int = MIN_PHOTOS, max_count: Optional[int] = None) -> List[DecodedPhoto]:
    """Validate a list of photo data URIs and return the decoded images."""
    max_count = max_count or get_settings().max_photos
    if not isinstance(photos, list) or not min_count <= len(photos) <= max_count:
        raise BadRequest(
            f"Photos must contain between {min_count} and {max_count} images",
            reason=ValidationReason.PHOTO_COUNT,
        )
    return [decode_data_uri(photo, index) for index, photo in enumerate(photos, 1)]


def encode_data_uri(data: bytes) -> str:
    """Wrap raw image bytes (e.g. a photo downloaded from Telegram) in a data URI."""
    try:
        image_format = Image.open(io.BytesIO(data)).format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.warning("Could not identify image bytes: %s", e)
        image_format = None
    # Unknown bytes keep the JPEG label and are rejected later by validate_photos.
    mime_type = ALLOWED_FORMATS.get(image_format, "image/jpeg")
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
