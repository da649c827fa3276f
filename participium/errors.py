"""Error taxonomy shared by the HTTP API and the Telegram bot."""

from enum import Enum
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("participium.errors")


class ValidationReason(str, Enum):
    """Machine-readable sub-reason carried by BadRequest.

    The bot uses it to pick a user-facing message and the wizard step to
    return to; HTTP clients only see the message.
    """

    LOCATION_MISSING = "location_missing"
    INVALID_COORDINATES = "invalid_coordinates"
    OUT_OF_BOUNDS = "out_of_bounds"
    INVALID_CATEGORY = "invalid_category"
    INVALID_TITLE = "invalid_title"
    INVALID_DESCRIPTION = "invalid_description"
    PHOTO_COUNT = "photo_count"
    PHOTO_FORMAT = "photo_format"
    PHOTO_INVALID = "photo_invalid"


class ParticipiumError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(ParticipiumError):
    status_code = 400

    def __init__(self, message: str, reason: Optional[ValidationReason] = None):
        super().__init__(message)
        self.reason = reason


class Unauthorized(ParticipiumError):
    status_code = 401


class InsufficientRights(ParticipiumError):
    status_code = 403


class NotFound(ParticipiumError):
    status_code = 404


class TooManyRequests(ParticipiumError):
    status_code = 429


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as `{"error": message}` with the matching status code."""

    @app.exception_handler(ParticipiumError)
    async def participium_error_handler(request: Request, exc: ParticipiumError):
        if exc.status_code >= 500:
            logger.error("Unhandled domain error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _first_validation_message(exc)})


__all__ = [
    "ValidationReason",
    "ParticipiumError",
    "BadRequest",
    "Unauthorized",
    "InsufficientRights",
    "NotFound",
    "TooManyRequests",
    "register_exception_handlers",
]
