"""Exception handlers for the API."""

import traceback
import typing as t
from copy import deepcopy

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from events.exceptions import BookingError

logger = structlog.get_logger(__name__)


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Handle a general exception.

    Args:
        request: The incoming HTTP request.
        exc: The exception.

    Returns:
        The response.
    """
    logger.exception(
        "INTERNAL_SERVER_ERROR",
        exc_info=True,
        method=request.method,
        path=request.path,
        headers=obfuscate(dict(request.headers)),
        query=obfuscate(request.GET.dict()),
    )
    data: dict[str, t.Any] = {"code": "internal_error", "detail": "Internal Server Error."}
    is_staff = getattr(request, "user", None) and request.user.is_staff
    if settings.DEBUG or is_staff:  # pragma: no cover
        data["traceback"] = traceback.format_exc()
    return Response(status=500, data=data)


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | t.Type[ValidationError]) -> Response:
    """Handle a model validation error.

    Args:
        request: The incoming HTTP request.
        exc: The exception.
    """
    logger.warning("VALIDATION_ERROR", path=request.path, messages=exc.messages)
    if hasattr(exc, "error_dict"):
        errors = {k: [ee for e in v for ee in e] for k, v in exc.error_dict.items()}
    else:
        errors = {"__all__": exc.messages}
    return Response(status=400, data={"errors": errors})


def _booking_error_response(status: int, exc: BookingError) -> Response:
    return Response(
        status=status,
        data={"code": exc.code, "detail": exc.message, "context": exc.context, "retryable": exc.retryable},
    )


def handle_booking_validation_error(request: HttpRequest, exc: BookingError) -> Response:
    """Handle a rejected request; nothing was changed."""
    return _booking_error_response(400, exc)


def handle_not_found_error(request: HttpRequest, exc: BookingError) -> Response:
    return _booking_error_response(404, exc)


def handle_forbidden_error(request: HttpRequest, exc: BookingError) -> Response:
    return _booking_error_response(403, exc)


def handle_conflict_error(request: HttpRequest, exc: BookingError) -> Response:
    """Handle a request refused by the current state of a ticket, payment or category."""
    return _booking_error_response(409, exc)


def handle_integrity_error(request: HttpRequest, exc: BookingError) -> Response:
    """Handle a storage or signing failure.

    The attempt has been compensated, so the client may retry.
    """
    logger.error("BOOKING_INTEGRITY_ERROR", code=exc.code, context=exc.context, path=request.path)
    return _booking_error_response(503, exc)


SENSITIVE_KEYS = {"password", "token", "x-api-key", "authorization", "authentication", "signature"}


def obfuscate(data: dict[str, t.Any]) -> dict[str, t.Any]:
    """Obfuscate sensitive data in payloads and headers."""
    new_data = deepcopy(data)
    for key in data.keys():
        if key.lower() in SENSITIVE_KEYS:
            new_data[key] = "********"
    return new_data
