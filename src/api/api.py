from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI
from ninja_jwt.controller import NinjaJWTDefaultController

from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle, UserDefaultThrottle
from events.controllers.payments import PaymentController
from events.controllers.tickets import TicketController
from events.exceptions import (
    BookingIntegrityError,
    BookingValidationError,
    ConflictError,
    Forbidden,
    InvalidToken,
    NotConfirmed,
    NotFoundError,
)

from .exception_handlers import (
    handle_booking_validation_error,
    handle_conflict_error,
    handle_django_validation_error,
    handle_forbidden_error,
    handle_general_exception,
    handle_integrity_error,
    handle_not_found_error,
)

api = NinjaExtraAPI(
    title="Box Office API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"Box Office API {settings.VERSION}",
    app_name=f"boxoffice-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SERVICE_DESCRIPTION},
    ],
    throttle=[AnonDefaultThrottle(), UserDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, VersionResponse(version=settings.VERSION)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API."""
    return 200, ResponseOk()


api.register_controllers(
    # Auth controllers
    NinjaJWTDefaultController,
    # Booking controllers
    TicketController,
    PaymentController,
)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    ValidationError: handle_django_validation_error,
    BookingValidationError: handle_booking_validation_error,
    NotFoundError: handle_not_found_error,
    Forbidden: handle_forbidden_error,
    ConflictError: handle_conflict_error,
    InvalidToken: handle_conflict_error,
    NotConfirmed: handle_conflict_error,
    BookingIntegrityError: handle_integrity_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
