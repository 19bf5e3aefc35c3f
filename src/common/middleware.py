"""Request-scoped logging context."""

import typing as t
import uuid

import structlog
from django.http import HttpRequest, HttpResponse


class StructlogContextMiddleware:
    """Binds request metadata to every log event emitted while the request is handled.

    The authenticated user is bound later, by :class:`common.authentication.ContextJWTAuth`,
    because JWT authentication runs inside the API view and not in the middleware chain.
    """

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        """Initialize middleware."""
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.path,
            ip_address=self._get_client_ip(request),
        )

        response = self.get_response(request)

        response["X-Request-ID"] = request_id
        structlog.contextvars.clear_contextvars()
        return response

    def _get_client_ip(self, request: HttpRequest) -> str:
        """First X-Forwarded-For hop, falling back to REMOTE_ADDR."""
        x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
        if x_forwarded_for:
            return str(x_forwarded_for.split(",")[0].strip())
        return str(request.META.get("REMOTE_ADDR", "unknown"))
