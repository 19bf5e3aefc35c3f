import typing as t

import structlog
from django.http import HttpRequest
from ninja_jwt.authentication import JWTAuth


class ContextJWTAuth(JWTAuth):
    """JWT authentication that binds the caller to the logging context.

    Usage:
        @api_controller("/tickets", auth=ContextJWTAuth())
        class TicketController(UserAwareController):
            ...
    """

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        """Authenticate the request and bind ``user_id`` and ``user_role`` for structlog.

        Raises:
            AuthenticationFailed: If authentication fails
            InvalidToken: If the token is invalid
        """
        user = super().authenticate(request, token)
        if user is not None:
            structlog.contextvars.bind_contextvars(user_id=str(user.pk), user_role=getattr(user, "role", None))
        return user
