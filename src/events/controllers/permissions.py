from django.http import HttpRequest
from ninja_extra import ControllerBase
from ninja_extra.permissions import BasePermission

from accounts.models import BoxOfficeUser


class RolePermission(BasePermission):
    """Grants access by the caller's role.

    Object-level checks (is this the caller's ticket, the caller's event) live in
    the services, which raise ``Forbidden``.
    """

    message = "You do not have the role required for this action."

    def __init__(self, *roles: str) -> None:
        """Store the accepted roles."""
        self.roles = roles

    def has_permission(self, request: HttpRequest, controller: ControllerBase) -> bool:
        user = request.user
        if not user.is_authenticated:
            return False
        if isinstance(user, BoxOfficeUser) and user.is_admin:
            return True
        return getattr(user, "role", None) in self.roles


class IsOrganizerOrAdmin(RolePermission):
    def __init__(self) -> None:
        """Organizers and admins."""
        super().__init__(BoxOfficeUser.Role.ORGANIZER, BoxOfficeUser.Role.ADMIN)


class IsAdmin(RolePermission):
    def __init__(self) -> None:
        """Admins only."""
        super().__init__(BoxOfficeUser.Role.ADMIN)
