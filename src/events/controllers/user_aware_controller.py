import typing as t

from ninja_extra import ControllerBase

from accounts.models import BoxOfficeUser


class UserAwareController(ControllerBase):
    def user(self) -> BoxOfficeUser:
        """Get the user for this request."""
        return t.cast(BoxOfficeUser, self.context.request.user)  # type: ignore[union-attr]
