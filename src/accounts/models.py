import re
import typing as t
import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class BoxOfficeUserQueryset(models.QuerySet["BoxOfficeUser"]):
    """Queryset for BoxOfficeUser."""


class BoxOfficeUserManager(UserManager["BoxOfficeUser"]):
    def get_queryset(self) -> BoxOfficeUserQueryset:
        """Get queryset for BoxOfficeUser."""
        return BoxOfficeUserQueryset(self.model)


class BoxOfficeUser(AbstractUser):
    class Role(models.TextChoices):
        USER = "user", "User"
        ORGANIZER = "organizer", "Organizer"
        ADMIN = "admin", "Admin"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.USER, db_index=True)
    phone_number = models.CharField(max_length=20, blank=True, help_text="Phone number")

    objects = BoxOfficeUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Superusers are always admins."""
        if self.is_superuser:
            self.role = self.Role.ADMIN
        super().save(*args, **kwargs)

    @property
    def is_admin(self) -> bool:
        return self.role == self.Role.ADMIN

    @property
    def is_organizer(self) -> bool:
        return self.role in (self.Role.ORGANIZER, self.Role.ADMIN)

    @property
    def display_name(self) -> str:
        """Full name, falling back to a prettified username."""
        return self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()
