from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from accounts.models import BoxOfficeUser


@admin.register(BoxOfficeUser)
class BoxOfficeUserAdmin(UserAdmin):  # type: ignore[type-arg]
    list_display = ["username", "email", "role", "is_active", "date_joined"]
    list_filter = ["role", "is_active", "is_staff"]
    search_fields = ["username", "email", "first_name", "last_name"]
    fieldsets = (*UserAdmin.fieldsets, ("Box office", {"fields": ("role", "phone_number")}))  # type: ignore[misc]
