# src/events/admin.py
"""Admin for the event catalog and the booking records.

Events and their pricing categories are maintained here. Payments, refunds and
tickets are read-only: they only change through the booking services.
"""

import typing as t

from django.contrib import admin
from django.http import HttpRequest
from django.urls import reverse
from django.utils.html import format_html
from django.utils.safestring import mark_safe

from events import models


class PricingCategoryInline(admin.TabularInline):  # type: ignore[type-arg]
    model = models.PricingCategory
    extra = 1
    fields = ["name", "description", "unit_price", "total_units", "available_units"]
    readonly_fields = ["available_units"]


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["name", "organizer", "status", "start", "venue", "currency"]
    list_filter = ["status", "currency"]
    search_fields = ["name", "venue", "organizer__username"]
    raw_id_fields = ["organizer"]
    date_hierarchy = "start"
    inlines = [PricingCategoryInline]


class ReadOnlyAdminMixin:
    def has_add_permission(self, request: HttpRequest, obj: t.Any = None) -> bool:
        return False

    def has_change_permission(self, request: HttpRequest, obj: t.Any = None) -> bool:
        return False

    def has_delete_permission(self, request: HttpRequest, obj: t.Any = None) -> bool:
        return False


class RefundInline(ReadOnlyAdminMixin, admin.TabularInline):  # type: ignore[type-arg]
    model = models.Refund
    extra = 0
    fields = ["amount", "reason", "status", "processed_at", "gateway_refund_id", "requested_by"]


@admin.register(models.Payment)
class PaymentAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["payment_id", "buyer", "event_link", "amount_display", "status_display", "expires_at"]
    list_filter = ["status", "method_type", "method_provider", "currency"]
    search_fields = ["payment_id", "buyer__username", "billing_email", "gateway_transaction_id"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [RefundInline]

    @admin.display(description="Event")
    def event_link(self, obj: models.Payment) -> str:
        url = reverse("admin:events_event_change", args=[obj.event_id])
        return format_html('<a href="{}">{}</a>', url, obj.event.name)

    @admin.display(description="Amount")
    def amount_display(self, obj: models.Payment) -> str:
        return f"{obj.total} {obj.currency}"

    @admin.display(description="Status")
    def status_display(self, obj: models.Payment) -> str:
        colors: dict[t.Any, str] = {
            models.Payment.PaymentStatus.PENDING: "orange",
            models.Payment.PaymentStatus.COMPLETED: "green",
            models.Payment.PaymentStatus.FAILED: "red",
            models.Payment.PaymentStatus.REFUNDED: "blue",
            models.Payment.PaymentStatus.PARTIALLY_REFUNDED: "blue",
        }
        color = colors.get(obj.status, "gray")
        return mark_safe(f'<span style="color: {color};">{obj.get_status_display()}</span>')


@admin.register(models.Ticket)
class TicketAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):  # type: ignore[type-arg]
    list_display = ["ticket_number", "event", "buyer", "category_name", "unit_price", "status", "used_at"]
    list_filter = ["status", "event"]
    search_fields = ["ticket_number", "buyer__username", "event__name", "payment__payment_id"]
    exclude = ["qr_payload", "qr_signature"]
    date_hierarchy = "created_at"
