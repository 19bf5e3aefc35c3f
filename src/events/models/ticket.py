import secrets
import typing as t

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


def generate_ticket_number() -> str:
    """TKT- followed by 20 random hex characters (80 bits)."""
    return f"TKT-{secrets.token_hex(10).upper()}"


class TicketQuerySet(models.QuerySet["Ticket"]):
    def full(self) -> t.Self:
        return self.select_related("event", "category", "payment", "buyer")

    def live(self) -> t.Self:
        """Tickets that hold a unit of inventory."""
        return self.filter(status__in=Ticket.HOLDING_STATUSES)


class TicketManager(models.Manager["Ticket"]):
    def get_queryset(self) -> TicketQuerySet:
        return TicketQuerySet(self.model, using=self._db)

    def full(self) -> TicketQuerySet:
        return self.get_queryset().full()

    def live(self) -> TicketQuerySet:
        return self.get_queryset().live()


class Ticket(TimeStampedModel):
    """One admission unit.

    Tickets are never deleted. Cancellation and refunds are status transitions
    so the audit trail survives.
    """

    class TicketStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED = "cancelled", "Cancelled"
        USED = "used", "Used"
        REFUNDED = "refunded", "Refunded"

    HOLDING_STATUSES = (TicketStatus.PENDING, TicketStatus.CONFIRMED, TicketStatus.USED)
    RETIRABLE_STATUSES = (TicketStatus.PENDING, TicketStatus.CONFIRMED)

    ticket_number = models.CharField(max_length=32, unique=True, default=generate_ticket_number, editable=False)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="tickets")
    event = models.ForeignKey("events.Event", on_delete=models.PROTECT, related_name="tickets")
    payment = models.ForeignKey("events.Payment", on_delete=models.PROTECT, related_name="tickets")
    category = models.ForeignKey("events.PricingCategory", on_delete=models.PROTECT, related_name="tickets")

    # frozen at purchase time
    category_name = models.CharField(max_length=100)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)

    qr_payload = models.TextField()
    qr_signature = models.CharField(max_length=64)
    qr_issued_at = models.DateTimeField()

    status = models.CharField(
        max_length=16, choices=TicketStatus.choices, default=TicketStatus.PENDING, db_index=True
    )
    used_at = models.DateTimeField(null=True, blank=True)
    used_by_label = models.CharField(max_length=255, blank=True)

    objects = TicketManager()

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["event", "status"], name="ticket_event_status_idx"),
            models.Index(fields=["category", "status"], name="ticket_category_status_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.ticket_number} ({self.status})"
