import typing as t

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from common.models import TimeStampedModel


class Event(TimeStampedModel):
    """A catalog entry that tickets can be booked against.

    Events are managed outside of the booking core (admin). The core only reads
    them and writes back the category counters.
    """

    class EventStatus(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        CANCELLED = "cancelled", "Cancelled"
        COMPLETED = "completed", "Completed"

    name = models.CharField(max_length=255, db_index=True)
    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="organized_events"
    )
    status = models.CharField(max_length=16, choices=EventStatus.choices, default=EventStatus.DRAFT, db_index=True)
    start = models.DateTimeField(db_index=True)
    end = models.DateTimeField(null=True, blank=True)
    venue = models.CharField(max_length=255, blank=True)
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY, help_text="ISO 4217 currency code")

    class Meta:
        ordering = ["start"]

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        if self.end and self.end < self.start:
            raise DjangoValidationError({"end": "An event cannot end before it starts."})
        if self.currency not in settings.CURRENCIES:
            raise DjangoValidationError({"currency": f"Unsupported currency '{self.currency}'."})

    def has_started(self) -> bool:
        return self.start <= timezone.now()

    def is_bookable(self) -> bool:
        """Only published events in the future accept bookings."""
        return self.status == self.EventStatus.PUBLISHED and not self.has_started()


class PricingCategory(TimeStampedModel):
    """A priced tier of an event with its own unit inventory.

    ``available_units`` is only ever changed by the inventory ledger through
    conditional updates. Saving a model instance never touches it after creation.
    """

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="categories")
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    total_units = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    available_units = models.PositiveIntegerField(blank=True)

    class Meta:
        ordering = ["event", "unit_price"]
        constraints = [
            models.UniqueConstraint(fields=["event", "name"], name="unique_category_name_per_event"),
            models.CheckConstraint(
                condition=Q(available_units__lte=F("total_units")),
                name="available_units_within_total",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.event.name} - {self.name}"

    @property
    def sold_units(self) -> int:
        return self.total_units - self.available_units

    def clean(self) -> None:
        if self._state.adding:
            return
        stored = PricingCategory.objects.filter(pk=self.pk).values("total_units", "available_units").first()
        if stored is None:
            return
        sold = stored["total_units"] - stored["available_units"]
        if sold and self.total_units != stored["total_units"]:
            raise DjangoValidationError({"total_units": "Total units cannot change once units have been sold."})

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Persist catalog fields without overwriting the live counter.

        New categories start fully available. While nothing has been sold the
        counter follows ``total_units``; after that only the ledger moves it.
        """
        if self._state.adding:
            if self.available_units is None:
                self.available_units = self.total_units
            super().save(*args, **kwargs)
            return

        stored = PricingCategory.objects.filter(pk=self.pk).values("total_units", "available_units").first()
        untouched = stored is not None and stored["total_units"] == stored["available_units"]
        if stored is not None:
            self.available_units = self.total_units if untouched else stored["available_units"]
        if kwargs.get("update_fields") is None:
            kwargs["update_fields"] = [
                f.name for f in self._meta.concrete_fields if not f.primary_key and f.name != "available_units"
            ]
        super().save(*args, **kwargs)
        if untouched:
            # the guard on the old total keeps a concurrent reservation intact
            PricingCategory.objects.filter(pk=self.pk, available_units=stored["total_units"]).update(  # type: ignore[index]
                available_units=self.total_units
            )
