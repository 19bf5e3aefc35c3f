"""Inventory ledger.

The only code that moves ``PricingCategory.available_units``. Every change is a
single conditional UPDATE, so concurrent reservations against the same category
can never oversell, on PostgreSQL or on SQLite.
"""

import typing as t
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import F
from django.db.models.functions import Least
from django.utils import timezone

from events.exceptions import CategoryNotFound, InsufficientInventory, InvalidBookingRequest
from events.models import Event, PricingCategory, Ticket

logger = structlog.get_logger(__name__)


@dataclass
class Reservation:
    """A granted claim on ``quantity`` units of one category.

    ``unit_price`` is read when the reservation is granted and stays frozen for
    the rest of the booking.
    """

    category_id: UUID
    category_name: str
    quantity: int
    unit_price: Decimal
    released: bool = False

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def reserve(event: Event, category_name: str, quantity: int) -> Reservation:
    """Atomically take ``quantity`` units from a category.

    Raises:
        InvalidBookingRequest: quantity below one.
        CategoryNotFound: the event has no category with that name.
        InsufficientInventory: fewer than ``quantity`` units are available.
    """
    if quantity < 1:
        raise InvalidBookingRequest("Quantity must be at least 1.", category=category_name, requested=quantity)

    category = PricingCategory.objects.filter(event=event, name=category_name).first()
    if category is None:
        raise CategoryNotFound(category=category_name, event_id=str(event.pk))

    updated = PricingCategory.objects.filter(pk=category.pk, available_units__gte=quantity).update(
        available_units=F("available_units") - quantity, updated_at=timezone.now()
    )
    if not updated:
        available = PricingCategory.objects.filter(pk=category.pk).values_list("available_units", flat=True).first()
        logger.info(
            "inventory_reservation_denied",
            event_id=str(event.pk),
            category=category_name,
            requested=quantity,
            available=available,
        )
        raise InsufficientInventory(
            f"Only {available or 0} ticket(s) left in '{category_name}'.",
            category=category_name,
            requested=quantity,
            available=available or 0,
        )

    logger.info("inventory_reserved", event_id=str(event.pk), category=category_name, quantity=quantity)
    return Reservation(
        category_id=category.pk,
        category_name=category.name,
        quantity=quantity,
        unit_price=category.unit_price,
    )


def _release_units(category_id: UUID, quantity: int) -> int:
    """Give units back, never beyond ``total_units``."""
    return PricingCategory.objects.filter(pk=category_id).update(
        available_units=Least(F("available_units") + quantity, F("total_units")),
        updated_at=timezone.now(),
    )


def release(event: Event, category_name: str, quantity: int) -> None:
    """Return ``quantity`` units to a category, capped at its total.

    Callers are responsible for releasing a reservation only once; see
    :func:`release_reservation`.
    """
    category_id = PricingCategory.objects.filter(event=event, name=category_name).values_list("pk", flat=True).first()
    if category_id is None:
        raise CategoryNotFound(category=category_name, event_id=str(event.pk))
    _release_units(category_id, quantity)
    logger.info("inventory_released", event_id=str(event.pk), category=category_name, quantity=quantity)


def release_reservation(reservation: Reservation) -> bool:
    """Release a reservation unless it was already released."""
    if reservation.released:
        return False
    _release_units(reservation.category_id, reservation.quantity)
    reservation.released = True
    logger.info("inventory_released", category=reservation.category_name, quantity=reservation.quantity)
    return True


def retire_tickets(tickets: t.Iterable[Ticket], status: str) -> list[Ticket]:
    """Move tickets that still hold a unit to ``status`` and give their units back.

    Each ticket moves with its own conditional update, so a ticket raced into
    another state by a concurrent request is skipped and never releases twice.
    Returns the tickets that were actually retired.
    """
    retired: list[Ticket] = []
    for ticket in tickets:
        with transaction.atomic():
            moved = Ticket.objects.filter(pk=ticket.pk, status__in=Ticket.RETIRABLE_STATUSES).update(
                status=status, updated_at=timezone.now()
            )
            if not moved:
                continue
            _release_units(ticket.category_id, 1)
        ticket.status = status
        retired.append(ticket)

    if retired:
        logger.info(
            "inventory_released",
            ticket_ids=[str(ticket.pk) for ticket in retired],
            quantity=len(retired),
            reason=status,
        )
    return retired
