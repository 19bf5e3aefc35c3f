"""Booking orchestrator.

One booking attempt moves through::

    validating -> reserving -> payment_record_created -> tickets_minted -> complete

and, when something fails after units were reserved::

    reservation_failed -> aborted
    minting_failed -> compensating -> aborted

Reservations are committed one category at a time. The attempt keeps a list of
what it reserved so compensation gives every reservation back exactly once,
whichever branch triggers it.
"""

import enum
import typing as t
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import DatabaseError, transaction

from accounts.models import BoxOfficeUser
from events.exceptions import (
    BookingError,
    EventNotBookable,
    InvalidBookingRequest,
    NotFoundError,
    PaymentNotPending,
    PersistenceError,
    UnknownCategory,
)
from events.models import Event, Payment, PricingCategory, Ticket
from events.service import inventory, payment_service, ticket_factory
from events.service.inventory import Reservation
from events.service.payment_processors import PaymentMethod, PaymentProcessor, get_processor
from events.service.payment_service import BillingContact
from events.signals import tickets_ready

logger = structlog.get_logger(__name__)


class BookingState(enum.StrEnum):
    VALIDATING = "validating"
    RESERVING = "reserving"
    PAYMENT_RECORD_CREATED = "payment_record_created"
    TICKETS_MINTED = "tickets_minted"
    COMPLETE = "complete"
    RESERVATION_FAILED = "reservation_failed"
    MINTING_FAILED = "minting_failed"
    COMPENSATING = "compensating"
    ABORTED = "aborted"


@dataclass(frozen=True)
class BookingLine:
    category_name: str
    quantity: int


@dataclass(frozen=True)
class BookingRequest:
    event_id: UUID
    lines: list[BookingLine]
    buyer: BoxOfficeUser
    billing: BillingContact
    method: PaymentMethod | None = None


@dataclass
class BookingResult:
    payment: Payment
    tickets: list[Ticket]
    total: Decimal


@dataclass
class BookingAttempt:
    """Bookkeeping for one call to :meth:`BookingService.book`."""

    state: BookingState = BookingState.VALIDATING
    reservations: list[Reservation] = field(default_factory=list)
    payment: Payment | None = None

    def advance(self, state: BookingState) -> None:
        logger.debug("booking_state_changed", from_state=self.state, to_state=state)
        self.state = state


class BookingService:
    def __init__(self, request: BookingRequest) -> None:
        """Initialize the booking service."""
        self.request = request
        self.attempt = BookingAttempt()
        self.categories: dict[str, PricingCategory] = {}
        self.processor: PaymentProcessor | None = None

    def book(self) -> BookingResult:
        """Reserve, charge and mint, or leave everything as it was.

        Raises:
            BookingValidationError: bad request, event not bookable, unknown category.
            NotFoundError: the event does not exist.
            InsufficientInventory: a category ran out; earlier reservations were released.
            BookingIntegrityError: signing or storage failed; the attempt was compensated.

        Any other error is re-raised unchanged once the attempt has been compensated.
        """
        event = self._validate()

        self.attempt.advance(BookingState.RESERVING)
        try:
            for line in self.request.lines:
                self.attempt.reservations.append(inventory.reserve(event, line.category_name, line.quantity))
        except BookingError:
            self.attempt.advance(BookingState.RESERVATION_FAILED)
            self._compensate()
            raise
        except DatabaseError as e:
            self.attempt.advance(BookingState.RESERVATION_FAILED)
            self._compensate()
            raise PersistenceError() from e
        except Exception:
            self.attempt.advance(BookingState.RESERVATION_FAILED)
            self._compensate()
            raise

        amount = payment_service.calculate_amount(
            sum((r.line_total for r in self.attempt.reservations), Decimal("0")), event.currency
        )

        try:
            self.attempt.payment = payment_service.create_payment(
                buyer=self.request.buyer,
                event=event,
                amount=amount,
                billing=self.request.billing,
                method=self.request.method,
            )
            self._settle_up_front(self.attempt.payment)
            self.attempt.advance(BookingState.PAYMENT_RECORD_CREATED)
            tickets = self._mint(self.attempt.payment)
        except BookingError:
            self.attempt.advance(BookingState.MINTING_FAILED)
            self._compensate()
            raise
        except (DatabaseError, DjangoValidationError) as e:
            self.attempt.advance(BookingState.MINTING_FAILED)
            self._compensate()
            raise PersistenceError() from e
        except Exception:
            self.attempt.advance(BookingState.MINTING_FAILED)
            self._compensate()
            raise

        self.attempt.advance(BookingState.TICKETS_MINTED)
        payment = self.attempt.payment
        self._announce(payment, tickets)
        self.attempt.advance(BookingState.COMPLETE)
        logger.info(
            "booking_completed",
            payment_id=payment.payment_id,
            event_id=str(event.pk),
            buyer_id=str(self.request.buyer.pk),
            tickets=len(tickets),
            total=str(payment.total),
            status=payment.status,
        )
        return BookingResult(payment=payment, tickets=tickets, total=payment.total)

    def _validate(self) -> Event:
        """Nothing is mutated before this passes."""
        lines = self.request.lines
        if not lines:
            raise InvalidBookingRequest("At least one booking line is required.")
        names = [line.category_name for line in lines]
        if len(set(names)) != len(names):
            raise InvalidBookingRequest("Each category may appear only once.", categories=names)
        for line in lines:
            if not 1 <= line.quantity <= settings.MAX_UNITS_PER_LINE:
                raise InvalidBookingRequest(
                    f"Quantity must be between 1 and {settings.MAX_UNITS_PER_LINE}.",
                    category=line.category_name,
                    requested=line.quantity,
                )
        self._validate_billing()

        event = Event.objects.filter(pk=self.request.event_id).first()
        if event is None:
            raise NotFoundError("Event not found.", event_id=str(self.request.event_id))
        if not event.is_bookable():
            raise EventNotBookable(event_id=str(event.pk), status=event.status, start=event.start.isoformat())

        self.categories = {c.name: c for c in event.categories.filter(name__in=names)}
        if unknown := [name for name in names if name not in self.categories]:
            raise UnknownCategory(
                f"Unknown category: {', '.join(unknown)}.", categories=unknown, event_id=str(event.pk)
            )
        self.processor = get_processor(self.request.method) if self.request.method else None
        return event

    def _validate_billing(self) -> None:
        billing = self.request.billing
        if not billing.name.strip():
            raise InvalidBookingRequest("Billing name is required.", field="billing.name")
        if not billing.phone.strip():
            raise InvalidBookingRequest("Billing phone is required.", field="billing.phone")
        try:
            validate_email(billing.email)
        except DjangoValidationError as e:
            raise InvalidBookingRequest("Billing email is invalid.", field="billing.email") from e

    def _settle_up_front(self, payment: Payment) -> None:
        """Complete the payment at once for methods without a confirmation step (cash on delivery)."""
        method = self.request.method
        if method is None or self.processor is None or self.processor.requires_confirmation:
            return
        result = self.processor.process_external_payment(
            method, payment.total, currency=payment.currency, reference=payment.payment_id
        )
        if result.succeeded:
            payment_service.mark_completed(payment, result)

    def _mint(self, payment: Payment) -> list[Ticket]:
        tickets: list[Ticket] = []
        with transaction.atomic():
            for reservation in self.attempt.reservations:
                tickets.extend(
                    ticket_factory.mint(
                        payment,
                        self.categories[reservation.category_name],
                        reservation.unit_price,
                        reservation.quantity,
                    )
                )
        return tickets

    def _compensate(self) -> None:
        """Release every reservation of this attempt once and fail its payment."""
        if self.attempt.state == BookingState.MINTING_FAILED:
            self.attempt.advance(BookingState.COMPENSATING)
        released = [r for r in self.attempt.reservations if inventory.release_reservation(r)]
        payment = self.attempt.payment
        if payment is not None:
            try:
                payment_service.mark_failed(
                    payment,
                    reason="Booking could not be completed.",
                    from_statuses=[Payment.PaymentStatus.PENDING, Payment.PaymentStatus.COMPLETED],
                )
            except PaymentNotPending:
                logger.warning("booking_compensation_payment_not_failed", payment_id=payment.payment_id)
        self.attempt.advance(BookingState.ABORTED)
        logger.info(
            "booking_compensated",
            event_id=str(self.request.event_id),
            buyer_id=str(self.request.buyer.pk),
            released=[{"category": r.category_name, "quantity": r.quantity} for r in released],
            payment_id=payment.payment_id if payment else None,
        )

    def _announce(self, payment: Payment, tickets: list[Ticket]) -> None:
        """Emit ``tickets_ready`` once the booking is committed."""
        payload: dict[str, t.Any] = {
            "buyer_id": str(payment.buyer_id),
            "event_id": str(payment.event_id),
            "payment_id": payment.payment_id,
            "ticket_ids": [str(ticket.pk) for ticket in tickets],
        }
        transaction.on_commit(lambda: tickets_ready.send_robust(sender=BookingService, **payload), robust=True)


def book(request: BookingRequest) -> BookingResult:
    return BookingService(request).book()
