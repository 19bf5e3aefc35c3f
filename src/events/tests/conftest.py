import typing as t
from datetime import datetime
from decimal import Decimal

import pytest

from accounts.models import BoxOfficeUser
from events.models import Event, Payment, PricingCategory
from events.service import booking_service
from events.service.booking_service import BookingLine, BookingRequest, BookingResult
from events.service.payment_processors import GatewayResult, PaymentMethod
from events.service.payment_service import BillingContact, mark_completed


@pytest.fixture
def event(organizer: BoxOfficeUser, next_week: datetime) -> Event:
    return Event.objects.create(
        name="Colombo Jazz Night",
        organizer=organizer,
        status=Event.EventStatus.PUBLISHED,
        start=next_week,
        venue="Nelum Pokuna",
        currency="LKR",
    )


@pytest.fixture
def normal(event: Event) -> PricingCategory:
    return PricingCategory.objects.create(event=event, name="Normal", unit_price=Decimal("1000"), total_units=100)


@pytest.fixture
def vip(event: Event) -> PricingCategory:
    return PricingCategory.objects.create(event=event, name="VIP", unit_price=Decimal("5000"), total_units=10)


@pytest.fixture
def billing(buyer: BoxOfficeUser) -> BillingContact:
    return BillingContact(name="Nimal Perera", email="nimal@example.com", phone="+94 77 123 4567")


@pytest.fixture
def book(event: Event, buyer: BoxOfficeUser, billing: BillingContact) -> t.Callable[..., BookingResult]:
    """Book ``(category, quantity)`` lines on the test event."""

    def _book(
        *lines: tuple[str, int],
        buyer: BoxOfficeUser = buyer,
        method: PaymentMethod | None = None,
    ) -> BookingResult:
        return booking_service.book(
            BookingRequest(
                event_id=event.pk,
                lines=[BookingLine(category_name=name, quantity=quantity) for name, quantity in lines],
                buyer=buyer,
                billing=billing,
                method=method,
            )
        )

    return _book


@pytest.fixture
def pending_booking(book: t.Callable[..., BookingResult], normal: PricingCategory) -> BookingResult:
    """Two Normal tickets on a pending payment."""
    return book(("Normal", 2))


@pytest.fixture
def completed_payment(pending_booking: BookingResult) -> Payment:
    """The two-ticket booking, settled."""
    payment = pending_booking.payment
    mark_completed(payment, GatewayResult(succeeded=True, reference="ch_test", status="succeeded"))
    payment.refresh_from_db()
    return payment
