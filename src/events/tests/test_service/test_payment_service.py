import typing as t
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from accounts.models import BoxOfficeUser
from events.exceptions import (
    AmountExceedsAvailable,
    Forbidden,
    InvalidBookingRequest,
    NotFoundError,
    NotRefundable,
    PaymentExpired,
    PaymentNotPending,
    RefundAlreadySettled,
    UnsupportedPaymentMethod,
)
from events.models import Event, Payment, PricingCategory, Refund, Ticket
from events.service import payment_service
from events.service.booking_service import BookingResult
from events.service.payment_processors import GatewayResult, PaymentMethod

pytestmark = pytest.mark.django_db

SANDBOX_WALLET = PaymentMethod(type="mobile_wallet", provider="dialog")
DECLINED_WALLET = PaymentMethod(type="mobile_wallet", provider="dialog", details={"simulate": "decline"})


def _statuses(payment: Payment) -> set[str]:
    return set(payment.tickets.values_list("status", flat=True))


def _available(category: PricingCategory) -> int:
    category.refresh_from_db()
    return category.available_units


class TestCalculateAmount:
    def test_no_tax_or_fee_by_default(self) -> None:
        amount = payment_service.calculate_amount(Decimal("2000"), "LKR")
        assert amount.total == amount.subtotal == Decimal("2000.00")
        assert amount.tax == amount.fee == Decimal("0.00")

    def test_rounding_to_cents(self, settings: t.Any) -> None:
        settings.TICKET_TAX_PERCENT = Decimal("15")
        amount = payment_service.calculate_amount(Decimal("333.33"), "USD")
        assert amount.tax == Decimal("50.00")
        assert amount.total == Decimal("383.33")

    def test_discount_never_makes_total_negative(self) -> None:
        amount = payment_service.calculate_amount(Decimal("10"), "USD", discount=Decimal("25"))
        assert amount.total == Decimal("0")


class TestStateTransitions:
    def test_mark_completed_confirms_tickets(self, pending_booking: BookingResult) -> None:
        payment = pending_booking.payment

        payment_service.mark_completed(
            payment, GatewayResult(succeeded=True, reference="txn_1", status="succeeded", raw={"id": "txn_1"})
        )

        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert payment.processed_at is not None
        assert payment.gateway_transaction_id == "txn_1"
        assert payment.gateway_raw == {"id": "txn_1"}
        assert _statuses(payment) == {Ticket.TicketStatus.CONFIRMED}

    def test_mark_completed_twice(self, completed_payment: Payment) -> None:
        with pytest.raises(PaymentNotPending):
            payment_service.mark_completed(completed_payment, GatewayResult(succeeded=True))

    def test_mark_failed_cancels_and_releases(self, pending_booking: BookingResult, normal: PricingCategory) -> None:
        payment = pending_booking.payment
        assert _available(normal) == 98

        payment_service.mark_failed(payment, GatewayResult(succeeded=False, message="Declined", status="declined"))

        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.FAILED
        assert payment.gateway_message == "Declined"
        assert _statuses(payment) == {Ticket.TicketStatus.CANCELLED}
        assert _available(normal) == 100

    def test_mark_failed_on_completed_payment_is_refused(self, completed_payment: Payment) -> None:
        with pytest.raises(PaymentNotPending):
            payment_service.mark_failed(completed_payment, reason="late decline")
        assert _statuses(completed_payment) == {Ticket.TicketStatus.CONFIRMED}

    def test_get_payment(self, pending_booking: BookingResult) -> None:
        assert payment_service.get_payment(pending_booking.payment.payment_id) == pending_booking.payment
        with pytest.raises(NotFoundError):
            payment_service.get_payment("PAY-NOPE")


class TestLazyExpiry:
    def test_fresh_payment_is_left_alone(self, pending_booking: BookingResult) -> None:
        assert payment_service.expire_if_stale(pending_booking.payment) is False

    def test_stale_payment_fails_and_releases(self, pending_booking: BookingResult, normal: PricingCategory) -> None:
        payment = pending_booking.payment

        with freeze_time(timezone.now() + timedelta(hours=25)):
            assert payment_service.expire_if_stale(payment) is True

        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.FAILED
        assert _statuses(payment) == {Ticket.TicketStatus.CANCELLED}
        assert _available(normal) == 100

    def test_expiry_only_once(self, pending_booking: BookingResult, normal: PricingCategory) -> None:
        payment = pending_booking.payment
        stale_copy = Payment.objects.get(pk=payment.pk)

        with freeze_time(timezone.now() + timedelta(hours=25)):
            assert payment_service.expire_if_stale(payment) is True
            assert payment_service.expire_if_stale(stale_copy) is False

        assert _available(normal) == 100

    def test_completed_payment_never_expires(self, completed_payment: Payment) -> None:
        with freeze_time(timezone.now() + timedelta(days=3)):
            assert payment_service.expire_if_stale(completed_payment) is False


class TestProcessPayment:
    def test_success(self, pending_booking: BookingResult, buyer: BoxOfficeUser) -> None:
        payment = payment_service.process_payment(pending_booking.payment, requester=buyer, method=SANDBOX_WALLET)

        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert payment.method_type == Payment.MethodType.MOBILE_WALLET
        assert payment.method_provider == Payment.Provider.DIALOG
        assert payment.gateway_transaction_id.startswith("SBX-")
        assert _statuses(payment) == {Ticket.TicketStatus.CONFIRMED}

    def test_decline_releases_inventory(
        self, pending_booking: BookingResult, buyer: BoxOfficeUser, normal: PricingCategory
    ) -> None:
        payment = payment_service.process_payment(pending_booking.payment, requester=buyer, method=DECLINED_WALLET)

        assert payment.status == Payment.PaymentStatus.FAILED
        assert payment.gateway_status == "declined"
        assert _statuses(payment) == {Ticket.TicketStatus.CANCELLED}
        assert _available(normal) == 100

    def test_only_the_buyer(self, pending_booking: BookingResult, other_buyer: BoxOfficeUser) -> None:
        with pytest.raises(Forbidden):
            payment_service.process_payment(pending_booking.payment, requester=other_buyer, method=SANDBOX_WALLET)
        assert Payment.objects.get(pk=pending_booking.payment.pk).status == Payment.PaymentStatus.PENDING

    def test_expired(self, pending_booking: BookingResult, buyer: BoxOfficeUser, normal: PricingCategory) -> None:
        with freeze_time(timezone.now() + timedelta(hours=25)):
            with pytest.raises(PaymentExpired):
                payment_service.process_payment(pending_booking.payment, requester=buyer, method=SANDBOX_WALLET)

        assert Payment.objects.get(pk=pending_booking.payment.pk).status == Payment.PaymentStatus.FAILED
        assert _available(normal) == 100

    def test_already_completed(self, completed_payment: Payment, buyer: BoxOfficeUser) -> None:
        with pytest.raises(PaymentNotPending):
            payment_service.process_payment(completed_payment, requester=buyer, method=SANDBOX_WALLET)

    def test_unsupported_method(self, pending_booking: BookingResult, buyer: BoxOfficeUser) -> None:
        with pytest.raises(UnsupportedPaymentMethod):
            payment_service.process_payment(
                pending_booking.payment, requester=buyer, method=PaymentMethod(type="credit_card", provider="cod")
            )
        assert Payment.objects.get(pk=pending_booking.payment.pk).status == Payment.PaymentStatus.PENDING

    @patch("stripe.PaymentIntent.create")
    def test_card_payment_through_stripe(
        self, mock_create: t.Any, pending_booking: BookingResult, buyer: BoxOfficeUser
    ) -> None:
        mock_create.return_value = type("Intent", (), {"id": "pi_123", "status": "succeeded", "amount": 200000})()

        payment = payment_service.process_payment(
            pending_booking.payment,
            requester=buyer,
            method=PaymentMethod(type="credit_card", details={"payment_method": "pm_card_visa"}),
        )

        assert payment.status == Payment.PaymentStatus.COMPLETED
        assert payment.gateway_transaction_id == "pi_123"
        assert mock_create.call_args.kwargs["amount"] == 200000
        assert mock_create.call_args.kwargs["metadata"] == {"payment_id": payment.payment_id}

    @patch("events.service.payment_processors.SandboxProcessor.process_external_payment")
    def test_processor_error_fails_the_payment(
        self, mock_charge: t.Any, pending_booking: BookingResult, buyer: BoxOfficeUser, normal: PricingCategory
    ) -> None:
        mock_charge.side_effect = ConnectionError("gateway unreachable")
        payment = pending_booking.payment

        with pytest.raises(ConnectionError):
            payment_service.process_payment(payment, requester=buyer, method=SANDBOX_WALLET)

        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.FAILED
        assert payment.gateway_message == "Payment processor error."
        assert _statuses(payment) == {Ticket.TicketStatus.CANCELLED}
        assert _available(normal) == 100

    @patch("events.service.payment_processors.SandboxProcessor.process_external_payment")
    def test_charges_the_current_total(
        self, mock_charge: t.Any, pending_booking: BookingResult, buyer: BoxOfficeUser
    ) -> None:
        mock_charge.return_value = GatewayResult(succeeded=True, reference="SBX-1", status="succeeded")
        payment = pending_booking.payment
        Payment.objects.filter(pk=payment.pk).update(total=Decimal("1000"))

        payment_service.process_payment(payment, requester=buyer, method=SANDBOX_WALLET)

        assert mock_charge.call_args.args[1] == Decimal("1000")


class TestCloseIfAbandoned:
    def test_pending_payment_without_live_tickets_is_cancelled(self, pending_booking: BookingResult) -> None:
        payment = pending_booking.payment
        payment.tickets.update(status=Ticket.TicketStatus.CANCELLED)

        assert payment_service.close_if_abandoned(payment) is True
        payment.refresh_from_db()
        assert payment.status == Payment.PaymentStatus.CANCELLED

    def test_payment_with_live_tickets_stays(self, pending_booking: BookingResult) -> None:
        assert payment_service.close_if_abandoned(pending_booking.payment) is False


class TestReprice:
    def test_pending_payment_follows_live_tickets(self, pending_booking: BookingResult) -> None:
        payment = pending_booking.payment
        Ticket.objects.filter(pk=pending_booking.tickets[0].pk).update(status=Ticket.TicketStatus.CANCELLED)

        assert payment_service.reprice(payment) is True

        payment.refresh_from_db()
        assert payment.subtotal == Decimal("1000.00")
        assert payment.total == Decimal("1000.00")

    def test_tax_and_fee_are_recomputed(self, pending_booking: BookingResult, settings: t.Any) -> None:
        settings.TICKET_TAX_PERCENT = Decimal("10")
        payment = pending_booking.payment
        Ticket.objects.filter(pk=pending_booking.tickets[0].pk).update(status=Ticket.TicketStatus.CANCELLED)

        payment_service.reprice(payment)

        payment.refresh_from_db()
        assert payment.tax == Decimal("100.00")
        assert payment.total == Decimal("1100.00")

    def test_unchanged_tickets_leave_the_amounts(self, pending_booking: BookingResult) -> None:
        assert payment_service.reprice(pending_booking.payment) is False

    def test_settled_payment_is_never_repriced(self, completed_payment: Payment) -> None:
        completed_payment.tickets.update(status=Ticket.TicketStatus.CANCELLED)

        assert payment_service.reprice(completed_payment) is False
        completed_payment.refresh_from_db()
        assert completed_payment.total == Decimal("2000.00")


class TestRefund:
    def test_full_refund(self, completed_payment: Payment, normal: PricingCategory, buyer: BoxOfficeUser) -> None:
        """A completed 2000 payment with two tickets, refunded in full."""
        assert _available(normal) == 98

        refund = payment_service.refund(completed_payment, amount=Decimal("2000"), reason="Can't make it")

        completed_payment.refresh_from_db()
        assert completed_payment.status == Payment.PaymentStatus.REFUNDED
        assert _statuses(completed_payment) == {Ticket.TicketStatus.CANCELLED}
        assert _available(normal) == 100
        assert refund.status == Refund.RefundStatus.PENDING
        assert refund.amount == Decimal("2000")

    def test_refund_defaults_to_remaining(self, completed_payment: Payment) -> None:
        refund = payment_service.refund(completed_payment)

        assert refund.amount == Decimal("2000")
        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.REFUNDED

    def test_partial_refund_is_amount_only(self, completed_payment: Payment, normal: PricingCategory) -> None:
        payment_service.refund(completed_payment, amount=Decimal("500"))

        completed_payment.refresh_from_db()
        assert completed_payment.status == Payment.PaymentStatus.PARTIALLY_REFUNDED
        assert _statuses(completed_payment) == {Ticket.TicketStatus.CONFIRMED}
        assert _available(normal) == 98
        assert completed_payment.refundable_amount() == Decimal("1500")

    def test_ticket_specific_refund(self, completed_payment: Payment, normal: PricingCategory) -> None:
        ticket, kept = list(completed_payment.tickets.all())

        refund = payment_service.refund(completed_payment, ticket_ids=[ticket.pk])

        assert refund.amount == Decimal("1000")
        assert list(refund.tickets.all()) == [ticket]
        ticket.refresh_from_db()
        kept.refresh_from_db()
        assert ticket.status == Ticket.TicketStatus.REFUNDED
        assert kept.status == Ticket.TicketStatus.CONFIRMED
        assert _available(normal) == 99
        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.PARTIALLY_REFUNDED

    def test_refunding_the_last_ticket_completes_the_refund(
        self, completed_payment: Payment, normal: PricingCategory
    ) -> None:
        first, second = list(completed_payment.tickets.all())
        payment_service.refund(completed_payment, ticket_ids=[first.pk])
        payment_service.refund(completed_payment, ticket_ids=[second.pk])

        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.REFUNDED
        assert _statuses(completed_payment) == {Ticket.TicketStatus.REFUNDED}
        assert _available(normal) == 100

    def test_amount_exceeding_remaining(self, completed_payment: Payment) -> None:
        payment_service.refund(completed_payment, amount=Decimal("1500"))

        with pytest.raises(AmountExceedsAvailable) as exc_info:
            payment_service.refund(completed_payment, amount=Decimal("600"))

        assert exc_info.value.context["available"] == "500.00"
        assert completed_payment.refunds.count() == 1

    def test_failed_refunds_free_their_amount(self, completed_payment: Payment) -> None:
        refund = payment_service.refund(completed_payment, amount=Decimal("1500"))
        payment_service.settle_refund(refund, succeeded=False)

        payment_service.refund(completed_payment, amount=Decimal("2000"))

        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.REFUNDED

    def test_refund_bound_over_many_requests(self, completed_payment: Payment) -> None:
        granted = Decimal("0")
        for amount in ["700", "700", "700", "700"]:
            try:
                payment_service.refund(completed_payment, amount=Decimal(amount))
                granted += Decimal(amount)
            except (AmountExceedsAvailable, NotRefundable):
                pass

        assert granted == Decimal("1400")
        assert completed_payment.committed_refund_amount() <= completed_payment.total

    @pytest.mark.parametrize("status", [Payment.PaymentStatus.PENDING, Payment.PaymentStatus.FAILED])
    def test_unsettled_payment_is_not_refundable(self, pending_booking: BookingResult, status: str) -> None:
        payment = pending_booking.payment
        Payment.objects.filter(pk=payment.pk).update(status=status)

        with pytest.raises(NotRefundable):
            payment_service.refund(payment)

    def test_fully_refunded_payment_is_not_refundable(self, completed_payment: Payment) -> None:
        payment_service.refund(completed_payment)
        with pytest.raises(NotRefundable):
            payment_service.refund(completed_payment, amount=Decimal("1"))

    def test_not_after_event_start(self, completed_payment: Payment, event: Event) -> None:
        with freeze_time(event.start + timedelta(minutes=5)):
            with pytest.raises(NotRefundable):
                payment_service.refund(completed_payment)

    @pytest.mark.parametrize("amount", ["0", "-50"])
    def test_non_positive_amount(self, completed_payment: Payment, amount: str) -> None:
        with pytest.raises(InvalidBookingRequest):
            payment_service.refund(completed_payment, amount=Decimal(amount))

        assert not completed_payment.refunds.exists()
        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.COMPLETED

    def test_foreign_ticket(self, completed_payment: Payment, book: t.Callable[..., BookingResult]) -> None:
        other = book(("Normal", 1)).tickets[0]
        with pytest.raises(InvalidBookingRequest):
            payment_service.refund(completed_payment, ticket_ids=[other.pk])

    def test_used_ticket(self, completed_payment: Payment) -> None:
        ticket = completed_payment.tickets.first()
        assert ticket is not None
        Ticket.objects.filter(pk=ticket.pk).update(status=Ticket.TicketStatus.USED)

        with pytest.raises(NotRefundable):
            payment_service.refund(completed_payment, ticket_ids=[ticket.pk])


class TestSettleRefund:
    def test_completed(self, completed_payment: Payment) -> None:
        refund = payment_service.refund(completed_payment, amount=Decimal("500"))

        settled = payment_service.settle_refund(refund, succeeded=True, gateway_refund_id="re_1")

        assert settled.status == Refund.RefundStatus.COMPLETED
        assert settled.processed_at is not None
        assert settled.gateway_refund_id == "re_1"
        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.PARTIALLY_REFUNDED

    def test_failed_partial_refund_restores_completed(self, completed_payment: Payment) -> None:
        refund = payment_service.refund(completed_payment, amount=Decimal("500"))

        payment_service.settle_refund(refund, succeeded=False)

        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.COMPLETED

    def test_failed_full_refund_restores_completed(self, completed_payment: Payment) -> None:
        refund = payment_service.refund(completed_payment)
        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.REFUNDED

        payment_service.settle_refund(refund, succeeded=False)

        completed_payment.refresh_from_db()
        assert completed_payment.status == Payment.PaymentStatus.COMPLETED
        assert completed_payment.refundable_amount() == Decimal("2000.00")

    def test_failed_remainder_refund_restores_partially_refunded(self, completed_payment: Payment) -> None:
        first = payment_service.refund(completed_payment, amount=Decimal("500"))
        payment_service.settle_refund(first, succeeded=True)
        remainder = payment_service.refund(completed_payment, amount=Decimal("1500"))
        assert Payment.objects.get(pk=completed_payment.pk).status == Payment.PaymentStatus.REFUNDED

        payment_service.settle_refund(remainder, succeeded=False)

        completed_payment.refresh_from_db()
        assert completed_payment.status == Payment.PaymentStatus.PARTIALLY_REFUNDED
        assert completed_payment.refundable_amount() == Decimal("1500.00")
        payment_service.refund(completed_payment, amount=Decimal("1500"))

    def test_only_once(self, completed_payment: Payment) -> None:
        refund = payment_service.refund(completed_payment, amount=Decimal("500"))
        payment_service.settle_refund(refund, succeeded=True)

        with pytest.raises(RefundAlreadySettled):
            payment_service.settle_refund(refund, succeeded=False)
