"""Payment record manager.

Drives a payment through its lifecycle::

    pending -> processing -> completed | failed
    pending -> cancelled
    completed -> refunded | partially_refunded

Status changes are conditional updates keyed on the current status, so two
requests racing on the same payment cannot both apply a transition. Pending
payments past ``expires_at`` are failed lazily by :func:`expire_if_stale`,
which every state-changing entry point calls first.
"""

import typing as t
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

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
)
from events.models import Event, Payment, Refund, Ticket
from events.service import inventory
from events.service.payment_processors import GatewayResult, PaymentMethod, get_processor

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

SETTLEABLE_STATUSES = (Payment.PaymentStatus.PENDING, Payment.PaymentStatus.PROCESSING)
REFUNDED_STATUSES = (Payment.PaymentStatus.REFUNDED, Payment.PaymentStatus.PARTIALLY_REFUNDED)


@dataclass(frozen=True)
class Amount:
    subtotal: Decimal
    tax: Decimal
    fee: Decimal
    discount: Decimal
    total: Decimal
    currency: str


@dataclass(frozen=True)
class BillingContact:
    name: str
    email: str
    phone: str
    address: dict[str, t.Any] = field(default_factory=dict)


def _percent_of(value: Decimal, percent: Decimal) -> Decimal:
    return (value * percent / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_amount(subtotal: Decimal, currency: str, discount: Decimal = Decimal("0")) -> Amount:
    """Add the configured tax and service fee to a subtotal."""
    subtotal = subtotal.quantize(CENT)
    tax = _percent_of(subtotal, settings.TICKET_TAX_PERCENT)
    fee = _percent_of(subtotal, settings.TICKET_SERVICE_FEE_PERCENT)
    total = max(subtotal + tax + fee - discount, Decimal("0"))
    return Amount(subtotal=subtotal, tax=tax, fee=fee, discount=discount, total=total, currency=currency)


def create_payment(
    *,
    buyer: BoxOfficeUser,
    event: Event,
    amount: Amount,
    billing: BillingContact,
    method: PaymentMethod | None = None,
) -> Payment:
    """Create the pending payment record for one booking."""
    payment = Payment(
        buyer=buyer,
        event=event,
        subtotal=amount.subtotal,
        tax=amount.tax,
        fee=amount.fee,
        discount=amount.discount,
        total=amount.total,
        currency=amount.currency,
        billing_name=billing.name,
        billing_email=billing.email,
        billing_phone=billing.phone,
        billing_address=billing.address,
    )
    if method is not None:
        payment.method_type = method.type
        payment.method_provider = method.resolved_provider()
        payment.method_details = _public_details(method)
    payment.save()
    logger.info(
        "payment_created",
        payment_id=payment.payment_id,
        event_id=str(event.pk),
        buyer_id=str(buyer.pk),
        total=str(payment.total),
        status=payment.status,
    )
    return payment


def _public_details(method: PaymentMethod) -> dict[str, t.Any]:
    """Keep only details that are safe to store."""
    return {k: v for k, v in method.details.items() if k in ("payment_method", "last4", "brand", "wallet")}


def _transition(payment: Payment, from_statuses: t.Iterable[str], to_status: str, **fields: t.Any) -> bool:
    """Conditionally move a payment. Updates the instance only on success."""
    updated = Payment.objects.filter(pk=payment.pk, status__in=list(from_statuses)).update(
        status=to_status, updated_at=timezone.now(), **fields
    )
    if updated:
        payment.status = to_status
        for name, value in fields.items():
            setattr(payment, name, value)
    return bool(updated)


def mark_processing(payment: Payment) -> None:
    if not _transition(payment, [Payment.PaymentStatus.PENDING], Payment.PaymentStatus.PROCESSING):
        payment.refresh_from_db(fields=["status"])
        raise PaymentNotPending(payment_id=payment.payment_id, status=payment.status)


@transaction.atomic
def mark_completed(payment: Payment, result: GatewayResult) -> Payment:
    """Settle the payment and confirm its tickets."""
    moved = _transition(
        payment,
        SETTLEABLE_STATUSES,
        Payment.PaymentStatus.COMPLETED,
        processed_at=timezone.now(),
        gateway_transaction_id=result.reference,
        gateway_status=result.status,
        gateway_message=result.message,
        gateway_raw=result.raw,
    )
    if not moved:
        payment.refresh_from_db(fields=["status"])
        raise PaymentNotPending(payment_id=payment.payment_id, status=payment.status)
    confirmed = payment.tickets.filter(status=Ticket.TicketStatus.PENDING).update(
        status=Ticket.TicketStatus.CONFIRMED, updated_at=timezone.now()
    )
    logger.info("payment_completed", payment_id=payment.payment_id, reference=result.reference, tickets=confirmed)
    return payment


@transaction.atomic
def mark_failed(
    payment: Payment,
    result: GatewayResult | None = None,
    *,
    reason: str = "",
    from_statuses: t.Iterable[str] = SETTLEABLE_STATUSES,
) -> Payment:
    """Fail the payment, cancel its tickets and give their units back."""
    fields: dict[str, t.Any] = {"processed_at": timezone.now()}
    if result is not None:
        fields.update(
            gateway_transaction_id=result.reference,
            gateway_status=result.status,
            gateway_message=result.message,
            gateway_raw=result.raw,
        )
    elif reason:
        fields["gateway_message"] = reason
    if not _transition(payment, from_statuses, Payment.PaymentStatus.FAILED, **fields):
        payment.refresh_from_db(fields=["status"])
        raise PaymentNotPending(payment_id=payment.payment_id, status=payment.status)
    retired = inventory.retire_tickets(payment.tickets.all(), Ticket.TicketStatus.CANCELLED)
    logger.info(
        "payment_failed",
        payment_id=payment.payment_id,
        reason=reason or (result.message if result else ""),
        released=len(retired),
    )
    return payment


def expire_if_stale(payment: Payment) -> bool:
    """Fail a pending payment whose expiry has passed.

    Returns whether this call expired it.
    """
    if not payment.is_stale():
        return False
    try:
        mark_failed(payment, reason="Payment expired.", from_statuses=[Payment.PaymentStatus.PENDING])
    except PaymentNotPending:
        # another request settled or expired it first
        return False
    logger.info("payment_expired", payment_id=payment.payment_id)
    return True


def get_payment(payment_id: str) -> Payment:
    payment = Payment.objects.select_related("event", "buyer").filter(payment_id=payment_id).first()
    if payment is None:
        raise NotFoundError("Payment not found.", payment_id=payment_id)
    return payment


def can_access(user: BoxOfficeUser, payment: Payment) -> bool:
    """The buyer, the organizer of the event and admins."""
    if payment.buyer_id == user.pk or user.is_admin:
        return True
    return user.is_organizer and payment.event.organizer_id == user.pk


def process_payment(payment: Payment, *, requester: BoxOfficeUser, method: PaymentMethod) -> Payment:
    """Charge a pending payment through the processor for ``method``.

    Success confirms the tickets; failure cancels them and releases the units.
    A processor that raises fails the payment the same way before the error
    propagates, so nothing is left in ``processing``.
    """
    if payment.buyer_id != requester.pk:
        raise Forbidden(payment_id=payment.payment_id)
    if expire_if_stale(payment):
        raise PaymentExpired(payment_id=payment.payment_id)
    processor = get_processor(method)
    if payment.status != Payment.PaymentStatus.PENDING:
        raise PaymentNotPending(payment_id=payment.payment_id, status=payment.status)

    Payment.objects.filter(pk=payment.pk).update(
        method_type=method.type,
        method_provider=method.resolved_provider(),
        method_details=_public_details(method),
    )
    mark_processing(payment)
    payment.refresh_from_db(fields=["total", "currency"])
    try:
        result = processor.process_external_payment(
            method, payment.total, currency=payment.currency, reference=payment.payment_id
        )
    except Exception:
        logger.exception("payment_processor_error", payment_id=payment.payment_id, provider=method.resolved_provider())
        mark_failed(payment, reason="Payment processor error.")
        raise
    if result.succeeded:
        mark_completed(payment, result)
    else:
        mark_failed(payment, result)
    payment.refresh_from_db()
    return payment


def reprice(payment: Payment) -> bool:
    """Recompute the amounts of a pending payment from its live tickets.

    Returns whether the stored amounts changed.
    """
    if payment.status != Payment.PaymentStatus.PENDING:
        return False
    subtotal = sum((tk.unit_price for tk in payment.tickets.live()), Decimal("0"))
    amount = calculate_amount(subtotal, payment.currency, payment.discount)
    if amount.total == payment.total and amount.subtotal == payment.subtotal:
        return False
    updated = Payment.objects.filter(pk=payment.pk, status=Payment.PaymentStatus.PENDING).update(
        subtotal=amount.subtotal, tax=amount.tax, fee=amount.fee, total=amount.total, updated_at=timezone.now()
    )
    if not updated:
        return False
    payment.subtotal, payment.tax, payment.fee, payment.total = amount.subtotal, amount.tax, amount.fee, amount.total
    logger.info(
        "payment_repriced", payment_id=payment.payment_id, subtotal=str(amount.subtotal), total=str(amount.total)
    )
    return True


def close_if_abandoned(payment: Payment) -> bool:
    """Cancel a pending payment once none of its tickets hold a unit any more."""
    if payment.status != Payment.PaymentStatus.PENDING or payment.tickets.live().exists():
        return False
    cancelled = _transition(payment, [Payment.PaymentStatus.PENDING], Payment.PaymentStatus.CANCELLED)
    if cancelled:
        logger.info("payment_cancelled", payment_id=payment.payment_id)
    return cancelled


def refund(
    payment: Payment,
    *,
    amount: Decimal | None = None,
    reason: str = "",
    ticket_ids: t.Sequence[UUID] = (),
    requested_by: BoxOfficeUser | None = None,
) -> Refund:
    """Record a refund against a settled payment.

    Without ``ticket_ids`` the refund is amount-only and leaves tickets alone,
    unless it takes the whole remaining balance, in which case every ticket
    still holding a unit is cancelled. With ``ticket_ids`` those tickets are
    refunded and released, and the amount defaults to their frozen prices.

    The refund stays ``pending`` until :func:`settle_refund` confirms it.
    """
    if amount is not None and amount <= 0:
        raise InvalidBookingRequest("Refund amount must be positive.", amount=str(amount))
    expire_if_stale(payment)
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related("event").get(pk=payment.pk)
        if payment.status not in Payment.REFUNDABLE_STATUSES:
            raise NotRefundable(payment_id=payment.payment_id, status=payment.status)
        if payment.event.has_started():
            raise NotRefundable("The event has already started.", payment_id=payment.payment_id)

        tickets: list[Ticket] = []
        if ticket_ids:
            wanted = set(ticket_ids)
            tickets = list(payment.tickets.filter(pk__in=wanted))
            if len(tickets) != len(wanted):
                raise InvalidBookingRequest(
                    "Some tickets do not belong to this payment.", ticket_ids=[str(i) for i in wanted]
                )
            if blocked := [str(tk.pk) for tk in tickets if tk.status not in Ticket.RETIRABLE_STATUSES]:
                raise NotRefundable("Used or cancelled tickets cannot be refunded.", ticket_ids=blocked)
            if amount is None:
                amount = sum((tk.unit_price for tk in tickets), Decimal("0"))

        remaining = payment.refundable_amount()
        if amount is None:
            amount = remaining
        if amount <= 0:
            raise NotRefundable("There is nothing left to refund.", payment_id=payment.payment_id)
        if amount > remaining:
            raise AmountExceedsAvailable(
                requested=str(amount), available=str(remaining), payment_id=payment.payment_id
            )

        refund_record = Refund.objects.create(
            payment=payment, amount=amount, reason=reason, requested_by=requested_by
        )
        if tickets:
            refunded = inventory.retire_tickets(tickets, Ticket.TicketStatus.REFUNDED)
            refund_record.tickets.set(refunded)

        full = amount == remaining
        if full:
            inventory.retire_tickets(payment.tickets.all(), Ticket.TicketStatus.CANCELLED)
        payment.status = Payment.PaymentStatus.REFUNDED if full else Payment.PaymentStatus.PARTIALLY_REFUNDED
        payment.save(update_fields=["status", "updated_at"])

    logger.info(
        "refund_requested",
        payment_id=payment.payment_id,
        refund_id=str(refund_record.pk),
        amount=str(amount),
        full=full,
        tickets=len(tickets),
    )
    return refund_record


def settle_refund(refund_record: Refund, *, succeeded: bool, gateway_refund_id: str = "") -> Refund:
    """Record the external outcome of a pending refund.

    A failed refund frees its amount again and the payment status is rebuilt
    from the refunds still committed: none puts it back to ``completed``, some
    leave it ``partially_refunded``. Tickets already released by the refund
    stay released.
    """
    with transaction.atomic():
        refund_record = Refund.objects.select_for_update().select_related("payment").get(pk=refund_record.pk)
        if refund_record.status != Refund.RefundStatus.PENDING:
            raise RefundAlreadySettled(refund_id=str(refund_record.pk), status=refund_record.status)
        refund_record.status = Refund.RefundStatus.COMPLETED if succeeded else Refund.RefundStatus.FAILED
        refund_record.processed_at = timezone.now()
        refund_record.gateway_refund_id = gateway_refund_id
        refund_record.save(update_fields=["status", "processed_at", "gateway_refund_id", "updated_at"])

        payment = refund_record.payment
        if not succeeded and payment.status in REFUNDED_STATUSES:
            committed = payment.committed_refund_amount()
            if committed == 0:
                _transition(payment, REFUNDED_STATUSES, Payment.PaymentStatus.COMPLETED)
            elif committed < payment.total:
                _transition(payment, REFUNDED_STATUSES, Payment.PaymentStatus.PARTIALLY_REFUNDED)

    logger.info(
        "refund_settled",
        payment_id=payment.payment_id,
        refund_id=str(refund_record.pk),
        status=refund_record.status,
    )
    return refund_record
