from decimal import Decimal

import structlog
from django.db import transaction

from events.models import Payment, PricingCategory, Ticket
from events.models.ticket import generate_ticket_number
from events.service import qr_token_service

logger = structlog.get_logger(__name__)


@transaction.atomic
def mint(payment: Payment, category: PricingCategory, price: Decimal, count: int) -> list[Ticket]:
    """Create ``count`` tickets for a granted reservation, each with its own QR token.

    Tickets of a settled payment are confirmed straight away, otherwise they
    wait in ``pending``. All tickets are created or none: a signing or storage
    failure rolls back the ones already written.

    Raises:
        TokenSigningError: the QR token could not be signed.
    """
    status = (
        Ticket.TicketStatus.CONFIRMED
        if payment.status == Payment.PaymentStatus.COMPLETED
        else Ticket.TicketStatus.PENDING
    )
    tickets = []
    for _ in range(count):
        ticket_number = generate_ticket_number()
        token = qr_token_service.issue(ticket_number, payment.event_id, payment.buyer_id)
        tickets.append(
            Ticket.objects.create(
                ticket_number=ticket_number,
                buyer_id=payment.buyer_id,
                event_id=payment.event_id,
                payment=payment,
                category=category,
                category_name=category.name,
                unit_price=price,
                qr_payload=token.payload,
                qr_signature=token.signature,
                qr_issued_at=token.issued_at,
                status=status,
            )
        )
    logger.info(
        "tickets_minted",
        payment_id=payment.payment_id,
        category=category.name,
        count=count,
        status=status,
    )
    return tickets
