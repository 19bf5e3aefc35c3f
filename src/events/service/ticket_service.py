from uuid import UUID

import structlog
from django.db.models import QuerySet

from accounts.models import BoxOfficeUser
from events.exceptions import AlreadyCancelled, AlreadyUsed, EventStarted, Forbidden, NotFoundError
from events.models import Event, Ticket
from events.service import inventory, payment_service

logger = structlog.get_logger(__name__)


def get_ticket(ticket_id: UUID) -> Ticket:
    ticket = Ticket.objects.full().filter(pk=ticket_id).first()
    if ticket is None:
        raise NotFoundError("Ticket not found.", ticket_id=str(ticket_id))
    return ticket


def can_view(user: BoxOfficeUser, ticket: Ticket) -> bool:
    if ticket.buyer_id == user.pk or user.is_admin:
        return True
    return user.is_organizer and ticket.event.organizer_id == user.pk


def can_manage_event(user: BoxOfficeUser, event: Event) -> bool:
    return user.is_admin or (user.is_organizer and event.organizer_id == user.pk)


def tickets_for_event(event: Event, status: str | None = None) -> QuerySet[Ticket]:
    qs = Ticket.objects.full().filter(event=event)
    if status:
        qs = qs.filter(status=status)
    return qs


def cancel_ticket(ticket_id: UUID, requester: BoxOfficeUser) -> Ticket:
    """Buyer-initiated cancellation before use.

    Exactly one unit goes back to the ticket's category. No money moves: a
    settled ticket is given back through a refund instead. A still-pending
    payment is repriced to the tickets it has left.

    Raises:
        NotFoundError, Forbidden, AlreadyUsed, AlreadyCancelled, EventStarted
    """
    ticket = get_ticket(ticket_id)
    if ticket.buyer_id != requester.pk:
        raise Forbidden(ticket_id=str(ticket.pk))

    if payment_service.expire_if_stale(ticket.payment):
        ticket.refresh_from_db(fields=["status"])
    _ensure_cancellable(ticket)

    if not inventory.retire_tickets([ticket], Ticket.TicketStatus.CANCELLED):
        # lost a race with another transition
        ticket.refresh_from_db(fields=["status"])
        _ensure_cancellable(ticket)

    if not payment_service.close_if_abandoned(ticket.payment):
        payment_service.reprice(ticket.payment)
    logger.info(
        "ticket_cancelled",
        ticket_id=str(ticket.pk),
        event_id=str(ticket.event_id),
        payment_id=ticket.payment.payment_id,
    )
    return ticket


def _ensure_cancellable(ticket: Ticket) -> None:
    if ticket.status == Ticket.TicketStatus.USED:
        raise AlreadyUsed(ticket_id=str(ticket.pk), used_at=ticket.used_at.isoformat() if ticket.used_at else None)
    if ticket.status in (Ticket.TicketStatus.CANCELLED, Ticket.TicketStatus.REFUNDED):
        raise AlreadyCancelled(ticket_id=str(ticket.pk), status=ticket.status)
    if ticket.event.has_started():
        raise EventStarted(ticket_id=str(ticket.pk), event_id=str(ticket.event_id))
