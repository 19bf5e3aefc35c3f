"""Door check-in."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from django.utils import timezone

from accounts.models import BoxOfficeUser
from events.exceptions import AlreadyUsed, Forbidden, InvalidToken, NotConfirmed, NotFoundError
from events.models import Ticket
from events.service import payment_service, qr_token_service

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    ticket: Ticket
    used_at: datetime
    used_by_label: str


def can_verify(verifier: BoxOfficeUser, ticket: Ticket) -> bool:
    """Admins check in anywhere; organizers only at their own events."""
    if verifier.is_admin:
        return True
    return verifier.is_organizer and ticket.event.organizer_id == verifier.pk


def verify(
    ticket_id: UUID, presented_token: str, verifier_label: str = "", *, verifier: BoxOfficeUser
) -> VerificationResult:
    """Admit the holder of a ticket.

    The transition ``confirmed -> used`` is a single conditional update: of two
    simultaneous scans exactly one succeeds and the other sees ``AlreadyUsed``.

    Raises:
        NotFoundError: no such ticket.
        Forbidden: the verifier may not check in at this event.
        InvalidToken: the presented token does not match the ticket. Nothing changes.
        AlreadyUsed: the ticket was used before; carries ``used_at`` and ``used_by``.
        NotConfirmed: the ticket is pending, cancelled or refunded.
    """
    ticket = Ticket.objects.select_related("event", "payment").filter(pk=ticket_id).first()
    if ticket is None:
        raise NotFoundError("Ticket not found.", ticket_id=str(ticket_id))
    if not can_verify(verifier, ticket):
        raise Forbidden(ticket_id=str(ticket.pk))

    if not qr_token_service.verify(ticket, presented_token):
        _rejected(ticket, InvalidToken.code, verifier)
        raise InvalidToken(ticket_id=str(ticket.pk))

    if payment_service.expire_if_stale(ticket.payment):
        ticket.refresh_from_db(fields=["status"])

    label = verifier_label or verifier.display_name
    now = timezone.now()
    admitted = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.CONFIRMED).update(
        status=Ticket.TicketStatus.USED, used_at=now, used_by_label=label, updated_at=now
    )
    if not admitted:
        ticket.refresh_from_db(fields=["status", "used_at", "used_by_label"])
        if ticket.status == Ticket.TicketStatus.USED:
            _rejected(ticket, AlreadyUsed.code, verifier)
            raise AlreadyUsed(
                ticket_id=str(ticket.pk),
                used_at=ticket.used_at.isoformat() if ticket.used_at else None,
                used_by=ticket.used_by_label,
            )
        _rejected(ticket, NotConfirmed.code, verifier)
        raise NotConfirmed(ticket_id=str(ticket.pk), status=ticket.status)

    ticket.status = Ticket.TicketStatus.USED
    ticket.used_at = now
    ticket.used_by_label = label
    logger.info(
        "ticket_verified",
        ticket_id=str(ticket.pk),
        event_id=str(ticket.event_id),
        verifier_id=str(verifier.pk),
    )
    return VerificationResult(ticket=ticket, used_at=now, used_by_label=label)


def _rejected(ticket: Ticket, reason: str, verifier: BoxOfficeUser) -> None:
    logger.info(
        "ticket_verification_rejected",
        ticket_id=str(ticket.pk),
        event_id=str(ticket.event_id),
        verifier_id=str(verifier.pk),
        reason=reason,
    )
