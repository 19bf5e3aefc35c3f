import typing as t
from uuid import UUID

from django.db.models import QuerySet
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from ninja import Query
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from common.authentication import ContextJWTAuth
from common.schema import ErrorResponse
from common.throttling import BookingThrottle, VerificationThrottle, WriteThrottle
from events import filters, models, schema
from events.controllers.permissions import IsOrganizerOrAdmin
from events.controllers.user_aware_controller import UserAwareController
from events.exceptions import Forbidden
from events.service import booking_service, ticket_service, verification_service
from events.utils import create_ticket_qr_png


@api_controller("/tickets", auth=ContextJWTAuth(), tags=["Tickets"])
class TicketController(UserAwareController):
    @route.post(
        "/book",
        url_name="book_tickets",
        response={201: schema.BookingResponseSchema, 400: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse},
        throttle=BookingThrottle(),
    )
    def book(self, payload: schema.BookingRequestSchema) -> tuple[int, dict[str, t.Any]]:
        """Book tickets for one or more pricing categories of an event.

        Either every requested unit is reserved and ticketed, or nothing changes. The
        payment record starts `pending` unless the method settles on the spot
        (cash on delivery), in which case the tickets are `confirmed` right away.
        """
        result = booking_service.book(
            booking_service.BookingRequest(
                event_id=payload.event_id,
                lines=[
                    booking_service.BookingLine(category_name=line.category, quantity=line.quantity)
                    for line in payload.lines
                ],
                buyer=self.user(),
                billing=payload.billing.to_contact(),
                method=payload.method.to_method() if payload.method else None,
            )
        )
        payment = result.payment
        return 201, {
            "payment_id": payment.payment_id,
            "status": payment.status,
            "total": result.total,
            "currency": payment.currency,
            "expires_at": payment.expires_at,
            "tickets": result.tickets,
        }

    @route.get("/mine", url_name="my_tickets", response=PaginatedResponseSchema[schema.TicketSchema])
    @paginate(PageNumberPaginationExtra, page_size=20)
    def my_tickets(
        self,
        params: filters.TicketFilterSchema = Query(...),  # type: ignore[type-arg]
    ) -> QuerySet[models.Ticket]:
        """List your tickets, newest first."""
        qs = models.Ticket.objects.full().filter(buyer=self.user()).order_by("-created_at")
        return params.filter(qs)

    @route.get(
        "/event/{event_id}",
        url_name="event_tickets",
        response=PaginatedResponseSchema[schema.TicketSchema],
        permissions=[IsOrganizerOrAdmin()],
    )
    @paginate(PageNumberPaginationExtra, page_size=50)
    def event_tickets(
        self,
        event_id: UUID,
        params: filters.TicketFilterSchema = Query(...),  # type: ignore[type-arg]
    ) -> QuerySet[models.Ticket]:
        """List the tickets of an event you organize."""
        event = get_object_or_404(models.Event, pk=event_id)
        if not ticket_service.can_manage_event(self.user(), event):
            raise Forbidden(event_id=str(event.pk))
        return params.filter(ticket_service.tickets_for_event(event)).order_by("created_at")

    @route.get("/{ticket_id}", url_name="get_ticket", response={200: schema.TicketSchema, 403: ErrorResponse})
    def get_ticket(self, ticket_id: UUID) -> models.Ticket:
        ticket = ticket_service.get_ticket(ticket_id)
        if not ticket_service.can_view(self.user(), ticket):
            raise Forbidden(ticket_id=str(ticket.pk))
        return ticket

    @route.get(
        "/{ticket_id}/qr",
        url_name="ticket_qr",
        summary="Download the ticket QR code",
        response={200: None, 403: ErrorResponse, 404: ErrorResponse},
    )
    def ticket_qr(self, ticket_id: UUID) -> HttpResponse:
        """PNG QR code of the ticket's signed token. Only the holder can download it."""
        ticket = ticket_service.get_ticket(ticket_id)
        if ticket.buyer_id != self.user().pk:
            raise Forbidden(ticket_id=str(ticket.pk))
        response = HttpResponse(create_ticket_qr_png(ticket), content_type="image/png")
        response["Content-Disposition"] = f'inline; filename="{ticket.ticket_number}.png"'
        return response

    @route.post(
        "/{ticket_id}/verify",
        url_name="verify_ticket",
        response={200: schema.VerificationResponseSchema, 403: ErrorResponse, 409: ErrorResponse},
        permissions=[IsOrganizerOrAdmin()],
        throttle=VerificationThrottle(),
    )
    def verify_ticket(self, ticket_id: UUID, payload: schema.VerifyTicketSchema) -> dict[str, t.Any]:
        """Check in the holder of a ticket at the door.

        A ticket is admitted once. A second scan answers 409 with the time and the
        verifier of the first admission.
        """
        result = verification_service.verify(
            ticket_id, payload.token, payload.verifier_label, verifier=self.user()
        )
        ticket = result.ticket
        return {
            "ticket_id": ticket.pk,
            "ticket_number": ticket.ticket_number,
            "category_name": ticket.category_name,
            "status": ticket.status,
            "used_at": result.used_at,
            "used_by_label": result.used_by_label,
        }

    @route.post(
        "/{ticket_id}/cancel",
        url_name="cancel_ticket",
        response={200: schema.TicketSchema, 403: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def cancel_ticket(self, ticket_id: UUID) -> models.Ticket:
        """Give a ticket back before the event starts. The unit returns to sale; no money moves."""
        return ticket_service.cancel_ticket(ticket_id, self.user())
