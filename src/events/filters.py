# src/events/filters.py

from ninja import FilterSchema

from events.models import Payment, Ticket


class TicketFilterSchema(FilterSchema):
    status: Ticket.TicketStatus | None = None


class PaymentFilterSchema(FilterSchema):
    status: Payment.PaymentStatus | None = None
