"""Ticket and booking schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from django.conf import settings
from ninja import ModelSchema, Schema
from pydantic import Field, field_validator

from common.schema import OneToOneFiftyString, StrippedString
from events.models import Ticket

from .event import MinimalEventSchema
from .payment import BillingContactSchema, PaymentMethodSchema


class TicketSchema(ModelSchema):
    """A ticket as its holder or the event staff see it.

    The QR token itself is only served as an image, to the holder.
    """

    status: Ticket.TicketStatus
    event: MinimalEventSchema
    payment_id: str

    class Meta:
        model = Ticket
        fields = [
            "id",
            "ticket_number",
            "category_name",
            "unit_price",
            "status",
            "qr_issued_at",
            "used_at",
            "used_by_label",
            "created_at",
        ]

    @staticmethod
    def resolve_payment_id(obj: Ticket) -> str:
        return obj.payment.payment_id


class BookingLineSchema(Schema):
    category: OneToOneFiftyString
    quantity: int = Field(..., ge=1)

    @field_validator("quantity")
    @classmethod
    def quantity_within_cap(cls, value: int) -> int:
        if value > settings.MAX_UNITS_PER_LINE:
            raise ValueError(f"At most {settings.MAX_UNITS_PER_LINE} tickets per category.")
        return value


class BookingRequestSchema(Schema):
    event_id: UUID
    lines: list[BookingLineSchema] = Field(..., min_length=1)
    billing: BillingContactSchema
    method: PaymentMethodSchema | None = None


class BookingResponseSchema(Schema):
    payment_id: str
    status: str
    total: Decimal
    currency: str
    expires_at: datetime
    tickets: list[TicketSchema]


class VerifyTicketSchema(Schema):
    token: StrippedString = Field(..., min_length=1)
    verifier_label: StrippedString = ""


class VerificationResponseSchema(Schema):
    ticket_id: UUID
    ticket_number: str
    category_name: str
    status: Ticket.TicketStatus
    used_at: datetime
    used_by_label: str
