"""Payment and refund schemas."""

import typing as t
from decimal import Decimal
from uuid import UUID

from ninja import ModelSchema, Schema
from pydantic import EmailStr, Field

from common.schema import OneToOneFiftyString, StrippedString
from events.models import Payment, Refund
from events.service.payment_processors import PaymentMethod
from events.service.payment_service import BillingContact


class BillingContactSchema(Schema):
    name: OneToOneFiftyString
    email: EmailStr
    phone: t.Annotated[str, Field(min_length=7, max_length=20, pattern=r"^\+?[\d\s\-()]+$")]
    address: dict[str, str] = Field(default_factory=dict)

    def to_contact(self) -> BillingContact:
        return BillingContact(name=self.name, email=str(self.email), phone=self.phone, address=self.address)


class PaymentMethodSchema(Schema):
    type: Payment.MethodType
    provider: Payment.Provider | None = None
    details: dict[str, t.Any] = Field(default_factory=dict)

    def to_method(self) -> PaymentMethod:
        return PaymentMethod(type=self.type, provider=self.provider or "", details=self.details)


class ProcessPaymentSchema(Schema):
    method: PaymentMethodSchema


class RefundSchema(ModelSchema):
    status: Refund.RefundStatus
    ticket_ids: list[UUID]

    class Meta:
        model = Refund
        fields = ["id", "amount", "reason", "status", "processed_at", "gateway_refund_id", "created_at"]

    @staticmethod
    def resolve_ticket_ids(obj: Refund) -> list[UUID]:
        return [ticket.pk for ticket in obj.tickets.all()]


class PaymentSchema(ModelSchema):
    """Public representation of a Payment record."""

    status: Payment.PaymentStatus
    event_id: UUID
    buyer_id: UUID
    ticket_ids: list[UUID]
    refunds: list[RefundSchema]
    refundable_amount: Decimal

    class Meta:
        model = Payment
        fields = [
            "payment_id",
            "status",
            "subtotal",
            "tax",
            "fee",
            "discount",
            "total",
            "currency",
            "method_type",
            "method_provider",
            "billing_name",
            "billing_email",
            "billing_phone",
            "gateway_transaction_id",
            "gateway_status",
            "gateway_message",
            "processed_at",
            "expires_at",
            "created_at",
        ]

    @staticmethod
    def resolve_ticket_ids(obj: Payment) -> list[UUID]:
        return [ticket.pk for ticket in obj.tickets.all()]

    @staticmethod
    def resolve_refunds(obj: Payment) -> list[Refund]:
        return list(obj.refunds.all())

    @staticmethod
    def resolve_refundable_amount(obj: Payment) -> Decimal:
        if obj.status not in Payment.REFUNDABLE_STATUSES:
            return Decimal("0")
        return obj.refundable_amount()


class RefundRequestSchema(Schema):
    amount: Decimal | None = Field(None, gt=0, decimal_places=2)
    reason: StrippedString = ""
    ticket_ids: list[UUID] = Field(default_factory=list)


class SettleRefundSchema(Schema):
    succeeded: bool
    gateway_refund_id: StrippedString = ""
