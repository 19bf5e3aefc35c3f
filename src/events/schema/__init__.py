"""Events schema package."""

from .event import MinimalEventSchema, PricingCategorySchema
from .payment import (
    BillingContactSchema,
    PaymentMethodSchema,
    PaymentSchema,
    ProcessPaymentSchema,
    RefundRequestSchema,
    RefundSchema,
    SettleRefundSchema,
)
from .ticket import (
    BookingLineSchema,
    BookingRequestSchema,
    BookingResponseSchema,
    TicketSchema,
    VerificationResponseSchema,
    VerifyTicketSchema,
)

__all__ = [
    # Events
    "MinimalEventSchema",
    "PricingCategorySchema",
    # Payments
    "BillingContactSchema",
    "PaymentMethodSchema",
    "PaymentSchema",
    "ProcessPaymentSchema",
    "RefundRequestSchema",
    "RefundSchema",
    "SettleRefundSchema",
    # Tickets
    "BookingLineSchema",
    "BookingRequestSchema",
    "BookingResponseSchema",
    "TicketSchema",
    "VerificationResponseSchema",
    "VerifyTicketSchema",
]
