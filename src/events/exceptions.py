"""Domain errors of the booking core.

Errors fall in four families, which the API maps to HTTP statuses:

- ``BookingValidationError``: bad input, nothing was mutated.
- ``NotFoundError``: unknown event, category, ticket or payment.
- ``ConflictError``: the request is well formed but the current state refuses it.
  Any partial work has been compensated before it is raised.
- ``BookingIntegrityError``: a write failed mid-sequence. The attempt was fully
  compensated and the caller may retry.

Every error carries a machine readable ``code`` and structured ``context``.
"""

import typing as t


class BookingError(Exception):
    code = "booking_error"
    default_message = "The request could not be completed."
    retryable = False

    def __init__(self, message: str | None = None, **context: t.Any) -> None:
        """Store the message and any structured context."""
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


# validation


class BookingValidationError(BookingError):
    code = "invalid_request"
    default_message = "The request is invalid."


class InvalidBookingRequest(BookingValidationError):
    code = "invalid_booking_request"


class EventNotBookable(BookingValidationError):
    code = "event_not_bookable"
    default_message = "This event is not open for booking."


class UnknownCategory(BookingValidationError):
    code = "unknown_category"
    default_message = "The event has no such pricing category."


class UnsupportedPaymentMethod(BookingValidationError):
    code = "unsupported_payment_method"
    default_message = "This payment method is not supported."


# not found


class NotFoundError(BookingError):
    code = "not_found"
    default_message = "Not found."


class CategoryNotFound(NotFoundError):
    code = "category_not_found"
    default_message = "Pricing category not found."


# authorization and verification


class Forbidden(BookingError):
    code = "forbidden"
    default_message = "You are not allowed to perform this action."


class InvalidToken(BookingError):
    code = "invalid_token"
    default_message = "The presented code is not valid for this ticket."


class NotConfirmed(BookingError):
    code = "not_confirmed"
    default_message = "This ticket is not confirmed."


# conflicts


class ConflictError(BookingError):
    code = "conflict"


class InsufficientInventory(ConflictError):
    code = "insufficient_inventory"
    default_message = "Not enough tickets left in this category."


class AlreadyUsed(ConflictError):
    code = "already_used"
    default_message = "This ticket has already been used."


class AlreadyCancelled(ConflictError):
    code = "already_cancelled"
    default_message = "This ticket has already been cancelled."


class EventStarted(ConflictError):
    code = "event_started"
    default_message = "The event has already started."


class NotRefundable(ConflictError):
    code = "not_refundable"
    default_message = "This payment cannot be refunded."


class AmountExceedsAvailable(ConflictError):
    code = "amount_exceeds_available"
    default_message = "The refund amount exceeds the refundable balance."


class PaymentNotPending(ConflictError):
    code = "payment_not_pending"
    default_message = "This payment is not awaiting settlement."


class PaymentExpired(ConflictError):
    code = "payment_expired"
    default_message = "This payment has expired."


class RefundAlreadySettled(ConflictError):
    code = "refund_already_settled"
    default_message = "This refund has already been settled."


# integrity


class BookingIntegrityError(BookingError):
    code = "integrity_error"
    default_message = "The booking could not be stored. Please try again."
    retryable = True


class TokenSigningError(BookingIntegrityError):
    code = "token_signing_error"
    default_message = "Ticket codes cannot be issued right now."


class PersistenceError(BookingIntegrityError):
    code = "persistence_error"
