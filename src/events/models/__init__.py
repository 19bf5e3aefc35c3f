from .event import Event, PricingCategory
from .payment import Payment, Refund
from .ticket import Ticket

__all__ = [
    # Catalog
    "Event",
    "PricingCategory",
    # Payments
    "Payment",
    "Refund",
    # Tickets
    "Ticket",
]
