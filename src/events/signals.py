# src/events/signals.py

import typing as t

import structlog
from django.dispatch import Signal, receiver

logger = structlog.get_logger(__name__)

# Sent once a booking has been committed.
# Expected kwargs:
#   - buyer_id: str
#   - event_id: str
#   - payment_id: str (the public PAY-... id)
#   - ticket_ids: list[str]
tickets_ready = Signal()


@receiver(tickets_ready)
def queue_tickets_ready_email(sender: t.Any, payment_id: str, **kwargs: t.Any) -> None:
    """Hand the confirmation email to Celery."""
    from events.tasks import send_tickets_ready_email

    send_tickets_ready_email.delay(payment_id)
    logger.info("tickets_ready_email_queued", payment_id=payment_id)
