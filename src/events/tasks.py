import structlog
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string

from .models import Payment

logger = structlog.get_logger(__name__)


@shared_task
def send_tickets_ready_email(payment_id: str) -> None:
    """Email the buyer the ticket numbers of a booking."""
    payment = Payment.objects.select_related("event", "buyer").filter(payment_id=payment_id).first()
    if payment is None:
        logger.warning("tickets_ready_email_payment_missing", payment_id=payment_id)
        return

    body = render_to_string(
        "events/emails/tickets_ready.txt",
        {
            "name": payment.billing_name or payment.buyer.display_name,
            "payment": payment,
            "event": payment.event,
            "tickets": payment.tickets.all(),
        },
    )
    send_mail(
        subject=f"Your tickets for {payment.event.name}",
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[payment.billing_email],
    )
    logger.info("tickets_ready_email_sent", payment_id=payment_id)


@shared_task(name="events.expire_stale_payments")
def expire_stale_payments() -> int:
    """Fail pending payments past their expiry and release their tickets.

    Readers already expire payments lazily; this sweep only keeps the
    inventory counters fresh for events nobody is touching.
    """
    from .service.payment_service import expire_if_stale

    expired = 0
    for payment in Payment.objects.stale().iterator():
        if expire_if_stale(payment):
            expired += 1
    logger.info("stale_payments_expired", count=expired)
    return expired
