import secrets
import typing as t
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from common.models import TimeStampedModel


def _get_payment_default_expiry() -> datetime:
    return timezone.now() + timedelta(hours=settings.PAYMENT_EXPIRY_HOURS)


def generate_payment_id() -> str:
    """PAY- followed by 20 random hex characters."""
    return f"PAY-{secrets.token_hex(10).upper()}"


class PaymentQuerySet(models.QuerySet["Payment"]):
    def stale(self) -> t.Self:
        """Pending payments past their expiry."""
        return self.filter(status=Payment.PaymentStatus.PENDING, expires_at__lt=timezone.now())

    def with_tickets(self) -> t.Self:
        return self.prefetch_related("tickets", "refunds")


class PaymentManager(models.Manager["Payment"]):
    def get_queryset(self) -> PaymentQuerySet:
        return PaymentQuerySet(self.model, using=self._db)

    def stale(self) -> PaymentQuerySet:
        return self.get_queryset().stale()

    def with_tickets(self) -> PaymentQuerySet:
        return self.get_queryset().with_tickets()


class Payment(TimeStampedModel):
    """One booking transaction: the money side of a set of tickets."""

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"
        PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"

    class MethodType(models.TextChoices):
        CREDIT_CARD = "credit_card", "Credit Card"
        DEBIT_CARD = "debit_card", "Debit Card"
        MOBILE_WALLET = "mobile_wallet", "Mobile Wallet"
        BANK_TRANSFER = "bank_transfer", "Bank Transfer"
        CASH_ON_DELIVERY = "cash_on_delivery", "Cash On Delivery"

    class Provider(models.TextChoices):
        STRIPE = "stripe", "Stripe"
        PAYHERE = "payhere", "PayHere"
        DIALOG = "dialog", "Dialog"
        MOBITEL = "mobitel", "Mobitel"
        HUTCH = "hutch", "Hutch"
        COD = "cod", "Cash On Delivery"

    REFUNDABLE_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED)

    payment_id = models.CharField(max_length=32, unique=True, default=generate_payment_id, editable=False)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="payments")
    event = models.ForeignKey("events.Event", on_delete=models.PROTECT, related_name="payments")
    status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True
    )

    # amount
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY)

    # method
    method_type = models.CharField(max_length=20, choices=MethodType.choices, blank=True)
    method_provider = models.CharField(max_length=20, choices=Provider.choices, blank=True)
    method_details = models.JSONField(blank=True, default=dict)

    # billing contact
    billing_name = models.CharField(max_length=255)
    billing_email = models.EmailField()
    billing_phone = models.CharField(max_length=20)
    billing_address = models.JSONField(blank=True, default=dict)

    # gateway
    gateway_transaction_id = models.CharField(max_length=255, blank=True, db_index=True)
    gateway_status = models.CharField(max_length=64, blank=True)
    gateway_message = models.TextField(blank=True)
    gateway_raw = models.JSONField(blank=True, default=dict)

    processed_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(default=_get_payment_default_expiry, db_index=True, editable=False)

    objects = PaymentManager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.payment_id} ({self.status})"

    def has_expired(self) -> bool:
        """Return whether a payment has expired."""
        return self.expires_at < timezone.now()

    def is_stale(self) -> bool:
        """A pending payment past its expiry is treated as failed."""
        return self.status == self.PaymentStatus.PENDING and self.has_expired()

    def committed_refund_amount(self) -> Decimal:
        """Sum of refunds that are settled or still on their way."""
        total = self.refunds.filter(
            status__in=(Refund.RefundStatus.PENDING, Refund.RefundStatus.COMPLETED)
        ).aggregate(total=Sum("amount"))["total"]
        return total or Decimal("0")

    def refundable_amount(self) -> Decimal:
        return self.total - self.committed_refund_amount()


class Refund(TimeStampedModel):
    class RefundStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name="refunds")
    amount = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    reason = models.TextField(blank=True)
    status = models.CharField(
        max_length=16, choices=RefundStatus.choices, default=RefundStatus.PENDING, db_index=True
    )
    tickets = models.ManyToManyField("events.Ticket", blank=True, related_name="refunds")
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    gateway_refund_id = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"Refund {self.amount} on {self.payment.payment_id} ({self.status})"
