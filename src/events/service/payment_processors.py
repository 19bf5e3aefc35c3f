"""Payment processors.

Every concrete gateway implements the same contract,
``process_external_payment(method, amount) -> GatewayResult``. The processor for
a provider is looked up in ``settings.PAYMENT_PROCESSORS``, so gateways can be
swapped without touching the booking core.
"""

import secrets
import typing as t
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

import stripe
import structlog
from django.conf import settings
from django.utils.module_loading import import_string

from events.exceptions import UnsupportedPaymentMethod
from events.models import Payment

logger = structlog.get_logger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY


@dataclass(frozen=True)
class PaymentMethod:
    type: str
    provider: str = ""
    details: dict[str, t.Any] = field(default_factory=dict)

    def resolved_provider(self) -> str:
        return self.provider or settings.DEFAULT_PAYMENT_PROVIDERS.get(self.type, "")


@dataclass(frozen=True)
class GatewayResult:
    succeeded: bool
    reference: str = ""
    message: str = ""
    status: str = ""
    raw: dict[str, t.Any] = field(default_factory=dict)


class PaymentProcessor(ABC):
    #: whether a payment made with this processor stays pending until processed
    requires_confirmation = True

    @abstractmethod
    def process_external_payment(
        self, method: PaymentMethod, amount: Decimal, *, currency: str, reference: str
    ) -> GatewayResult:
        """Charge ``amount`` and report the outcome."""


class StripeCardProcessor(PaymentProcessor):
    """Card payments confirmed server side with a Stripe PaymentIntent.

    ``method.details`` must carry the Stripe ``payment_method`` id collected by
    the client.
    """

    def process_external_payment(
        self, method: PaymentMethod, amount: Decimal, *, currency: str, reference: str
    ) -> GatewayResult:
        payment_method_id = method.details.get("payment_method")
        if not payment_method_id:
            return GatewayResult(succeeded=False, message="Missing card payment method.", status="invalid_request")
        try:
            intent = stripe.PaymentIntent.create(
                amount=int(amount * 100),
                currency=currency.lower(),
                payment_method=payment_method_id,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={"payment_id": reference},
            )
        except stripe.CardError as e:
            logger.info("stripe_card_declined", payment_id=reference, code=e.code)
            return GatewayResult(succeeded=False, message=str(e.user_message or e), status="card_declined")
        except stripe.StripeError as e:
            logger.warning("stripe_payment_error", payment_id=reference, error=str(e))
            return GatewayResult(succeeded=False, message="The card processor is unavailable.", status="error")

        return GatewayResult(
            succeeded=intent.status == "succeeded",
            reference=intent.id,
            message="" if intent.status == "succeeded" else f"Payment intent is {intent.status}.",
            status=intent.status,
            raw={"id": intent.id, "status": intent.status, "amount": intent.amount},
        )


class CashOnDeliveryProcessor(PaymentProcessor):
    """Money changes hands on delivery, so there is nothing to confirm online."""

    requires_confirmation = False

    def process_external_payment(
        self, method: PaymentMethod, amount: Decimal, *, currency: str, reference: str
    ) -> GatewayResult:
        return GatewayResult(
            succeeded=True,
            reference=f"COD-{reference}",
            message="Payment due on delivery.",
            status="awaiting_delivery",
        )


class SandboxProcessor(PaymentProcessor):
    """Settles immediately. Used for wallet and bank providers without a live integration.

    A ``details["simulate"] == "decline"`` makes the charge fail, for testing
    client flows.
    """

    def process_external_payment(
        self, method: PaymentMethod, amount: Decimal, *, currency: str, reference: str
    ) -> GatewayResult:
        if method.details.get("simulate") == "decline":
            return GatewayResult(succeeded=False, message="Declined by sandbox.", status="declined")
        return GatewayResult(
            succeeded=True,
            reference=f"SBX-{secrets.token_hex(8).upper()}",
            status="succeeded",
            raw={"provider": method.resolved_provider(), "amount": str(amount), "currency": currency},
        )


def get_processor(method: PaymentMethod) -> PaymentProcessor:
    """Resolve the processor for a payment method.

    Raises:
        UnsupportedPaymentMethod: unknown type or provider, or a provider that
            cannot serve the given type.
    """
    if method.type not in Payment.MethodType.values:
        raise UnsupportedPaymentMethod(method_type=method.type)
    provider = method.resolved_provider()
    if provider not in Payment.Provider.values or provider not in settings.PAYMENT_PROCESSORS:
        raise UnsupportedPaymentMethod(method_type=method.type, provider=provider)
    cash = method.type == Payment.MethodType.CASH_ON_DELIVERY
    if cash != (provider == Payment.Provider.COD):
        raise UnsupportedPaymentMethod(
            "Cash on delivery must use the cod provider.", method_type=method.type, provider=provider
        )
    processor_class: type[PaymentProcessor] = import_string(settings.PAYMENT_PROCESSORS[provider])
    return processor_class()
