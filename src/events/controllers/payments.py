from uuid import UUID

from django.db.models import QuerySet
from django.shortcuts import get_object_or_404
from ninja import Query
from ninja_extra import api_controller, route
from ninja_extra.pagination import PageNumberPaginationExtra, PaginatedResponseSchema, paginate

from common.authentication import ContextJWTAuth
from common.schema import ErrorResponse
from common.throttling import WriteThrottle
from events import filters, models, schema
from events.controllers.permissions import IsAdmin, IsOrganizerOrAdmin
from events.controllers.user_aware_controller import UserAwareController
from events.exceptions import Forbidden
from events.service import payment_service, ticket_service


@api_controller("/payments", auth=ContextJWTAuth(), tags=["Payments"])
class PaymentController(UserAwareController):
    def get_payment(self, payment_id: str) -> models.Payment:
        """A payment the caller is allowed to see."""
        payment = payment_service.get_payment(payment_id)
        if not payment_service.can_access(self.user(), payment):
            raise Forbidden(payment_id=payment.payment_id)
        return payment

    @route.post(
        "/{payment_id}/process",
        url_name="process_payment",
        response={200: schema.PaymentSchema, 402: schema.PaymentSchema, 400: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def process_payment(
        self, payment_id: str, payload: schema.ProcessPaymentSchema
    ) -> tuple[int, models.Payment]:
        """Pay a pending payment.

        On success the payment is `completed` and its tickets `confirmed`. A declined
        charge answers 402 with the `failed` payment; its tickets are cancelled and
        their units are back on sale.
        """
        payment = payment_service.process_payment(
            payment_service.get_payment(payment_id), requester=self.user(), method=payload.method.to_method()
        )
        status = 200 if payment.status == models.Payment.PaymentStatus.COMPLETED else 402
        return status, payment

    @route.get("/mine", url_name="my_payments", response=PaginatedResponseSchema[schema.PaymentSchema])
    @paginate(PageNumberPaginationExtra, page_size=20)
    def my_payments(
        self,
        params: filters.PaymentFilterSchema = Query(...),  # type: ignore[type-arg]
    ) -> QuerySet[models.Payment]:
        """List your payments, newest first."""
        qs = models.Payment.objects.with_tickets().filter(buyer=self.user()).order_by("-created_at")
        return params.filter(qs)

    @route.get(
        "/event/{event_id}",
        url_name="event_payments",
        response=PaginatedResponseSchema[schema.PaymentSchema],
        permissions=[IsOrganizerOrAdmin()],
    )
    @paginate(PageNumberPaginationExtra, page_size=50)
    def event_payments(
        self,
        event_id: UUID,
        params: filters.PaymentFilterSchema = Query(...),  # type: ignore[type-arg]
    ) -> QuerySet[models.Payment]:
        """List the payments of an event you organize."""
        event = get_object_or_404(models.Event, pk=event_id)
        if not ticket_service.can_manage_event(self.user(), event):
            raise Forbidden(event_id=str(event.pk))
        return params.filter(models.Payment.objects.with_tickets().filter(event=event)).order_by("created_at")

    @route.get("/{payment_id}", url_name="get_payment", response={200: schema.PaymentSchema, 403: ErrorResponse})
    def retrieve_payment(self, payment_id: str) -> models.Payment:
        return self.get_payment(payment_id)

    @route.post(
        "/{payment_id}/refund",
        url_name="refund_payment",
        response={201: schema.RefundSchema, 400: ErrorResponse, 403: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def refund_payment(self, payment_id: str, payload: schema.RefundRequestSchema) -> tuple[int, models.Refund]:
        """Request a refund of a settled payment.

        Leave `amount` out to refund the whole remainder, or the price of the listed
        `ticket_ids`. Listed tickets are released for sale again. A full refund
        cancels every ticket that is still live.
        """
        payment = self.get_payment(payment_id)
        refund = payment_service.refund(
            payment,
            amount=payload.amount,
            reason=payload.reason,
            ticket_ids=payload.ticket_ids,
            requested_by=self.user(),
        )
        return 201, refund

    @route.post(
        "/{payment_id}/refunds/{refund_id}/settle",
        url_name="settle_refund",
        response={200: schema.RefundSchema, 409: ErrorResponse},
        permissions=[IsAdmin()],
        throttle=WriteThrottle(),
    )
    def settle_refund(self, payment_id: str, refund_id: UUID, payload: schema.SettleRefundSchema) -> models.Refund:
        """Record the outcome reported by the gateway for a pending refund."""
        refund = get_object_or_404(models.Refund, pk=refund_id, payment__payment_id=payment_id)
        return payment_service.settle_refund(
            refund, succeeded=payload.succeeded, gateway_refund_id=payload.gateway_refund_id
        )
