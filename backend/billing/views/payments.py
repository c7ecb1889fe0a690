"""Checkout order, payment verification and transaction history endpoints."""
from __future__ import annotations

import logging

from django.conf import settings
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import ReadOnlyModelViewSet

from billing.exceptions import BillingConfigurationError, BillingError
from billing.filters import PaymentTransactionFilter
from billing.models import PaymentTransaction
from billing.observability.logging import log_billing_event
from billing.observability.metrics import (
    BILLING_REQUEST_COUNT,
    BILLING_REQUEST_LATENCY,
    PAYMENT_VERIFICATION_COUNT,
)
from billing.pagination import BoundedPageNumberPagination
from billing.serializers import (
    CheckoutOrderSerializer,
    PaymentTransactionSerializer,
    PaymentVerificationSerializer,
)
from billing.services.transaction_ledger import create_pending
from billing.services.verification import settle_verified_payment

logger = logging.getLogger(__name__)


class BillingResponseMixin:
    endpoint_label: str = "billing"
    method: str = "POST"

    def _record_request(self, status: int) -> None:
        BILLING_REQUEST_COUNT.labels(
            endpoint=self.endpoint_label,
            method=self.method,
            status=str(status),
        ).inc()

    def _success_response(self, payload, *, status: int, message: str, user_id=None, order_id=None):
        self._record_request(status)
        log_billing_event(message=message, user_id=user_id, order_id=order_id)
        return Response(payload, status=status)

    def _error_response(
        self,
        *,
        status: int,
        code: str,
        message: str,
        retryable: bool = False,
        user_id=None,
        order_id=None,
        details: dict | None = None,
    ):
        self._record_request(status)
        log_billing_event(
            message=message,
            user_id=user_id,
            order_id=order_id,
            level=logging.WARNING if status < 500 else logging.ERROR,
            extra={"code": code, "details": details or {}},
        )
        payload = {"error": message, "code": code, "retryable": retryable}
        if details:
            payload["details"] = details
        return Response(payload, status=status)

    def _billing_error_response(self, exc: BillingError, *, user_id=None, order_id=None):
        return self._error_response(
            status=exc.status_code,
            code=exc.code,
            message=exc.message,
            retryable=exc.retryable,
            user_id=user_id,
            order_id=order_id,
        )

    def _unexpected_error_response(self, *, user_id=None, order_id=None):
        return self._error_response(
            status=500,
            code="internal_error",
            message="Payment processing failed. Please contact support if you were charged.",
            user_id=user_id,
            order_id=order_id,
        )


class CheckoutOrderView(BillingResponseMixin, APIView):
    """Create a pending transaction and the Razorpay order the dashboard opens checkout with."""

    permission_classes = [IsAuthenticated]
    endpoint_label = "orders.create"

    def post(self, request):
        with BILLING_REQUEST_LATENCY.labels(endpoint=self.endpoint_label, method=self.method).time():
            serializer = CheckoutOrderSerializer(data=request.data)
            if not serializer.is_valid():
                return self._error_response(
                    status=400,
                    code="invalid_request",
                    message="Invalid checkout request.",
                    user_id=request.user.pk,
                    details=serializer.errors,
                )

            payment_type = serializer.validated_data["paymentType"]
            try:
                amount = _price_for(payment_type)
                pending = create_pending(request.user.pk, payment_type, amount)
            except BillingError as exc:
                return self._billing_error_response(exc, user_id=request.user.pk)
            except Exception:
                logger.exception("Unexpected error creating checkout order for user %s", request.user.pk)
                return self._unexpected_error_response(user_id=request.user.pk)

            return self._success_response(
                {
                    "transactionId": str(pending.transaction_id),
                    "orderId": pending.order_id,
                    "amount": pending.amount,
                    "currency": pending.currency,
                    "keyId": settings.RAZORPAY_KEY_ID,
                },
                status=201,
                message="checkout_order_created",
                user_id=request.user.pk,
                order_id=pending.order_id,
            )


class PaymentVerificationView(BillingResponseMixin, APIView):
    """Verify a Razorpay checkout callback and settle the matching transaction."""

    permission_classes = [AllowAny]
    endpoint_label = "payments.verify"

    def post(self, request):
        with BILLING_REQUEST_LATENCY.labels(endpoint=self.endpoint_label, method=self.method).time():
            serializer = PaymentVerificationSerializer(data=request.data, context={"request": request})
            if not serializer.is_valid():
                PAYMENT_VERIFICATION_COUNT.labels(outcome="invalid_request").inc()
                return self._error_response(
                    status=400,
                    code="invalid_request",
                    message="Missing or malformed payment verification fields.",
                    details=serializer.errors,
                )

            data = serializer.validated_data
            user_id = data["userId"]
            order_id = data["orderId"]
            try:
                result = settle_verified_payment(
                    order_id=order_id,
                    payment_id=data["paymentId"],
                    signature=data["signature"],
                    user_id=user_id,
                )
            except BillingError as exc:
                PAYMENT_VERIFICATION_COUNT.labels(outcome=exc.code).inc()
                return self._billing_error_response(exc, user_id=user_id, order_id=order_id)
            except Exception:
                PAYMENT_VERIFICATION_COUNT.labels(outcome="internal_error").inc()
                logger.exception("Unexpected error verifying payment for order %s", order_id)
                return self._unexpected_error_response(user_id=user_id, order_id=order_id)

            if result.already_processed:
                outcome, status, message = "already_processed", 200, "Payment already verified."
            elif result.effect_pending:
                outcome, status, message = (
                    "effect_pending",
                    202,
                    "Payment verified. Your purchase is being applied and will appear shortly.",
                )
            else:
                outcome, status, message = "verified", 200, "Payment verified successfully."

            PAYMENT_VERIFICATION_COUNT.labels(outcome=outcome).inc()
            return self._success_response(
                {
                    "success": True,
                    "message": message,
                    "alreadyProcessed": result.already_processed,
                    "effectApplied": result.effect_applied,
                },
                status=status,
                message=f"payment_verification_{outcome}",
                user_id=user_id,
                order_id=order_id,
            )


class UserPaymentTransactionViewSet(ReadOnlyModelViewSet):
    """List payment transactions of the authenticated user."""

    serializer_class = PaymentTransactionSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = BoundedPageNumberPagination
    filterset_class = PaymentTransactionFilter
    ordering_fields = ("created_at", "amount", "status")
    ordering = ("-created_at",)

    def get_queryset(self):
        return PaymentTransaction.objects.filter(user=self.request.user).order_by("-created_at")


def _price_for(payment_type: str) -> int:
    prices = getattr(settings, "BILLING_PRICES", {}) or {}
    amount = prices.get(payment_type)
    if not amount:
        raise BillingConfigurationError(f"No price configured for '{payment_type}'.")
    return int(amount)
