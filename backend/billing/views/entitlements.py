"""Entitlement reads and subscription cancellation for the signed-in user."""
from __future__ import annotations

from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from billing.observability.metrics import BILLING_REQUEST_LATENCY
from billing.serializers import UserSubscriptionSerializer
from billing.services.credit_grants import cancel_subscription
from billing.services.entitlements import get_entitlements
from billing.views.payments import BillingResponseMixin


class EntitlementView(BillingResponseMixin, APIView):
    permission_classes = [IsAuthenticated]
    endpoint_label = "entitlements"
    method = "GET"

    def get(self, request):
        with BILLING_REQUEST_LATENCY.labels(endpoint=self.endpoint_label, method=self.method).time():
            return self._success_response(
                get_entitlements(request.user.pk),
                status=200,
                message="entitlements_read",
                user_id=request.user.pk,
            )


class SubscriptionCancelView(BillingResponseMixin, APIView):
    permission_classes = [IsAuthenticated]
    endpoint_label = "subscription.cancel"

    def post(self, request):
        with BILLING_REQUEST_LATENCY.labels(endpoint=self.endpoint_label, method=self.method).time():
            subscription = cancel_subscription(request.user.pk)
            if subscription is None:
                return self._error_response(
                    status=409,
                    code="subscription_inactive",
                    message="There is no active subscription to cancel.",
                    user_id=request.user.pk,
                )
            return self._success_response(
                {"subscription": UserSubscriptionSerializer(subscription).data},
                status=200,
                message="subscription_cancelled",
                user_id=request.user.pk,
            )
