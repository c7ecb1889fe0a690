"""DRF serializers for billing flows (checkout orders, payment verification, transaction history)."""
from __future__ import annotations

from typing import Any, Dict

from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from billing.models import PaymentTransaction, UserSubscription

RAZORPAY_ID_MAX_LENGTH = 64


class CheckoutOrderSerializer(serializers.Serializer):
    paymentType = serializers.ChoiceField(choices=PaymentTransaction.PaymentType.choices)


class PaymentVerificationSerializer(serializers.Serializer):
    """Checkout callback forwarded by the dashboard after Razorpay's payment sheet closes."""

    paymentId = serializers.CharField(max_length=RAZORPAY_ID_MAX_LENGTH, trim_whitespace=True)
    orderId = serializers.CharField(max_length=RAZORPAY_ID_MAX_LENGTH, trim_whitespace=True)
    signature = serializers.CharField(max_length=128, trim_whitespace=True)
    userId = serializers.UUIDField()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated and user.pk != attrs["userId"]:
            raise serializers.ValidationError({"userId": [_("Does not match the signed-in user.")]})
        return attrs


class PaymentTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentTransaction
        fields = (
            "id",
            "payment_type",
            "amount",
            "currency",
            "razorpay_order_id",
            "razorpay_payment_id",
            "status",
            "failure_reason",
            "effect_applied_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class UserSubscriptionSerializer(serializers.ModelSerializer):
    plan_name = serializers.CharField(source="plan.name", read_only=True)

    class Meta:
        model = UserSubscription
        fields = (
            "id",
            "plan_name",
            "status",
            "current_period_start",
            "current_period_end",
            "cancelled_at",
        )
        read_only_fields = fields
