"""URL routes for billing endpoints."""
from django.urls import path

from .views import (
    CheckoutOrderView,
    EntitlementView,
    PaymentVerificationView,
    SubscriptionCancelView,
    UserPaymentTransactionViewSet,
)
from .views_webhook import RazorpayWebhookView

app_name = "billing"

urlpatterns = [
    path("orders/", CheckoutOrderView.as_view(), name="checkout-order"),
    path("payments/verify/", PaymentVerificationView.as_view(), name="payment-verify"),
    path("webhooks/razorpay/", RazorpayWebhookView.as_view(), name="razorpay-webhook"),
    path("entitlements/", EntitlementView.as_view(), name="entitlements"),
    path("subscription/cancel/", SubscriptionCancelView.as_view(), name="subscription-cancel"),
    path(
        "transactions/",
        UserPaymentTransactionViewSet.as_view({"get": "list"}),
        name="billing-transactions",
    ),
]
