"""Billing API views."""

from .entitlements import EntitlementView, SubscriptionCancelView
from .payments import (
    BillingResponseMixin,
    CheckoutOrderView,
    PaymentVerificationView,
    UserPaymentTransactionViewSet,
)
