"""FilterSet definitions for billing endpoints."""
from __future__ import annotations

import django_filters

from billing.models import PaymentTransaction


class PaymentTransactionFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    payment_type = django_filters.CharFilter(field_name="payment_type", lookup_expr="iexact")
    currency = django_filters.CharFilter(field_name="currency", lookup_expr="iexact")
    created_after = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = PaymentTransaction
        fields = ["status", "payment_type", "currency"]
