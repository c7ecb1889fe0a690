"""Prometheus metrics for billing requests, verification outcomes and the credit gate."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

BILLING_REQUEST_COUNT = Counter(
    "billing_request_total",
    "Number of billing API requests",
    labelnames=("endpoint", "method", "status"),
)

BILLING_REQUEST_LATENCY = Histogram(
    "billing_request_duration_seconds",
    "Latency of billing API requests",
    labelnames=("endpoint", "method"),
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

PAYMENT_VERIFICATION_COUNT = Counter(
    "billing_payment_verification_total",
    "Outcomes of payment verification attempts",
    labelnames=("outcome",),
)

CREDIT_GATE_COUNT = Counter(
    "billing_credit_gate_total",
    "Project credit gate decisions",
    labelnames=("outcome",),
)

EFFECT_APPLICATION_FAILURE_COUNT = Counter(
    "billing_effect_application_failure_total",
    "Completed payments whose credit or subscription could not be applied",
    labelnames=("payment_type",),
)

WEBHOOK_DEAD_LETTER_COUNT = Counter(
    "billing_webhook_dead_letter_total",
    "Total dead-lettered Razorpay webhook events",
    labelnames=("event_type",),
)
