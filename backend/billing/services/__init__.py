"""Expose commonly used billing services."""

from .credit_gate import release_credit, try_consume_credit
from .credit_grants import apply_effect, cancel_subscription, expire_lapsed_subscriptions
from .entitlements import (
    ProjectAuthorization,
    authorize_project_creation,
    available_credits,
    get_entitlements,
    has_active_subscription,
)
from .signatures import verify_payment_signature, verify_webhook_signature
from .transaction_ledger import create_pending, mark_completed, mark_failed
from .verification import SettlementResult, settle_completed_order, settle_verified_payment
