"""Payment verification: signature check, ledger transition and effect application."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

from billing.exceptions import BillingConfigurationError, EffectApplicationFailure, SignatureInvalid
from billing.models import BillingEventDeadLetter, PaymentTransaction
from billing.observability.logging import log_billing_event
from billing.observability.metrics import EFFECT_APPLICATION_FAILURE_COUNT
from billing.services.credit_grants import apply_effect
from billing.services.signatures import verify_payment_signature
from billing.services.transaction_ledger import mark_completed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    transaction: PaymentTransaction
    already_processed: bool
    effect_applied: bool
    effect_pending: bool = False


def settle_verified_payment(order_id: str, payment_id: str, signature: str, user_id) -> SettlementResult:
    """Verify a checkout callback and settle the matching transaction.

    Raises ``SignatureInvalid`` or ``TransactionNotFound`` without touching the
    ledger. A repeated call for an already completed order succeeds with
    ``already_processed=True`` and applies nothing.
    """

    secret = getattr(settings, "RAZORPAY_KEY_SECRET", "")
    if not secret:
        raise BillingConfigurationError("RAZORPAY_KEY_SECRET must be configured.")

    if not verify_payment_signature(order_id, payment_id, signature, secret):
        log_billing_event(
            message="payment_signature_rejected",
            user_id=user_id,
            order_id=order_id,
            level=logging.WARNING,
        )
        raise SignatureInvalid("Payment signature verification failed.")

    return settle_completed_order(order_id, user_id, payment_id)


def settle_completed_order(order_id: str, user_id, payment_id: str) -> SettlementResult:
    """Complete the order for ``user_id`` and apply its effect once.

    Shared by client verification and the webhook handler. When the effect
    cannot be applied the ledger stays ``completed`` and a dead letter is
    recorded for the reconciliation job.
    """

    transition = mark_completed(order_id, user_id, payment_id)
    payment = transition.transaction

    if transition.already_processed:
        log_billing_event(
            message="payment_already_processed",
            user_id=payment.user_id,
            order_id=order_id,
            extra={"transaction_id": str(payment.pk)},
        )
        return SettlementResult(transaction=payment, already_processed=True, effect_applied=False)

    try:
        applied = apply_effect(payment)
    except EffectApplicationFailure as exc:
        record_effect_failure(payment, str(exc.__cause__ or exc))
        return SettlementResult(
            transaction=payment, already_processed=False, effect_applied=False, effect_pending=True
        )

    log_billing_event(
        message="payment_settled",
        user_id=payment.user_id,
        order_id=order_id,
        extra={
            "transaction_id": str(payment.pk),
            "payment_type": payment.payment_type,
            "effect_applied": applied,
        },
    )
    return SettlementResult(transaction=payment, already_processed=False, effect_applied=applied)


def record_effect_failure(payment: PaymentTransaction, reason: str) -> BillingEventDeadLetter:
    EFFECT_APPLICATION_FAILURE_COUNT.labels(payment_type=payment.payment_type).inc()
    log_billing_event(
        message="effect_application_failed",
        user_id=payment.user_id,
        order_id=payment.razorpay_order_id,
        level=logging.ERROR,
        extra={"transaction_id": str(payment.pk), "reason": reason},
    )
    return record_dead_letter(
        kind=BillingEventDeadLetter.Kind.EFFECT_APPLICATION,
        reference=str(payment.pk),
        event_type=payment.payment_type,
        reason=reason,
        payload={
            "transaction_id": str(payment.pk),
            "order_id": payment.razorpay_order_id,
            "user_id": str(payment.user_id),
            "payment_type": payment.payment_type,
        },
    )


def record_dead_letter(
    *,
    kind: str,
    reference: str,
    event_type: Optional[str],
    reason: Optional[str],
    payload: Dict[str, Any],
) -> BillingEventDeadLetter:
    defaults = {
        "event_type": event_type or "",
        "payload": payload,
        "failure_reason": reason or "unknown",
        "last_attempt_at": timezone.now(),
    }
    dead_letter, created = BillingEventDeadLetter.objects.get_or_create(
        kind=kind,
        reference=reference,
        defaults=defaults,
    )

    if not created:
        dead_letter.payload = payload
        dead_letter.failure_reason = defaults["failure_reason"]
        dead_letter.last_attempt_at = defaults["last_attempt_at"]
        dead_letter.retry_count = (dead_letter.retry_count or 0) + 1
        dead_letter.save(update_fields=["payload", "failure_reason", "last_attempt_at", "retry_count"])
    return dead_letter


def clear_dead_letter(*, kind: str, reference: str) -> int:
    deleted, _ = BillingEventDeadLetter.objects.filter(kind=kind, reference=reference).delete()
    return deleted
