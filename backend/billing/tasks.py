"""Celery tasks: Razorpay event processing and billing maintenance jobs."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from celery import shared_task
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from billing.exceptions import EffectApplicationFailure
from billing.models import BillingEventDeadLetter, PaymentTransaction, WebhookEventLog
from billing.observability.metrics import WEBHOOK_DEAD_LETTER_COUNT
from billing.services import credit_grants
from billing.services.transaction_ledger import fail_stale_pending
from billing.services.verification import clear_dead_letter, record_dead_letter, record_effect_failure
from billing.services.webhook_events import hash_event, mark_event_failed, mark_event_handled, reserve_event
from billing.tasks_webhooks import HandlerResult, WebhookProcessingError, describe_event, dispatch_event

logger = logging.getLogger(__name__)

# Completed payments younger than this are still being settled inline.
RECONCILE_GRACE_SECONDS = 60
RECONCILE_BATCH_SIZE = 200


@shared_task(bind=True, queue="billing", autoretry_for=(IntegrityError,), retry_backoff=True, max_retries=5)
def process_razorpay_event_async(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
    """Handle one Razorpay webhook event at most once.

    Permanent failures (an event that can never be applied) are dead-lettered;
    anything unexpected is retried by Celery.
    """

    event_id = event_data.get("id")
    event_type = event_data.get("event") or ""

    log_entry, already_handled = reserve_event(
        event_id, event_type, hash_event(event_data), status=WebhookEventLog.Status.PROCESSING
    )
    if already_handled:
        logger.info("Skipping Razorpay event %s (%s); status=%s", event_id, event_type, log_entry.status)
        return {"status": "skipped"}

    try:
        with transaction.atomic():
            result = dispatch_event(
                event_id=event_id or "",
                event_type=event_type,
                payload=event_data,
                received_at=timezone.now(),
            )
    except WebhookProcessingError as exc:
        logger.warning("Webhook processing error for event %s: %s", event_id, exc)
        result = HandlerResult(status=HandlerResult.DEAD_LETTER, detail=str(exc), dead_letter_reason=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error processing Razorpay event %s", event_id)
        mark_event_failed(log_entry, str(exc))
        raise self.retry(exc=exc)

    if result.status == HandlerResult.DEAD_LETTER:
        _dead_letter_event(event_data, log_entry, result)
        return {"status": HandlerResult.DEAD_LETTER, "detail": result.detail}

    if result.status == HandlerResult.IGNORED:
        mark_event_handled(log_entry, WebhookEventLog.Status.IGNORED)
    else:
        mark_event_handled(log_entry, WebhookEventLog.Status.PROCESSED)

    logger.info("Processed Razorpay event %s (%s): %s", event_id, event_type, result.detail or result.status)
    return {"status": result.status, "detail": result.detail}


def _dead_letter_event(event_data: Dict[str, Any], log_entry, result: HandlerResult) -> None:
    event_id = event_data.get("id")
    event_type = event_data.get("event") or "unknown"
    order_id, payment_id = describe_event(event_data)

    WEBHOOK_DEAD_LETTER_COUNT.labels(event_type=event_type).inc()
    if event_id:
        record_dead_letter(
            kind=BillingEventDeadLetter.Kind.WEBHOOK_EVENT,
            reference=event_id,
            event_type=event_type,
            reason=result.dead_letter_reason or result.detail,
            payload=result.dead_letter_payload or event_data,
        )
    mark_event_failed(log_entry, result.detail or "dead_letter")
    logger.warning(
        "Dead-lettered Razorpay event %s (%s) for order %s / payment %s: %s",
        event_id,
        event_type,
        order_id,
        payment_id,
        result.detail,
    )


@shared_task(queue="billing")
def reconcile_unapplied_effects(limit: int = RECONCILE_BATCH_SIZE) -> Dict[str, int]:
    """Apply credits and subscriptions for completed payments that are still missing them."""

    cutoff = timezone.now() - timedelta(seconds=RECONCILE_GRACE_SECONDS)
    pending = list(
        PaymentTransaction.objects.filter(
            status=PaymentTransaction.Status.COMPLETED,
            effect_applied_at__isnull=True,
            updated_at__lt=cutoff,
        ).order_by("updated_at")[:limit]
    )

    stats = {"applied": 0, "skipped": 0, "failed": 0}
    for payment in pending:
        try:
            applied = credit_grants.apply_effect(payment)
        except EffectApplicationFailure as exc:
            record_effect_failure(payment, str(exc.__cause__ or exc))
            stats["failed"] += 1
            continue

        clear_dead_letter(kind=BillingEventDeadLetter.Kind.EFFECT_APPLICATION, reference=str(payment.pk))
        stats["applied" if applied else "skipped"] += 1

    if pending:
        logger.info("Reconciled unapplied billing effects: %s", stats)
    return stats


@shared_task(queue="billing")
def expire_lapsed_subscriptions() -> int:
    expired = credit_grants.expire_lapsed_subscriptions()
    if expired:
        logger.info("Expired %s lapsed subscriptions.", expired)
    return expired


@shared_task(queue="billing")
def fail_stale_pending_transactions(minutes: Optional[int] = None) -> int:
    """Fail checkout rows that never obtained a Razorpay order."""

    ttl = minutes or getattr(settings, "BILLING_PENDING_ORDER_TTL_MINUTES", 30)
    failed = fail_stale_pending(timedelta(minutes=ttl))
    if failed:
        logger.warning("Marked %s orphaned pending transactions as failed.", failed)
    return failed


@shared_task(queue="billing")
def cleanup_webhook_event_logs(days: Optional[int] = None) -> int:
    days = days or getattr(settings, "BILLING_WEBHOOK_LOG_RETENTION_DAYS", 30)
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = WebhookEventLog.objects.filter(
        status__in=[WebhookEventLog.Status.PROCESSED, WebhookEventLog.Status.IGNORED],
        handled=True,
        processed_at__lt=cutoff,
    ).delete()

    logger.info("Removed %s handled webhook events older than %s days.", deleted, days)
    return deleted
