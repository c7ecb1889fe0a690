"""Receipt log for Razorpay webhook events.

Razorpay redelivers an event until it gets a 2xx, so both the receiving view
and the worker consult ``WebhookEventLog`` before doing any work. An event
whose log row is ``handled`` is never processed again.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from billing.models import WebhookEventLog


def reserve_event(
    event_id: Optional[str],
    event_type: Optional[str],
    payload_hash: str,
    *,
    status: str,
) -> Tuple[Optional[WebhookEventLog], bool]:
    """Create or reopen the log row for ``event_id``.

    Returns ``(log_entry, already_handled)``. Events without an id get no log
    row and are always processed.
    """

    if not event_id:
        return None, False

    with transaction.atomic():
        log_entry = WebhookEventLog.objects.select_for_update().filter(event_id=event_id).first()
        if log_entry is None:
            log_entry = WebhookEventLog.objects.create(
                event_id=event_id,
                event_type=event_type or "",
                status=status,
                payload_hash=payload_hash or "",
            )
            return log_entry, False

        if log_entry.handled:
            return log_entry, True

        log_entry.event_type = event_type or log_entry.event_type
        log_entry.status = status
        log_entry.last_error = ""
        log_entry.processed_at = None
        if payload_hash and not log_entry.payload_hash:
            log_entry.payload_hash = payload_hash
        log_entry.save(update_fields=["event_type", "status", "last_error", "processed_at", "payload_hash"])
        return log_entry, False


def mark_event_handled(log_entry: Optional[WebhookEventLog], status: str) -> None:
    if log_entry is None:
        return

    log_entry.status = status
    log_entry.processed_at = timezone.now()
    log_entry.last_error = ""
    log_entry.handled = True
    log_entry.save(update_fields=["status", "processed_at", "last_error", "handled"])


def mark_event_failed(log_entry: Optional[WebhookEventLog], error: str) -> None:
    if log_entry is None:
        return

    log_entry.status = WebhookEventLog.Status.FAILED
    log_entry.last_error = error[:2000]
    log_entry.processed_at = None
    log_entry.handled = False
    log_entry.save(update_fields=["status", "last_error", "processed_at", "handled"])


def hash_raw_body(body: bytes) -> str:
    return hashlib.sha256(body).hexdigest()


def hash_event(event: Dict[str, Any]) -> str:
    serialized = json.dumps(event, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
