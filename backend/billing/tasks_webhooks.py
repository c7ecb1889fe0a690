"""Razorpay webhook handler implementations and helpers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from billing.exceptions import TransactionNotFound
from billing.services.transaction_ledger import find_by_order_id, mark_failed
from billing.services.verification import settle_completed_order

logger = logging.getLogger(__name__)


class WebhookProcessingError(Exception):
    """Raised when a webhook cannot be processed successfully."""


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of a webhook handler invocation."""

    status: str
    detail: str = ""
    dead_letter_reason: Optional[str] = None
    dead_letter_payload: Optional[Dict[str, Any]] = None

    PROCESSED = "processed"
    IGNORED = "ignored"
    DEAD_LETTER = "dead_letter"
    ALREADY_PROCESSED = "already_processed"


def dispatch_event(*, event_id: str, event_type: str, payload: Dict[str, Any], received_at: datetime) -> HandlerResult:
    """Route a Razorpay webhook event to its dedicated handler."""

    handler = {
        "payment.captured": _handle_payment_captured,
        "order.paid": _handle_order_paid,
        "payment.failed": _handle_payment_failed,
    }.get(event_type)

    if handler is None:
        logger.info("Ignoring unsupported Razorpay event type '%s'.", event_type)
        return HandlerResult(status=HandlerResult.IGNORED, detail="Unsupported event type")

    return handler(event_id=event_id, payload=payload, received_at=received_at)


def _handle_payment_captured(*, event_id: str, payload: Dict[str, Any], received_at: datetime) -> HandlerResult:
    payment = _entity(payload, "payment")
    return _settle(event_id=event_id, order_id=payment.get("order_id"), payment_id=payment.get("id"))


def _handle_order_paid(*, event_id: str, payload: Dict[str, Any], received_at: datetime) -> HandlerResult:
    order = _entity(payload, "order")
    payment = _entity(payload, "payment")
    order_id = order.get("id") or payment.get("order_id")
    return _settle(event_id=event_id, order_id=order_id, payment_id=payment.get("id"))


def _handle_payment_failed(*, event_id: str, payload: Dict[str, Any], received_at: datetime) -> HandlerResult:
    payment = _entity(payload, "payment")
    order_id = payment.get("order_id")
    if not order_id:
        raise WebhookProcessingError("payment.failed event is missing the order id.")

    reason = payment.get("error_description") or payment.get("error_code") or "Payment failed."
    if mark_failed(order_id, str(reason)):
        logger.info("Marked order %s as failed from event %s.", order_id, event_id)
        return HandlerResult(status=HandlerResult.PROCESSED, detail="Transaction marked failed")

    if find_by_order_id(order_id) is None:
        return HandlerResult(status=HandlerResult.IGNORED, detail="Unknown order")
    return HandlerResult(status=HandlerResult.IGNORED, detail="Transaction no longer pending")


def _settle(*, event_id: str, order_id: Optional[str], payment_id: Optional[str]) -> HandlerResult:
    if not order_id or not payment_id:
        raise WebhookProcessingError("Payment event is missing the order or payment id.")

    transaction_record = find_by_order_id(order_id)
    if transaction_record is None:
        logger.warning("Razorpay event %s references unknown order %s.", event_id, order_id)
        return HandlerResult(status=HandlerResult.IGNORED, detail="Unknown order")

    try:
        result = settle_completed_order(order_id, transaction_record.user_id, payment_id)
    except TransactionNotFound as exc:
        raise WebhookProcessingError(str(exc)) from exc

    if result.already_processed:
        return HandlerResult(status=HandlerResult.ALREADY_PROCESSED, detail="Transaction already completed")
    if not result.effect_applied:
        return HandlerResult(status=HandlerResult.PROCESSED, detail="Transaction completed; effect pending reconciliation")
    return HandlerResult(status=HandlerResult.PROCESSED, detail="Transaction completed")


def _entity(payload: Dict[str, Any], name: str) -> Dict[str, Any]:
    container = (payload.get("payload") or {}).get(name) or {}
    entity = container.get("entity") if isinstance(container, dict) else None
    return entity if isinstance(entity, dict) else {}


def describe_event(payload: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(order_id, payment_id)`` referenced by an event, for logging."""

    payment = _entity(payload, "payment")
    order = _entity(payload, "order")
    return order.get("id") or payment.get("order_id"), payment.get("id")
