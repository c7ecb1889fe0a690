"""Payment transaction ledger: checkout orders and their at-most-once completion."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from billing.exceptions import ExternalProviderError, TransactionNotFound
from billing.models import PaymentTransaction
from billing.services.razorpay_orders import RazorpayServiceError, create_order, razorpay_credentials

logger = logging.getLogger(__name__)

User = get_user_model()

_COMPLETABLE_STATUSES = (
    PaymentTransaction.Status.CREATED,
    PaymentTransaction.Status.FAILED,
)


@dataclass(frozen=True)
class PendingOrder:
    transaction_id: uuid.UUID
    order_id: str
    amount: int
    currency: str


@dataclass(frozen=True)
class LedgerTransition:
    transaction: PaymentTransaction
    transitioned: bool

    @property
    def already_processed(self) -> bool:
        return not self.transitioned


def create_pending(user_id, payment_type: str, amount: int, currency: Optional[str] = None) -> PendingOrder:
    """Record a checkout attempt and obtain its Razorpay order id.

    The local row is written first so the order can carry its id as receipt.
    If the order call fails or times out the row is marked ``failed`` and
    ``ExternalProviderError`` is raised; callers start a fresh attempt.
    """

    if payment_type not in PaymentTransaction.PaymentType.values:
        raise ValueError(f"Unsupported payment type '{payment_type}'.")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError("Amount must be a positive integer in minor currency units.")

    currency = (currency or getattr(settings, "BILLING_CURRENCY", "INR")).upper()
    razorpay_credentials()
    user = _get_user(user_id)

    pending = PaymentTransaction.objects.create(
        user=user,
        payment_type=payment_type,
        amount=amount,
        currency=currency,
        status=PaymentTransaction.Status.CREATED,
    )

    try:
        order = create_order(
            amount=amount,
            currency=currency,
            receipt=f"txn_{pending.id.hex}",
            notes={
                "transaction_id": pending.id,
                "user_id": user.pk,
                "payment_type": payment_type,
            },
        )
    except RazorpayServiceError as exc:
        _fail_pending(pending, str(exc))
        raise ExternalProviderError("Could not create a payment order. Please try again.") from exc

    order_id = str(order["id"])
    attached = PaymentTransaction.objects.filter(
        pk=pending.pk,
        status=PaymentTransaction.Status.CREATED,
        razorpay_order_id__isnull=True,
    ).update(
        razorpay_order_id=order_id,
        metadata={"order_status": order.get("status", ""), "receipt": order.get("receipt", "")},
        updated_at=timezone.now(),
    )
    if not attached:
        logger.error("Pending transaction %s changed state before order %s was attached.", pending.pk, order_id)
        raise ExternalProviderError("Payment order could not be recorded. Please try again.")

    logger.info("Created Razorpay order %s for transaction %s (%s).", order_id, pending.pk, payment_type)
    return PendingOrder(transaction_id=pending.pk, order_id=order_id, amount=amount, currency=currency)


def mark_completed(order_id: str, user_id, payment_id: str) -> LedgerTransition:
    """Transition the user's transaction for ``order_id`` to ``completed`` exactly once.

    The transition is a single conditional UPDATE, so concurrent callers for
    the same order (client verification racing a webhook) cannot both see
    ``transitioned=True``. A transaction that is already completed is returned
    unchanged with ``transitioned=False``.
    """

    if not order_id or not payment_id:
        raise ValueError("order_id and payment_id are required.")

    user_pk = _coerce_user_id(user_id)
    if user_pk is None:
        raise TransactionNotFound(f"No transaction found for order {order_id}.")

    scoped = PaymentTransaction.objects.filter(razorpay_order_id=order_id, user_id=user_pk)

    with transaction.atomic():
        transitioned = scoped.filter(status__in=_COMPLETABLE_STATUSES).update(
            status=PaymentTransaction.Status.COMPLETED,
            razorpay_payment_id=payment_id,
            failure_reason="",
            updated_at=timezone.now(),
        )
        record = scoped.first()

    if record is None:
        raise TransactionNotFound(f"No transaction found for order {order_id}.")

    if not transitioned and record.razorpay_payment_id != payment_id:
        logger.warning(
            "Order %s already completed with payment %s; ignoring payment %s.",
            order_id,
            record.razorpay_payment_id,
            payment_id,
        )

    return LedgerTransition(transaction=record, transitioned=bool(transitioned))


def mark_failed(order_id: str, reason: str) -> bool:
    """Flag a still-pending order as failed. Completed transactions are never downgraded."""

    updated = PaymentTransaction.objects.filter(
        razorpay_order_id=order_id,
        status=PaymentTransaction.Status.CREATED,
    ).update(
        status=PaymentTransaction.Status.FAILED,
        failure_reason=reason or "",
        updated_at=timezone.now(),
    )
    return bool(updated)


def fail_stale_pending(older_than: timedelta, *, now=None) -> int:
    """Fail ``created`` rows that never received an order id."""

    cutoff = (now or timezone.now()) - older_than
    return PaymentTransaction.objects.filter(
        status=PaymentTransaction.Status.CREATED,
        razorpay_order_id__isnull=True,
        created_at__lt=cutoff,
    ).update(
        status=PaymentTransaction.Status.FAILED,
        failure_reason="Order was never created with the payment processor.",
        updated_at=timezone.now(),
    )


def find_by_order_id(order_id: str) -> Optional[PaymentTransaction]:
    if not order_id:
        return None
    return PaymentTransaction.objects.filter(razorpay_order_id=order_id).first()


def _fail_pending(pending: PaymentTransaction, reason: str) -> None:
    PaymentTransaction.objects.filter(pk=pending.pk, status=PaymentTransaction.Status.CREATED).update(
        status=PaymentTransaction.Status.FAILED,
        failure_reason=reason[:1000],
        updated_at=timezone.now(),
    )
    logger.warning("Order creation failed for transaction %s: %s", pending.pk, reason)


def _coerce_user_id(user_id) -> Optional[uuid.UUID]:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except (TypeError, ValueError, AttributeError):
        return None


def _get_user(user_id):
    user_pk = _coerce_user_id(user_id)
    if user_pk is None:
        raise ValueError("User does not exist.")
    try:
        return User.objects.get(pk=user_pk)
    except User.DoesNotExist as exc:
        raise ValueError("User does not exist.") from exc
