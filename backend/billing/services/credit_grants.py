"""Business effects of completed payments: project credits and subscription periods."""
from __future__ import annotations

import calendar
import logging
from datetime import datetime
from typing import Optional

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from billing.exceptions import EffectApplicationFailure
from billing.models import PaymentTransaction, ProjectCredit, SubscriptionPlan, UserSubscription
from billing.services.credit_gate import ensure_credit_account
from billing.services.plans import get_monthly_plan

logger = logging.getLogger(__name__)

CREDITS_PER_PURCHASE = 1


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by calendar months, clamping to the last day of the target month."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def apply_effect(payment: PaymentTransaction, *, now: Optional[datetime] = None) -> bool:
    """Grant what ``payment`` bought. Returns False when the effect was already applied.

    The ``effect_applied_at`` claim and the grant commit together, so a
    failure leaves the payment completed but unclaimed for reconciliation,
    and replays never grant twice.
    """

    if not payment.is_completed:
        raise ValueError("Only completed transactions carry a billing effect.")

    now = now or timezone.now()
    try:
        with transaction.atomic():
            claimed = PaymentTransaction.objects.filter(
                pk=payment.pk,
                status=PaymentTransaction.Status.COMPLETED,
                effect_applied_at__isnull=True,
            ).update(effect_applied_at=now, updated_at=now)
            if not claimed:
                logger.info("Effect for transaction %s already applied; skipping.", payment.pk)
                return False

            if payment.payment_type == PaymentTransaction.PaymentType.PROJECT_CREDIT:
                grant_project_credit(payment.user_id)
            elif payment.payment_type == PaymentTransaction.PaymentType.SUBSCRIPTION:
                activate_subscription(payment.user_id, now=now, payment=payment)
            else:
                raise ValueError(f"Unsupported payment type '{payment.payment_type}'.")
    except (DatabaseError, SubscriptionPlan.DoesNotExist) as exc:
        logger.exception("Failed to apply effect for transaction %s.", payment.pk)
        raise EffectApplicationFailure(
            f"Could not apply {payment.payment_type} for transaction {payment.pk}."
        ) from exc

    payment.effect_applied_at = now
    logger.info("Applied %s effect for transaction %s.", payment.payment_type, payment.pk)
    return True


def grant_project_credit(user_id, credits: int = CREDITS_PER_PURCHASE) -> None:
    if credits <= 0:
        raise ValueError("Granted credits must be positive.")
    ensure_credit_account(user_id)
    ProjectCredit.objects.filter(user_id=user_id).update(
        available_credits=F("available_credits") + credits,
        total_purchased_credits=F("total_purchased_credits") + credits,
        updated_at=timezone.now(),
    )


def activate_subscription(
    user_id,
    *,
    now: Optional[datetime] = None,
    payment: Optional[PaymentTransaction] = None,
) -> UserSubscription:
    """Start a fresh one-month period for the user, replacing any previous one."""

    start = now or timezone.now()
    subscription, created = UserSubscription.objects.update_or_create(
        user_id=user_id,
        defaults={
            "plan": get_monthly_plan(),
            "status": UserSubscription.Status.ACTIVE,
            "current_period_start": start,
            "current_period_end": add_months(start, 1),
            "cancelled_at": None,
            "last_payment_transaction": payment,
        },
    )
    logger.info(
        "%s subscription for user %s until %s.",
        "Activated" if created else "Renewed",
        user_id,
        subscription.current_period_end.isoformat(),
    )
    return subscription


def cancel_subscription(user_id, *, now: Optional[datetime] = None) -> Optional[UserSubscription]:
    """Cancel the user's active subscription. Returns None when there is nothing to cancel."""

    now = now or timezone.now()
    with transaction.atomic():
        subscription = (
            UserSubscription.objects.select_for_update()
            .filter(user_id=user_id, status=UserSubscription.Status.ACTIVE)
            .first()
        )
        if subscription is None:
            return None
        subscription.status = UserSubscription.Status.CANCELLED
        subscription.cancelled_at = now
        subscription.save(update_fields=["status", "cancelled_at", "updated_at"])
    logger.info("Cancelled subscription for user %s.", user_id)
    return subscription


def expire_lapsed_subscriptions(*, now: Optional[datetime] = None) -> int:
    now = now or timezone.now()
    return UserSubscription.objects.filter(
        status=UserSubscription.Status.ACTIVE,
        current_period_end__lte=now,
    ).update(status=UserSubscription.Status.EXPIRED, updated_at=now)
