"""Project credit consumption guarded by a single conditional UPDATE."""
from __future__ import annotations

import logging

from django.db.models import F
from django.utils import timezone

from billing.models import ProjectCredit
from billing.observability.metrics import CREDIT_GATE_COUNT

logger = logging.getLogger(__name__)


def ensure_credit_account(user_id) -> ProjectCredit:
    """Return the user's credit row, creating an empty one on first use."""

    account, created = ProjectCredit.objects.get_or_create(user_id=user_id)
    if created:
        logger.info("Opened project credit account for user %s.", user_id)
    return account


def try_consume_credit(user_id) -> bool:
    """Consume one project credit if any is available.

    Returns False, leaving the row untouched, when the balance is zero. Two
    concurrent callers cannot both take the last credit because the check
    and the decrement are the same statement.
    """

    ensure_credit_account(user_id)
    consumed = ProjectCredit.objects.filter(user_id=user_id, available_credits__gt=0).update(
        available_credits=F("available_credits") - 1,
        used_credits=F("used_credits") + 1,
        updated_at=timezone.now(),
    )
    outcome = "consumed" if consumed else "exhausted"
    CREDIT_GATE_COUNT.labels(outcome=outcome).inc()
    if not consumed:
        logger.info("Project credit exhausted for user %s.", user_id)
    return bool(consumed)


def release_credit(user_id) -> bool:
    """Return one consumed credit to the user (support/compensation tooling)."""

    released = ProjectCredit.objects.filter(user_id=user_id, used_credits__gt=0).update(
        available_credits=F("available_credits") + 1,
        used_credits=F("used_credits") - 1,
        updated_at=timezone.now(),
    )
    if released:
        CREDIT_GATE_COUNT.labels(outcome="released").inc()
        logger.info("Released one project credit back to user %s.", user_id)
    return bool(released)
