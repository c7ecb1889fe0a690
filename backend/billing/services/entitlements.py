"""Read side of billing: what a user may do right now."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

from billing.models import ProjectCredit, UserSubscription
from billing.services.credit_gate import try_consume_credit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectAuthorization:
    allowed: bool
    reason: Optional[str] = None

    FREE_ACCESS = "free_access"
    SUBSCRIPTION = "subscription"
    CREDIT = "credit"

    @property
    def consumed_credit(self) -> bool:
        return self.allowed and self.reason == self.CREDIT


def free_access_enabled() -> bool:
    return bool(getattr(settings, "BILLING_FREE_ACCESS", False))


def active_subscription(user_id) -> Optional[UserSubscription]:
    return (
        UserSubscription.objects.select_related("plan")
        .filter(
            user_id=user_id,
            status=UserSubscription.Status.ACTIVE,
            current_period_end__gt=timezone.now(),
        )
        .first()
    )


def has_active_subscription(user_id) -> bool:
    if free_access_enabled():
        return True
    return active_subscription(user_id) is not None


def available_credits(user_id) -> int:
    account = ProjectCredit.objects.filter(user_id=user_id).first()
    return account.available_credits if account else 0


def authorize_project_creation(user_id) -> ProjectAuthorization:
    """Decide whether the user may create one more project.

    A subscription authorises without touching the balance; otherwise one
    credit is consumed. Call inside the transaction that inserts the project
    so a failed insert gives the credit back.
    """

    if free_access_enabled():
        return ProjectAuthorization(allowed=True, reason=ProjectAuthorization.FREE_ACCESS)
    if active_subscription(user_id) is not None:
        return ProjectAuthorization(allowed=True, reason=ProjectAuthorization.SUBSCRIPTION)
    if try_consume_credit(user_id):
        return ProjectAuthorization(allowed=True, reason=ProjectAuthorization.CREDIT)
    return ProjectAuthorization(allowed=False)


def get_entitlements(user_id) -> Dict[str, Any]:
    account = ProjectCredit.objects.filter(user_id=user_id).first()
    subscription = UserSubscription.objects.select_related("plan").filter(user_id=user_id).first()
    free_access = free_access_enabled()

    subscription_payload = None
    if subscription is not None:
        subscription_payload = {
            "status": subscription.status,
            "planName": subscription.plan.name,
            "currentPeriodStart": subscription.current_period_start.isoformat(),
            "currentPeriodEnd": subscription.current_period_end.isoformat(),
            "cancelledAt": subscription.cancelled_at.isoformat() if subscription.cancelled_at else None,
        }

    return {
        "hasActiveSubscription": has_active_subscription(user_id),
        "availableCredits": available_credits(user_id),
        "totalPurchasedCredits": account.total_purchased_credits if account else 0,
        "usedCredits": account.used_credits if account else 0,
        "freeAccess": free_access,
        "subscription": subscription_payload,
    }
