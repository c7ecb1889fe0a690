"""Subscription plan lookups backed by ``BILLING_PLAN_CONFIG``."""
from __future__ import annotations

from typing import Any, Dict

from django.conf import settings

from billing.models import SubscriptionPlan

MONTHLY_PLAN_KEY = "monthly"


def plan_defaults(key: str) -> Dict[str, Any]:
    plan_config = (getattr(settings, "BILLING_PLAN_CONFIG", {}) or {}).get(key) or {}
    prices = getattr(settings, "BILLING_PRICES", {}) or {}
    return {
        "name": plan_config.get("name", "Monthly Subscription"),
        "description": plan_config.get("description", ""),
        "price": int(plan_config.get("price", prices.get("subscription", 0))),
        "currency": getattr(settings, "BILLING_CURRENCY", "INR").upper(),
        "interval_type": plan_config.get("interval_type", SubscriptionPlan.Interval.MONTH),
        "features": list(plan_config.get("features", [])),
        "is_active": True,
    }


def get_monthly_plan() -> SubscriptionPlan:
    defaults = plan_defaults(MONTHLY_PLAN_KEY)
    name = defaults.pop("name")
    plan, _ = SubscriptionPlan.objects.get_or_create(name=name, defaults=defaults)
    return plan
