import logging
from typing import Dict, List

from django.apps import AppConfig
from django.db.models.signals import post_migrate

logger = logging.getLogger(__name__)


def ensure_default_subscription_plans() -> Dict[str, List[str]]:
    """Ensure the configured subscription plans exist with the expected pricing."""
    from django.conf import settings
    from django.db import OperationalError, ProgrammingError
    from .models import SubscriptionPlan
    from .services.plans import plan_defaults

    created, updated = [], []
    plan_keys = list((getattr(settings, "BILLING_PLAN_CONFIG", {}) or {}).keys()) or ["monthly"]

    try:
        for key in plan_keys:
            defaults = plan_defaults(key)
            plan_name = defaults.pop("name")

            plan, was_created = SubscriptionPlan.objects.get_or_create(name=plan_name, defaults=defaults)
            if was_created:
                created.append(plan_name)
                continue

            fields_to_update = []
            for field, expected in defaults.items():
                if getattr(plan, field) != expected:
                    setattr(plan, field, expected)
                    fields_to_update.append(field)

            if fields_to_update:
                plan.save(update_fields=fields_to_update + ["updated_at"])
                updated.append(plan_name)

    except (OperationalError, ProgrammingError):
        logger.debug("Database not ready for subscription plan initialisation.")
        return {"created": [], "updated": []}

    if created or updated:
        logger.info("Subscription plan initialisation completed. created=%s updated=%s", created, updated)

    return {"created": created, "updated": updated}


def init_plans_after_migrate(sender, **kwargs):
    """Called automatically after migrations to initialize default plans."""
    logger.info("[Billing] Running ensure_default_subscription_plans() after migrate…")
    ensure_default_subscription_plans()


class BillingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'billing'

    def ready(self):
        # Connect signal so plans are ensured after every migrate run
        post_migrate.connect(init_plans_after_migrate, sender=self)
