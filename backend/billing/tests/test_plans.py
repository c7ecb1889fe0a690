import pytest
from django.test import Client

from billing.apps import ensure_default_subscription_plans
from billing.models import SubscriptionPlan
from billing.services.plans import get_monthly_plan


@pytest.mark.django_db
def test_monthly_plan_is_created_from_settings():
    SubscriptionPlan.objects.all().delete()

    result = ensure_default_subscription_plans()

    assert result == {"created": ["Monthly Subscription"], "updated": []}
    plan = SubscriptionPlan.objects.get()
    assert plan.price == 19900
    assert plan.currency == "INR"
    assert plan.interval_type == SubscriptionPlan.Interval.MONTH


@pytest.mark.django_db
def test_plan_price_follows_configuration(settings):
    ensure_default_subscription_plans()
    settings.BILLING_PLAN_CONFIG = {
        "monthly": {**settings.BILLING_PLAN_CONFIG["monthly"], "price": 24900},
    }

    result = ensure_default_subscription_plans()

    assert result["updated"] == ["Monthly Subscription"]
    assert get_monthly_plan().price == 24900


@pytest.mark.django_db
def test_get_monthly_plan_creates_missing_plan():
    SubscriptionPlan.objects.all().delete()

    plan = get_monthly_plan()

    assert plan.name == "Monthly Subscription"
    assert SubscriptionPlan.objects.count() == 1


def test_health_and_metrics_endpoints():
    client = Client()

    assert client.get("/health/").content == b"OK"
    metrics = client.get("/metrics/billing/")
    assert metrics.status_code == 200
    assert b"billing_payment_verification_total" in metrics.content
