import pytest


@pytest.fixture(autouse=True)
def billing_settings(settings):
    from billing.tests.helpers import KEY_SECRET, WEBHOOK_SECRET

    settings.RAZORPAY_KEY_ID = "rzp_test_key"
    settings.RAZORPAY_KEY_SECRET = KEY_SECRET
    settings.RAZORPAY_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.RAZORPAY_API_BASE = "https://api.razorpay.test/v1"
    settings.BILLING_FREE_ACCESS = False
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    return settings


@pytest.fixture
def user(db):
    from billing.tests.helpers import create_user

    return create_user()
