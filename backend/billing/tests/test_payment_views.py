from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
import requests
from django.db import DatabaseError
from django.utils import timezone
from rest_framework.test import APIClient

from billing.models import BillingEventDeadLetter, PaymentTransaction, ProjectCredit, UserSubscription
from billing.services.credit_grants import activate_subscription, add_months, grant_project_credit
from billing.tests.helpers import auth_client, create_order_transaction, create_user, sign_payment

VERIFY_URL = "/api/billing/payments/verify/"
ORDERS_URL = "/api/billing/orders/"


def _verify_payload(user, order_id="order_abc", payment_id="pay_123", signature=None):
    return {
        "paymentId": payment_id,
        "orderId": order_id,
        "signature": signature or sign_payment(order_id, payment_id),
        "userId": str(user.pk),
    }


@pytest.mark.django_db
def test_subscription_purchase_scenario(user):
    create_order_transaction(user, payment_type="subscription", amount=19900)

    response = APIClient().post(VERIFY_URL, _verify_payload(user), format="json")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["alreadyProcessed"] is False
    assert payload["effectApplied"] is True

    subscription = UserSubscription.objects.get(user=user)
    assert subscription.status == UserSubscription.Status.ACTIVE
    expected_end = add_months(subscription.current_period_start, 1)
    assert subscription.current_period_end == expected_end
    assert abs(subscription.current_period_end - add_months(timezone.now(), 1)) < timedelta(minutes=1)

    record = PaymentTransaction.objects.get(razorpay_order_id="order_abc")
    assert record.status == PaymentTransaction.Status.COMPLETED
    assert record.razorpay_payment_id == "pay_123"


@pytest.mark.django_db
def test_repeated_verification_does_not_double_credit(user):
    create_order_transaction(user)
    client = APIClient()

    first = client.post(VERIFY_URL, _verify_payload(user), format="json")
    second = client.post(VERIFY_URL, _verify_payload(user), format="json")

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["alreadyProcessed"] is True
    assert second.json()["effectApplied"] is False
    assert ProjectCredit.objects.get(user=user).available_credits == 1


@pytest.mark.django_db
def test_invalid_signature_is_rejected_without_mutation(user):
    create_order_transaction(user)
    payload = _verify_payload(user, signature=sign_payment("order_abc", "pay_123", secret="wrong"))

    response = APIClient().post(VERIFY_URL, payload, format="json")

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "signature_invalid"
    assert body["retryable"] is False
    assert body["error"]
    assert PaymentTransaction.objects.get().status == PaymentTransaction.Status.CREATED
    assert not ProjectCredit.objects.filter(user=user).exists()


@pytest.mark.django_db
def test_malformed_signature_is_a_rejection(user):
    create_order_transaction(user)

    response = APIClient().post(VERIFY_URL, _verify_payload(user, signature="zz-not-hex"), format="json")

    assert response.status_code == 409
    assert PaymentTransaction.objects.get().status == PaymentTransaction.Status.CREATED


@pytest.mark.django_db
def test_forged_order_id_returns_not_found(user):
    create_order_transaction(user)
    payload = _verify_payload(user, order_id="order_nonexistent", payment_id="pay_x")

    response = APIClient().post(VERIFY_URL, payload, format="json")

    assert response.status_code == 404
    assert response.json()["code"] == "transaction_not_found"
    assert PaymentTransaction.objects.count() == 1


@pytest.mark.django_db
@pytest.mark.parametrize("missing", ["paymentId", "orderId", "signature", "userId"])
def test_missing_fields_return_bad_request(user, missing):
    payload = _verify_payload(user)
    payload.pop(missing)

    response = APIClient().post(VERIFY_URL, payload, format="json")

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_request"


@pytest.mark.django_db
def test_user_id_must_match_signed_in_user(user):
    create_order_transaction(user)
    other = create_user("other")

    response = auth_client(other).post(VERIFY_URL, _verify_payload(user), format="json")

    assert response.status_code == 400
    assert PaymentTransaction.objects.get().status == PaymentTransaction.Status.CREATED


@pytest.mark.django_db
def test_missing_secret_is_reported_as_misconfiguration(user, settings):
    create_order_transaction(user)
    settings.RAZORPAY_KEY_SECRET = ""

    response = APIClient().post(VERIFY_URL, _verify_payload(user), format="json")

    assert response.status_code == 503
    assert response.json()["code"] == "billing_misconfigured"


@pytest.mark.django_db
def test_effect_failure_returns_accepted_and_records_dead_letter(user):
    record = create_order_transaction(user)

    with patch(
        "billing.services.credit_grants.grant_project_credit",
        side_effect=DatabaseError("store unavailable"),
    ):
        response = APIClient().post(VERIFY_URL, _verify_payload(user), format="json")

    assert response.status_code == 202
    payload = response.json()
    assert payload["success"] is True
    assert payload["effectApplied"] is False

    record.refresh_from_db()
    assert record.status == PaymentTransaction.Status.COMPLETED
    assert record.effect_applied_at is None

    dead_letter = BillingEventDeadLetter.objects.get()
    assert dead_letter.kind == BillingEventDeadLetter.Kind.EFFECT_APPLICATION
    assert dead_letter.reference == str(record.pk)
    assert "store unavailable" in dead_letter.failure_reason


@pytest.mark.django_db
def test_unexpected_errors_do_not_leak_internals(user):
    create_order_transaction(user)

    with patch(
        "billing.views.payments.settle_verified_payment",
        side_effect=RuntimeError("connection string postgres://secret"),
    ):
        response = APIClient().post(VERIFY_URL, _verify_payload(user), format="json")

    assert response.status_code == 500
    body = response.json()
    assert body["code"] == "internal_error"
    assert "secret" not in body["error"]


@pytest.mark.django_db
def test_checkout_order_creates_pending_transaction(user):
    order = Mock(status_code=200)
    order.json.return_value = {"id": "order_new", "status": "created", "receipt": "txn"}

    with patch("billing.services.razorpay_orders.requests.request", return_value=order):
        response = auth_client(user).post(ORDERS_URL, {"paymentType": "project_credit"}, format="json")

    assert response.status_code == 201
    payload = response.json()
    assert payload["orderId"] == "order_new"
    assert payload["amount"] == 49900
    assert payload["currency"] == "INR"
    assert payload["keyId"] == "rzp_test_key"
    record = PaymentTransaction.objects.get(pk=payload["transactionId"])
    assert record.user == user
    assert record.status == PaymentTransaction.Status.CREATED


@pytest.mark.django_db
def test_checkout_order_provider_failure_is_retryable(user):
    with patch("billing.services.razorpay_orders.requests.request", side_effect=requests.ConnectionError("down")):
        response = auth_client(user).post(ORDERS_URL, {"paymentType": "subscription"}, format="json")

    assert response.status_code == 502
    assert response.json() == {
        "error": "Could not create a payment order. Please try again.",
        "code": "external_provider_error",
        "retryable": True,
    }
    assert PaymentTransaction.objects.get().status == PaymentTransaction.Status.FAILED


@pytest.mark.django_db
def test_checkout_order_validates_payment_type(user):
    response = auth_client(user).post(ORDERS_URL, {"paymentType": "gift_card"}, format="json")

    assert response.status_code == 400
    assert PaymentTransaction.objects.count() == 0


@pytest.mark.django_db
def test_checkout_order_requires_authentication():
    response = APIClient().post(ORDERS_URL, {"paymentType": "project_credit"}, format="json")

    assert response.status_code in (401, 403)


@pytest.mark.django_db
def test_entitlements_reflect_credits_and_subscription(user):
    client = auth_client(user)

    empty = client.get("/api/billing/entitlements/").json()
    assert empty == {
        "hasActiveSubscription": False,
        "availableCredits": 0,
        "totalPurchasedCredits": 0,
        "usedCredits": 0,
        "freeAccess": False,
        "subscription": None,
    }

    grant_project_credit(user.pk)
    activate_subscription(user.pk)
    payload = client.get("/api/billing/entitlements/").json()

    assert payload["hasActiveSubscription"] is True
    assert payload["availableCredits"] == 1
    assert payload["totalPurchasedCredits"] == 1
    assert payload["subscription"]["status"] == "active"
    assert payload["subscription"]["planName"] == "Monthly Subscription"


@pytest.mark.django_db
def test_entitlements_report_free_access_flag(user, settings):
    settings.BILLING_FREE_ACCESS = True

    payload = auth_client(user).get("/api/billing/entitlements/").json()

    assert payload["freeAccess"] is True
    assert payload["hasActiveSubscription"] is True


@pytest.mark.django_db
def test_cancel_subscription_endpoint(user):
    client = auth_client(user)

    assert client.post("/api/billing/subscription/cancel/").status_code == 409

    activate_subscription(user.pk)
    response = client.post("/api/billing/subscription/cancel/")

    assert response.status_code == 200
    assert response.json()["subscription"]["status"] == "cancelled"
    assert client.get("/api/billing/entitlements/").json()["hasActiveSubscription"] is False


@pytest.mark.django_db
def test_transaction_history_lists_only_own_rows(user):
    other = create_user("other")
    create_order_transaction(user, order_id="order_mine")
    create_order_transaction(other, order_id="order_theirs")
    create_order_transaction(
        user,
        order_id="order_done",
        status=PaymentTransaction.Status.COMPLETED,
        razorpay_payment_id="pay_done",
    )

    response = auth_client(user).get("/api/billing/transactions/")

    assert response.status_code == 200
    results = response.json()["results"]
    assert {row["razorpay_order_id"] for row in results} == {"order_mine", "order_done"}

    filtered = auth_client(user).get("/api/billing/transactions/", {"status": "completed"}).json()["results"]
    assert [row["razorpay_order_id"] for row in filtered] == ["order_done"]
