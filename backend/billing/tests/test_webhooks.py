import json
from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from billing.models import BillingEventDeadLetter, PaymentTransaction, ProjectCredit, UserSubscription, WebhookEventLog
from billing.services import transaction_ledger
from billing.services.signatures import compute_signature
from billing.services.verification import settle_verified_payment
from billing.tasks import process_razorpay_event_async
from billing.tests.helpers import WEBHOOK_SECRET, create_order_transaction, razorpay_event, sign_payment

WEBHOOK_URL = "/api/billing/webhooks/razorpay/"


def _post_webhook(event, *, secret=WEBHOOK_SECRET, event_id=None, signature=None):
    body = json.dumps(event).encode("utf-8")
    headers = {"HTTP_X_RAZORPAY_SIGNATURE": signature or compute_signature(body, secret)}
    if event_id:
        headers["HTTP_X_RAZORPAY_EVENT_ID"] = event_id
    return APIClient().post(WEBHOOK_URL, data=body, content_type="application/json", **headers)


@pytest.mark.django_db
def test_webhook_with_valid_signature_is_queued():
    event = razorpay_event("payment.captured")

    with patch("billing.views_webhook.process_razorpay_event_async.delay") as mock_delay:
        response = _post_webhook(event, event_id="evt_header")

    assert response.status_code == 202
    assert response.json() == {"status": "queued"}
    queued = mock_delay.call_args.args[0]
    assert queued["id"] == "evt_header"
    assert queued["event"] == "payment.captured"

    log_entry = WebhookEventLog.objects.get(event_id="evt_header")
    assert log_entry.status == WebhookEventLog.Status.RECEIVED
    assert len(log_entry.payload_hash) == 64


@pytest.mark.django_db
def test_webhook_with_bad_signature_is_rejected():
    with patch("billing.views_webhook.process_razorpay_event_async.delay") as mock_delay:
        response = _post_webhook(razorpay_event("payment.captured"), secret="not-the-secret")

    assert response.status_code == 400
    mock_delay.assert_not_called()
    assert WebhookEventLog.objects.count() == 0


@pytest.mark.django_db
def test_webhook_without_event_type_is_rejected():
    with patch("billing.views_webhook.process_razorpay_event_async.delay") as mock_delay:
        response = _post_webhook({"id": "evt_1", "payload": {}})

    assert response.status_code == 400
    mock_delay.assert_not_called()


@pytest.mark.django_db
def test_webhook_without_configured_secret_fails(settings):
    settings.RAZORPAY_WEBHOOK_SECRET = ""

    response = _post_webhook(razorpay_event("payment.captured"))

    assert response.status_code == 500


@pytest.mark.django_db
def test_handled_event_is_acknowledged_without_requeue():
    WebhookEventLog.objects.create(
        event_id="evt_1",
        event_type="payment.captured",
        status=WebhookEventLog.Status.PROCESSED,
        handled=True,
    )

    with patch("billing.views_webhook.process_razorpay_event_async.delay") as mock_delay:
        response = _post_webhook(razorpay_event("payment.captured"))

    assert response.status_code == 200
    assert response.json() == {"status": "processed"}
    mock_delay.assert_not_called()


@pytest.mark.django_db
def test_payment_captured_completes_transaction_and_grants_credit(user):
    create_order_transaction(user)

    result = process_razorpay_event_async(razorpay_event("payment.captured"))

    assert result["status"] == "processed"
    record = PaymentTransaction.objects.get()
    assert record.status == PaymentTransaction.Status.COMPLETED
    assert record.razorpay_payment_id == "pay_123"
    assert record.effect_applied_at is not None
    assert ProjectCredit.objects.get(user=user).available_credits == 1

    log_entry = WebhookEventLog.objects.get(event_id="evt_1")
    assert log_entry.status == WebhookEventLog.Status.PROCESSED
    assert log_entry.handled is True


@pytest.mark.django_db
def test_order_paid_activates_subscription(user):
    create_order_transaction(user, payment_type="subscription", amount=19900)

    result = process_razorpay_event_async(razorpay_event("order.paid"))

    assert result["status"] == "processed"
    assert UserSubscription.objects.get(user=user).status == UserSubscription.Status.ACTIVE


@pytest.mark.django_db
def test_webhook_after_client_verification_does_not_double_credit(user):
    create_order_transaction(user)
    settle_verified_payment("order_abc", "pay_123", sign_payment("order_abc", "pay_123"), user.pk)

    result = process_razorpay_event_async(razorpay_event("payment.captured"))

    assert result["status"] == "already_processed"
    assert ProjectCredit.objects.get(user=user).available_credits == 1


@pytest.mark.django_db
def test_webhook_landing_mid_verification_grants_one_credit(user):
    create_order_transaction(user)
    real_coerce = transaction_ledger._coerce_user_id
    webhook = {}

    # The webhook settles the order while the client verification is between validation and its update.
    def coerce_then_deliver_webhook(user_id):
        user_pk = real_coerce(user_id)
        if "result" not in webhook:
            webhook["result"] = None
            webhook["result"] = process_razorpay_event_async(razorpay_event("payment.captured"))
        return user_pk

    with patch("billing.services.transaction_ledger._coerce_user_id", side_effect=coerce_then_deliver_webhook):
        settlement = settle_verified_payment("order_abc", "pay_123", sign_payment("order_abc", "pay_123"), user.pk)

    assert webhook["result"]["status"] == "processed"
    assert settlement.already_processed is True
    assert settlement.effect_applied is False
    credit = ProjectCredit.objects.get(user=user)
    assert credit.available_credits == 1
    assert credit.total_purchased_credits == 1


@pytest.mark.django_db
def test_duplicate_event_delivery_is_skipped(user):
    create_order_transaction(user)
    event = razorpay_event("payment.captured")

    process_razorpay_event_async(event)
    second = process_razorpay_event_async(event)

    assert second == {"status": "skipped"}
    assert ProjectCredit.objects.get(user=user).available_credits == 1


@pytest.mark.django_db
def test_payment_failed_marks_pending_transaction(user):
    create_order_transaction(user)

    result = process_razorpay_event_async(
        razorpay_event("payment.failed", error_description="Card declined by issuer")
    )

    assert result["status"] == "processed"
    record = PaymentTransaction.objects.get()
    assert record.status == PaymentTransaction.Status.FAILED
    assert record.failure_reason == "Card declined by issuer"


@pytest.mark.django_db
def test_payment_failed_after_completion_is_ignored(user):
    create_order_transaction(user)
    process_razorpay_event_async(razorpay_event("payment.captured"))

    result = process_razorpay_event_async(razorpay_event("payment.failed", event_id="evt_2"))

    assert result["status"] == "ignored"
    assert PaymentTransaction.objects.get().status == PaymentTransaction.Status.COMPLETED
    assert WebhookEventLog.objects.get(event_id="evt_2").status == WebhookEventLog.Status.IGNORED


@pytest.mark.django_db
def test_event_for_unknown_order_is_ignored():
    result = process_razorpay_event_async(razorpay_event("payment.captured", order_id="order_unknown"))

    assert result["status"] == "ignored"
    assert PaymentTransaction.objects.count() == 0


@pytest.mark.django_db
def test_unsupported_event_type_is_ignored():
    result = process_razorpay_event_async(razorpay_event("refund.created"))

    assert result["status"] == "ignored"
    assert WebhookEventLog.objects.get(event_id="evt_1").status == WebhookEventLog.Status.IGNORED


@pytest.mark.django_db
def test_event_missing_identifiers_is_dead_lettered():
    event = razorpay_event("payment.captured", order_id=None)

    result = process_razorpay_event_async(event)

    assert result["status"] == "dead_letter"
    dead_letter = BillingEventDeadLetter.objects.get()
    assert dead_letter.kind == BillingEventDeadLetter.Kind.WEBHOOK_EVENT
    assert dead_letter.reference == "evt_1"
    assert dead_letter.payload["event"] == "payment.captured"

    log_entry = WebhookEventLog.objects.get(event_id="evt_1")
    assert log_entry.status == WebhookEventLog.Status.FAILED
    assert log_entry.handled is False
