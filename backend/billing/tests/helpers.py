from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from billing.models import PaymentTransaction
from billing.services.signatures import compute_signature

KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "rzp_webhook_secret"


def create_user(username="contractor", **extra):
    extra.setdefault("email", f"{username}@example.com")
    return get_user_model().objects.create_user(username=username, password="pass1234", **extra)


def auth_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def create_order_transaction(user, *, order_id="order_abc", payment_type="project_credit", amount=49900, **extra):
    return PaymentTransaction.objects.create(
        user=user,
        payment_type=payment_type,
        amount=amount,
        currency="INR",
        razorpay_order_id=order_id,
        **extra,
    )


def sign_payment(order_id, payment_id, secret=KEY_SECRET):
    return compute_signature(f"{order_id}|{payment_id}".encode("utf-8"), secret)


def razorpay_event(event_type, *, order_id="order_abc", payment_id="pay_123", event_id="evt_1", **payment_fields):
    payment = {"id": payment_id, "entity": "payment", "order_id": order_id, **payment_fields}
    payload = {"payment": {"entity": payment}}
    if event_type == "order.paid":
        payload["order"] = {"entity": {"id": order_id, "entity": "order", "status": "paid"}}
    return {
        "id": event_id,
        "entity": "event",
        "event": event_type,
        "contains": list(payload.keys()),
        "payload": payload,
    }
