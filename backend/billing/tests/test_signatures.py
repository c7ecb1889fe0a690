import pytest

from billing.services.signatures import (
    compute_signature,
    verify_payment_signature,
    verify_webhook_signature,
)

SECRET = "s3cr3t"
ORDER_ID = "order_abc"
PAYMENT_ID = "pay_123"


def _valid_signature():
    return compute_signature(f"{ORDER_ID}|{PAYMENT_ID}".encode("utf-8"), SECRET)


def test_valid_signature_is_accepted():
    assert verify_payment_signature(ORDER_ID, PAYMENT_ID, _valid_signature(), SECRET) is True


def test_signature_matches_known_hmac_vector():
    # HMAC-SHA256("key", "The quick brown fox jumps over the lazy dog")
    expected = "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"
    assert compute_signature(b"The quick brown fox jumps over the lazy dog", "key") == expected


def test_every_single_bit_flip_is_rejected():
    signature = _valid_signature()
    for index, char in enumerate(signature):
        for bit in range(8):
            mutated = signature[:index] + chr(ord(char) ^ (1 << bit)) + signature[index + 1:]
            assert verify_payment_signature(ORDER_ID, PAYMENT_ID, mutated, SECRET) is False


@pytest.mark.parametrize(
    "order_id,payment_id",
    [
        ("order_other", PAYMENT_ID),
        (ORDER_ID, "pay_other"),
        ("order_other", "pay_other"),
        (PAYMENT_ID, ORDER_ID),
    ],
)
def test_replayed_signature_is_rejected_for_other_ids(order_id, payment_id):
    assert verify_payment_signature(order_id, payment_id, _valid_signature(), SECRET) is False


@pytest.mark.parametrize(
    "signature",
    [
        "",
        "not-hex",
        "z" * 64,
        "ab" * 31,
        "ab" * 33,
        None,
        12345,
        b"ab" * 32,
    ],
)
def test_malformed_signatures_return_false(signature):
    assert verify_payment_signature(ORDER_ID, PAYMENT_ID, signature, SECRET) is False


def test_wrong_secret_or_missing_secret_is_rejected():
    signature = _valid_signature()
    assert verify_payment_signature(ORDER_ID, PAYMENT_ID, signature, "other") is False
    assert verify_payment_signature(ORDER_ID, PAYMENT_ID, signature, "") is False


def test_webhook_signature_covers_raw_body():
    body = b'{"event":"payment.captured"}'
    signature = compute_signature(body, SECRET)

    assert verify_webhook_signature(body, signature, SECRET) is True
    assert verify_webhook_signature(body + b" ", signature, SECRET) is False
    assert verify_webhook_signature(body, signature, "other") is False
    assert verify_webhook_signature("not-bytes", signature, SECRET) is False
