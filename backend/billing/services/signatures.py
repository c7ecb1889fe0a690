"""HMAC-SHA256 checks for Razorpay checkout callbacks and webhook deliveries."""
from __future__ import annotations

import hashlib
import hmac
import string

_HEX_DIGITS = frozenset(string.hexdigits)
_SHA256_HEX_LENGTH = hashlib.sha256().digest_size * 2


def compute_signature(message: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Return True when ``signature`` is the hex HMAC of ``"{order_id}|{payment_id}"``.

    Never raises: malformed input is reported as a mismatch so callers treat
    it like any other rejected payment claim.
    """

    if not secret or not isinstance(order_id, str) or not isinstance(payment_id, str):
        return False
    if not _is_sha256_hex(signature):
        return False
    expected = compute_signature(f"{order_id}|{payment_id}".encode("utf-8"), secret)
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Validate the ``X-Razorpay-Signature`` header against the raw request body."""

    if not secret or not isinstance(body, (bytes, bytearray)):
        return False
    if not _is_sha256_hex(signature):
        return False
    expected = compute_signature(bytes(body), secret)
    return hmac.compare_digest(expected, signature)


def _is_sha256_hex(value) -> bool:
    if not isinstance(value, str) or len(value) != _SHA256_HEX_LENGTH:
        return False
    return all(char in _HEX_DIGITS for char in value)
