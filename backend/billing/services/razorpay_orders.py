"""Razorpay Orders API helpers used by the checkout flow."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from billing.exceptions import BillingConfigurationError

logger = logging.getLogger(__name__)


class RazorpayServiceError(RuntimeError):
    """Raised when Razorpay returns an operational error or cannot be reached."""


def razorpay_credentials() -> tuple[str, str]:
    key_id = getattr(settings, "RAZORPAY_KEY_ID", "")
    key_secret = getattr(settings, "RAZORPAY_KEY_SECRET", "")
    if not key_id or not key_secret:
        raise BillingConfigurationError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be configured.")
    return key_id, key_secret


def _razorpay_request(method: str, path: str, json_payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    key_id, key_secret = razorpay_credentials()
    base_url = getattr(settings, "RAZORPAY_API_BASE", "https://api.razorpay.com/v1").rstrip("/")
    url = f"{base_url}/{path.lstrip('/')}"
    timeout = getattr(settings, "RAZORPAY_TIMEOUT_SECONDS", 10)

    try:
        response = requests.request(
            method=method.upper(),
            url=url,
            auth=(key_id, key_secret),
            json=json_payload,
            timeout=timeout,
        )
    except requests.Timeout as exc:
        raise RazorpayServiceError(f"Razorpay did not respond within {timeout}s.") from exc
    except requests.RequestException as exc:
        raise RazorpayServiceError(f"Failed to contact Razorpay: {exc}") from exc

    if response.status_code >= 400:
        description = _error_description(response)
        logger.warning("Razorpay %s %s failed with %s: %s", method.upper(), path, response.status_code, description)
        raise RazorpayServiceError(f"Razorpay rejected the request ({response.status_code}): {description}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise RazorpayServiceError("Invalid response received from Razorpay.") from exc

    if not isinstance(payload, dict):
        raise RazorpayServiceError("Unexpected response format from Razorpay.")
    return payload


def _error_description(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason or ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("description") or error.get("code") or "")
    return ""


def create_order(*, amount: int, currency: str, receipt: str, notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Create a Razorpay order and return its payload (``id`` is the order identifier)."""

    payload = {
        "amount": int(amount),
        "currency": currency.upper(),
        "receipt": receipt[:40],
        "notes": {key: "" if value is None else str(value) for key, value in (notes or {}).items()},
    }
    order = _razorpay_request("POST", "orders", json_payload=payload)
    if not order.get("id"):
        raise RazorpayServiceError("Razorpay order response is missing an id.")
    return order
