"""Error taxonomy shared by the billing services and views."""
from __future__ import annotations


class BillingError(Exception):
    """Base exception for billing operations.

    ``code`` is the stable identifier surfaced to API clients; ``retryable``
    tells the dashboard whether to offer "try again" or "contact support".
    """

    code = "billing_error"
    retryable = False
    status_code = 500

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        if code:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class SignatureInvalid(BillingError):
    """Payment signature does not match the order and payment identifiers."""

    code = "signature_invalid"
    status_code = 409


class TransactionNotFound(BillingError):
    """No pending transaction matches the order for this user."""

    code = "transaction_not_found"
    status_code = 404


class ExternalProviderError(BillingError):
    """The payment processor could not create the order."""

    code = "external_provider_error"
    retryable = True
    status_code = 502


class EffectApplicationFailure(BillingError):
    """Payment is recorded but its credit or subscription could not be applied yet."""

    code = "effect_pending"
    status_code = 500


class BillingConfigurationError(BillingError):
    """Mandatory billing configuration is missing."""

    code = "billing_misconfigured"
    status_code = 503
