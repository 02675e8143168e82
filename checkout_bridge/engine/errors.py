"""
Error kinds raised by the checkout bridge core.

Provider operations catch these at their boundary and turn them into
no-op or rejected results. Only `generate_form` lets `RemoteCallFailed`
reach the caller, since a half-built session is never valid.
"""

from typing import Optional


class PaymentProviderError(Exception):
    """Base exception for the checkout bridge."""


class SignatureInvalid(PaymentProviderError):
    """Webhook signature did not verify against the signing secret."""


class WebhookPayloadInvalid(PaymentProviderError):
    """Webhook body could not be parsed into an event envelope."""


class RemoteCallFailed(PaymentProviderError):
    """Network or API error from the payment processor."""

    def __init__(self, message: str, status_code: int = 500, retriable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


class RateLimited(RemoteCallFailed):
    """429 Too Many Requests from the payment processor."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message, status_code=429, retriable=True)
        self.retry_after = retry_after


class ReferenceMalformed(PaymentProviderError):
    """An opaque order reference could not be decoded."""


class UnsupportedEventType(PaymentProviderError):
    """Webhook event type is not one the provider acts on."""


class MissingPrerequisiteState(PaymentProviderError):
    """The order lacks the stored remote id an operation needs."""


class AmountOverflowError(PaymentProviderError, ArithmeticError):
    """Amount does not fit the processor's 64-bit minor-unit range."""
