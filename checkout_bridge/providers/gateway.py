"""
Payment processor gateway.

The gateway is the only place that talks to the processor's API. It
returns the typed views from `checkout_bridge.models.remote`, so nothing
above it handles raw SDK objects.

`StripeApiGateway` wraps the `stripe` SDK's async resource methods. Every
call carries the API key for the configured mode and a pinned API
version, so objects always come back in the shape this code was written
against. SDK errors become `RemoteCallFailed`, and transient ones are
retried by `with_retry`. Each mutating call picks its idempotency key
before the first attempt, so every retry re-sends the same key.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

import stripe

from checkout_bridge.engine.errors import RateLimited, RemoteCallFailed, SignatureInvalid
from checkout_bridge.engine.retry import MAX_RETRIES, RETRIABLE_STATUS_CODES, with_retry
from checkout_bridge.models.remote import (
    Charge,
    CheckoutSession,
    Invoice,
    PaymentIntent,
    Refund,
    Review,
    Subscription,
    TaxRate,
)

logger = logging.getLogger("checkout_bridge.gateway")

DEFAULT_API_VERSION = "2024-06-20"
SIGNATURE_TOLERANCE_SECONDS = 300

PAYMENT_INTENT_EXPAND = ["latest_charge", "review"]
INVOICE_EXPAND = [
    "charge",
    "payment_intent",
    "payment_intent.review",
    "payment_intent.latest_charge",
]
SUBSCRIPTION_EXPAND = ["latest_invoice"] + [f"latest_invoice.{path}" for path in INVOICE_EXPAND]
REFUND_EXPAND = ["charge"]


class StripeGateway(ABC):
    """Operations the provider needs from the payment processor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    def verify_signature(self, payload: bytes, signature: Optional[str], secret: str) -> None:
        """
        Verify a webhook signature header over the raw body.

        Pure computation, no network. Raises SignatureInvalid on any failure.
        """
        if not secret:
            raise SignatureInvalid("Webhook signing secret not configured")
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                secret,
                SIGNATURE_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalid(f"Webhook signature verification failed: {e}") from e
        except UnicodeDecodeError as e:
            raise SignatureInvalid("Webhook body is not valid UTF-8") from e

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        ...

    @abstractmethod
    async def retrieve_charge(self, charge_id: str) -> Charge:
        ...

    @abstractmethod
    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        """Retrieve an intent with its latest charge and review expanded."""
        ...

    @abstractmethod
    async def retrieve_subscription(self, subscription_id: str) -> Subscription:
        """Retrieve a subscription with its latest invoice graph expanded."""
        ...

    @abstractmethod
    async def retrieve_invoice(self, invoice_id: str) -> Invoice:
        ...

    @abstractmethod
    async def retrieve_review(self, review_id: str) -> Review:
        ...

    @abstractmethod
    async def capture_payment_intent(
        self, payment_intent_id: str, amount_to_capture: int, idempotency_key: str
    ) -> PaymentIntent:
        ...

    @abstractmethod
    async def cancel_payment_intent(self, payment_intent_id: str, idempotency_key: str) -> PaymentIntent:
        ...

    @abstractmethod
    async def create_refund(self, charge_id: str, idempotency_key: str) -> Refund:
        ...

    @abstractmethod
    async def cancel_subscription(
        self, subscription_id: str, invoice_now: bool = False, prorate: bool = False
    ) -> Subscription:
        ...

    @abstractmethod
    async def list_tax_rates(self) -> list[TaxRate]:
        """List active tax rates."""
        ...

    @abstractmethod
    async def create_tax_rate(self, display_name: str, percentage: Decimal, inclusive: bool) -> TaxRate:
        ...

    @abstractmethod
    async def create_customer(self, params: dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def update_customer(self, customer_id: str, params: dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def create_session(self, params: dict[str, Any], idempotency_key: str) -> CheckoutSession:
        ...


def _translate_error(e: stripe.StripeError) -> RemoteCallFailed:
    if isinstance(e, stripe.RateLimitError):
        return RateLimited(f"Stripe rate limit: {e}")
    if isinstance(e, stripe.APIConnectionError):
        return RemoteCallFailed(f"Stripe connection error: {e}", status_code=503, retriable=True)

    status = e.http_status or 500
    return RemoteCallFailed(
        f"Stripe error ({type(e).__name__}): {e}",
        status_code=status,
        retriable=status in RETRIABLE_STATUS_CODES,
    )


def _idempotency_key(prefix: str, *parts: Any) -> str:
    """A key for one logical call; retries of that call reuse it."""
    return "-".join([prefix, *(str(p) for p in parts if p is not None), uuid.uuid4().hex[:12]])


class StripeApiGateway(StripeGateway):
    """Live gateway over the stripe SDK."""

    def __init__(
        self,
        api_key: str,
        api_version: str = DEFAULT_API_VERSION,
        max_retries: int = MAX_RETRIES,
    ):
        self._api_key = api_key
        self._api_version = api_version
        self._max_retries = max_retries

    @property
    def name(self) -> str:
        return "stripe"

    async def _request(self, func: Any, *args: Any, **params: Any) -> Any:
        async def attempt() -> Any:
            try:
                return await func(
                    *args,
                    api_key=self._api_key,
                    stripe_version=self._api_version,
                    **params,
                )
            except stripe.StripeError as e:
                raise _translate_error(e) from e

        return await with_retry(attempt, max_retries=self._max_retries)

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        data = await self._request(stripe.checkout.Session.retrieve_async, session_id)
        return CheckoutSession.from_stripe(data)

    async def retrieve_charge(self, charge_id: str) -> Charge:
        data = await self._request(stripe.Charge.retrieve_async, charge_id)
        return Charge.from_stripe(data)

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        data = await self._request(
            stripe.PaymentIntent.retrieve_async, payment_intent_id, expand=PAYMENT_INTENT_EXPAND
        )
        return PaymentIntent.from_stripe(data)

    async def retrieve_subscription(self, subscription_id: str) -> Subscription:
        data = await self._request(
            stripe.Subscription.retrieve_async, subscription_id, expand=SUBSCRIPTION_EXPAND
        )
        return Subscription.from_stripe(data)

    async def retrieve_invoice(self, invoice_id: str) -> Invoice:
        data = await self._request(stripe.Invoice.retrieve_async, invoice_id, expand=INVOICE_EXPAND)
        return Invoice.from_stripe(data)

    async def retrieve_review(self, review_id: str) -> Review:
        data = await self._request(stripe.Review.retrieve_async, review_id)
        return Review.from_stripe(data)

    async def capture_payment_intent(
        self, payment_intent_id: str, amount_to_capture: int, idempotency_key: str
    ) -> PaymentIntent:
        data = await self._request(
            stripe.PaymentIntent.capture_async,
            payment_intent_id,
            amount_to_capture=amount_to_capture,
            expand=PAYMENT_INTENT_EXPAND,
            idempotency_key=idempotency_key,
        )
        return PaymentIntent.from_stripe(data)

    async def cancel_payment_intent(self, payment_intent_id: str, idempotency_key: str) -> PaymentIntent:
        data = await self._request(
            stripe.PaymentIntent.cancel_async,
            payment_intent_id,
            expand=PAYMENT_INTENT_EXPAND,
            idempotency_key=idempotency_key,
        )
        return PaymentIntent.from_stripe(data)

    async def create_refund(self, charge_id: str, idempotency_key: str) -> Refund:
        data = await self._request(
            stripe.Refund.create_async,
            charge=charge_id,
            expand=REFUND_EXPAND,
            idempotency_key=idempotency_key,
        )
        return Refund.from_stripe(data)

    async def cancel_subscription(
        self, subscription_id: str, invoice_now: bool = False, prorate: bool = False
    ) -> Subscription:
        data = await self._request(
            stripe.Subscription.cancel_async,
            subscription_id,
            invoice_now=invoice_now,
            prorate=prorate,
            idempotency_key=f"cancel-{subscription_id}",
        )
        return Subscription.from_stripe(data)

    async def list_tax_rates(self) -> list[TaxRate]:
        # TODO: follow has_more once accounts carry more than 100 active rates
        page = await self._request(stripe.TaxRate.list_async, active=True, limit=100)
        return [TaxRate.from_stripe(item) for item in page.data]

    async def create_tax_rate(self, display_name: str, percentage: Decimal, inclusive: bool) -> TaxRate:
        data = await self._request(
            stripe.TaxRate.create_async,
            display_name=display_name,
            percentage=float(percentage),
            inclusive=inclusive,
            idempotency_key=_idempotency_key("taxrate", display_name, percentage, inclusive),
        )
        return TaxRate.from_stripe(data)

    async def create_customer(self, params: dict[str, Any]) -> str:
        data = await self._request(
            stripe.Customer.create_async,
            idempotency_key=_idempotency_key("customer"),
            **params,
        )
        return data["id"]

    async def update_customer(self, customer_id: str, params: dict[str, Any]) -> str:
        data = await self._request(
            stripe.Customer.modify_async,
            customer_id,
            idempotency_key=_idempotency_key("customer", customer_id),
            **params,
        )
        return data["id"]

    async def create_session(self, params: dict[str, Any], idempotency_key: str) -> CheckoutSession:
        data = await self._request(
            stripe.checkout.Session.create_async, idempotency_key=idempotency_key, **params
        )
        return CheckoutSession.from_stripe(data)
