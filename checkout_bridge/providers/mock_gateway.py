"""
In-memory payment processor for demonstration and tests.

Simulates the processor's API behavior:
  - Configurable latency (default from settings)
  - Configurable failure rate (rate limits, transient and permanent errors)
  - Realistic object ids and expandable fields
  - State transitions for capture, cancel, refund and subscription cancel
  - Idempotency keys replay the first result instead of repeating the effect

Every call is recorded in `calls`, so tests can assert exactly which
outbound requests an operation made.
"""

import asyncio
import copy
import hashlib
import hmac
import json
import random
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from checkout_bridge.config import settings
from checkout_bridge.engine.errors import RateLimited, RemoteCallFailed
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
from checkout_bridge.providers.gateway import (
    INVOICE_EXPAND,
    PAYMENT_INTENT_EXPAND,
    REFUND_EXPAND,
    SUBSCRIPTION_EXPAND,
    StripeGateway,
)

CANCELABLE_INTENT_STATUSES = {
    "requires_payment_method",
    "requires_capture",
    "requires_confirmation",
    "requires_action",
    "processing",
}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def sign_payload(body: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for a webhook body."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{body.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def build_event(event_type: str, obj: dict[str, Any], event_id: Optional[str] = None) -> bytes:
    """Serialize a webhook event body referencing a processor object."""
    return json.dumps(
        {
            "id": event_id or _new_id("evt"),
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
    ).encode("utf-8")


@dataclass
class GatewayCall:
    operation: str
    target: str = ""
    params: dict[str, Any] = field(default_factory=dict)


class MockStripeGateway(StripeGateway):
    """In-memory gateway holding processor objects as plain dicts."""

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
    ):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self.objects: dict[str, dict[str, Any]] = {}
        self.session_requests: dict[str, dict[str, Any]] = {}
        self.calls: list[GatewayCall] = []
        self._idempotent_results: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "mock_stripe"

    # ------------------------------------------------------------------
    # Store helpers
    # ------------------------------------------------------------------

    def add(self, data: dict[str, Any]) -> dict[str, Any]:
        """Store a processor object (must carry `id` and `object`)."""
        self.objects[data["id"]] = data
        return data

    def calls_to(self, operation: str) -> list[GatewayCall]:
        return [c for c in self.calls if c.operation == operation]

    def _get(self, object_id: str, object_type: str) -> dict[str, Any]:
        data = self.objects.get(object_id)
        if data is None or data.get("object") != object_type:
            raise RemoteCallFailed(
                f"No such {object_type}: '{object_id}'", status_code=404, retriable=False
            )
        return data

    def _expand(self, data: dict[str, Any], paths: list[str]) -> dict[str, Any]:
        result = copy.deepcopy(data)
        for path in paths:
            self._expand_path(result, path.split("."))
        return result

    def _expand_path(self, node: Any, parts: list[str]) -> None:
        if not isinstance(node, dict):
            return
        head, rest = parts[0], parts[1:]
        value = node.get(head)
        if isinstance(value, str) and value in self.objects:
            value = copy.deepcopy(self.objects[value])
            node[head] = value
        if rest:
            self._expand_path(value, rest)

    async def _simulate(self, operation: str, target: str = "", **params: Any) -> None:
        self.calls.append(GatewayCall(operation, target, params))

        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        roll = random.random()

        if roll < self._failure_rate * 0.3:
            raise RateLimited(message="Mock rate limit: too many requests", retry_after=1.0)

        if roll < self._failure_rate * 0.6:
            raise RemoteCallFailed(
                message="Mock transient error: service temporarily unavailable",
                status_code=503,
                retriable=True,
            )

        if roll < self._failure_rate:
            raise RemoteCallFailed(
                message="Mock permanent error: invalid request",
                status_code=400,
                retriable=False,
            )

    def _replay(self, idempotency_key: str) -> Optional[dict[str, Any]]:
        object_id = self._idempotent_results.get(idempotency_key)
        return self.objects.get(object_id) if object_id else None

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        await self._simulate("retrieve_session", session_id)
        return CheckoutSession.from_stripe(self._get(session_id, "checkout.session"))

    async def retrieve_charge(self, charge_id: str) -> Charge:
        await self._simulate("retrieve_charge", charge_id)
        return Charge.from_stripe(self._get(charge_id, "charge"))

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        await self._simulate("retrieve_payment_intent", payment_intent_id)
        data = self._get(payment_intent_id, "payment_intent")
        return PaymentIntent.from_stripe(self._expand(data, PAYMENT_INTENT_EXPAND))

    async def retrieve_subscription(self, subscription_id: str) -> Subscription:
        await self._simulate("retrieve_subscription", subscription_id)
        data = self._get(subscription_id, "subscription")
        return Subscription.from_stripe(self._expand(data, SUBSCRIPTION_EXPAND))

    async def retrieve_invoice(self, invoice_id: str) -> Invoice:
        await self._simulate("retrieve_invoice", invoice_id)
        data = self._get(invoice_id, "invoice")
        return Invoice.from_stripe(self._expand(data, INVOICE_EXPAND))

    async def retrieve_review(self, review_id: str) -> Review:
        await self._simulate("retrieve_review", review_id)
        return Review.from_stripe(self._get(review_id, "review"))

    # ------------------------------------------------------------------
    # Payment intent lifecycle
    # ------------------------------------------------------------------

    async def capture_payment_intent(
        self, payment_intent_id: str, amount_to_capture: int, idempotency_key: str
    ) -> PaymentIntent:
        await self._simulate("capture_payment_intent", payment_intent_id, amount_to_capture=amount_to_capture)

        intent = self._replay(idempotency_key)
        if intent is None:
            intent = self._get(payment_intent_id, "payment_intent")
            if intent["status"] != "requires_capture":
                raise RemoteCallFailed(
                    f"This PaymentIntent could not be captured because it has a status of {intent['status']}.",
                    status_code=400,
                    retriable=False,
                )
            intent["status"] = "succeeded"
            intent["amount_received"] = amount_to_capture
            charge = self.objects.get(intent.get("latest_charge") or "")
            if charge is not None:
                charge["captured"] = True
                charge["amount_captured"] = amount_to_capture
            self._idempotent_results[idempotency_key] = intent["id"]

        return PaymentIntent.from_stripe(self._expand(intent, PAYMENT_INTENT_EXPAND))

    async def cancel_payment_intent(self, payment_intent_id: str, idempotency_key: str) -> PaymentIntent:
        await self._simulate("cancel_payment_intent", payment_intent_id)

        intent = self._replay(idempotency_key)
        if intent is None:
            intent = self._get(payment_intent_id, "payment_intent")
            if intent["status"] not in CANCELABLE_INTENT_STATUSES:
                raise RemoteCallFailed(
                    f"You cannot cancel this PaymentIntent because it has a status of {intent['status']}.",
                    status_code=400,
                    retriable=False,
                )
            intent["status"] = "canceled"
            charge = self.objects.get(intent.get("latest_charge") or "")
            if charge is not None and charge.get("paid") and not charge.get("captured"):
                # Releasing an uncaptured authorization refunds the charge
                charge["refunded"] = True
            self._idempotent_results[idempotency_key] = intent["id"]

        return PaymentIntent.from_stripe(self._expand(intent, PAYMENT_INTENT_EXPAND))

    # ------------------------------------------------------------------
    # Refunds and subscriptions
    # ------------------------------------------------------------------

    async def create_refund(self, charge_id: str, idempotency_key: str) -> Refund:
        await self._simulate("create_refund", charge_id)

        refund = self._replay(idempotency_key)
        if refund is None:
            charge = self._get(charge_id, "charge")
            if charge.get("refunded"):
                raise RemoteCallFailed(
                    f"Charge {charge_id} has already been refunded.", status_code=400, retriable=False
                )
            charge["refunded"] = True
            charge["amount_refunded"] = charge.get("amount", 0)
            refund = self.add({
                "id": _new_id("re"),
                "object": "refund",
                "status": "succeeded",
                "amount": charge.get("amount", 0),
                "charge": charge_id,
            })
            self._idempotent_results[idempotency_key] = refund["id"]

        return Refund.from_stripe(self._expand(refund, REFUND_EXPAND))

    async def cancel_subscription(
        self, subscription_id: str, invoice_now: bool = False, prorate: bool = False
    ) -> Subscription:
        await self._simulate(
            "cancel_subscription", subscription_id, invoice_now=invoice_now, prorate=prorate
        )
        subscription = self._get(subscription_id, "subscription")
        subscription["status"] = "canceled"
        return Subscription.from_stripe(subscription)

    # ------------------------------------------------------------------
    # Tax rates, customers, sessions
    # ------------------------------------------------------------------

    async def list_tax_rates(self) -> list[TaxRate]:
        await self._simulate("list_tax_rates")
        return [
            TaxRate.from_stripe(data)
            for data in self.objects.values()
            if data.get("object") == "tax_rate" and data.get("active", True)
        ]

    async def create_tax_rate(self, display_name: str, percentage: Decimal, inclusive: bool) -> TaxRate:
        await self._simulate(
            "create_tax_rate", display_name, percentage=percentage, inclusive=inclusive
        )
        data = self.add({
            "id": _new_id("txr"),
            "object": "tax_rate",
            "display_name": display_name,
            "percentage": float(percentage),
            "inclusive": inclusive,
            "active": True,
        })
        return TaxRate.from_stripe(data)

    async def create_customer(self, params: dict[str, Any]) -> str:
        await self._simulate("create_customer", params=params)
        data = self.add({"id": _new_id("cus"), "object": "customer", **copy.deepcopy(params)})
        return data["id"]

    async def update_customer(self, customer_id: str, params: dict[str, Any]) -> str:
        await self._simulate("update_customer", customer_id, params=params)
        customer = self._get(customer_id, "customer")
        customer.update(copy.deepcopy(params))
        return customer_id

    async def create_session(self, params: dict[str, Any], idempotency_key: str) -> CheckoutSession:
        await self._simulate("create_session", params=params)

        session = self._replay(idempotency_key)
        if session is None:
            session_id = _new_id("cs_test")
            session = self.add({
                "id": session_id,
                "object": "checkout.session",
                "mode": params.get("mode"),
                "status": "open",
                "payment_status": "unpaid",
                "url": f"https://checkout.stripe.test/c/pay/{session_id}",
                "client_reference_id": params.get("client_reference_id"),
                "customer": params.get("customer"),
                "payment_intent": None,
                "subscription": None,
                "metadata": dict(params.get("metadata") or {}),
            })
            self.session_requests[session_id] = copy.deepcopy(params)
            self._idempotent_results[idempotency_key] = session_id

        return CheckoutSession.from_stripe(session)

    # ------------------------------------------------------------------
    # Simulation of the customer paying on the hosted page
    # ------------------------------------------------------------------

    def _session_total(self, session_id: str) -> int:
        params = self.session_requests.get(session_id) or {}
        total = 0
        for item in params.get("line_items") or []:
            price_data = item.get("price_data") or {}
            total += int(price_data.get("unit_amount") or 0) * int(item.get("quantity") or 1)
        return total

    def complete_session(
        self,
        session_id: str,
        card_country: str = "GB",
        review_open: bool = False,
    ) -> dict[str, Any]:
        """
        Simulate a successful checkout for a session.

        Payment mode creates an intent and a charge, honoring the session's
        capture method. Subscription mode creates a subscription with a
        paid first invoice. Returns the updated session object.
        """
        session = self._get(session_id, "checkout.session")
        params = self.session_requests.get(session_id) or {}
        amount = self._session_total(session_id)
        currency = ((params.get("line_items") or [{}])[0].get("price_data") or {}).get("currency", "usd")

        manual = (params.get("payment_intent_data") or {}).get("capture_method") == "manual"
        intent_id = _new_id("pi")

        charge = self.add({
            "id": _new_id("ch"),
            "object": "charge",
            "paid": True,
            "captured": not manual,
            "refunded": False,
            "amount": amount,
            "currency": currency,
            "payment_intent": intent_id,
            "payment_method_details": {"type": "card", "card": {"country": card_country}},
        })

        review_id = None
        if review_open:
            review_id = self.add({
                "id": _new_id("prv"),
                "object": "review",
                "open": True,
                "reason": "rule",
                "payment_intent": intent_id,
                "charge": charge["id"],
            })["id"]

        metadata_source = params.get("payment_intent_data") or params.get("subscription_data") or {}
        self.add({
            "id": intent_id,
            "object": "payment_intent",
            "status": "requires_capture" if manual else "succeeded",
            "amount": amount,
            "currency": currency,
            "capture_method": "manual" if manual else "automatic",
            "latest_charge": charge["id"],
            "review": review_id,
            "metadata": dict(metadata_source.get("metadata") or {}),
        })

        if session.get("mode") == "subscription":
            invoice = self.add({
                "id": _new_id("in"),
                "object": "invoice",
                "status": "paid",
                "amount_paid": amount,
                "charge": charge["id"],
                "payment_intent": intent_id,
            })
            subscription = self.add({
                "id": _new_id("sub"),
                "object": "subscription",
                "status": "active",
                "customer": session.get("customer"),
                "latest_invoice": invoice["id"],
                "metadata": dict(metadata_source.get("metadata") or {}),
            })
            session["subscription"] = subscription["id"]
        else:
            session["payment_intent"] = intent_id

        session["status"] = "complete"
        session["payment_status"] = "paid"
        return session
