"""
Hosted checkout payment provider.

Implements the provider lifecycle on top of a `StripeGateway`:

  generate_form        → upsert customer, build + create checkout session
  process_callback     → verify webhook, re-fetch, classify
  fetch_payment_status → re-read the stored intent (or charge), classify
  capture_payment      → capture an authorized intent
  refund_payment       → refund the stored charge, end any subscription
  cancel_payment       → cancel the intent, or refund once captured

Post-authorization operations check current remote state before acting,
so a retried capture, refund or cancel never repeats a remote effect.
Remote failures are logged under the operation name and turned into an
empty result; the order keeps its stored status for later reconciliation.
"""

import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from checkout_bridge.engine.amounts import from_minor_units, to_minor_units
from checkout_bridge.engine.errors import (
    MissingPrerequisiteState,
    UnsupportedEventType,
    WebhookPayloadInvalid,
)
from checkout_bridge.engine.resolver import resolve_order_reference, resolve_webhook_event
from checkout_bridge.engine.session_builder import build_checkout_session, customer_params
from checkout_bridge.engine.status import (
    card_country_for,
    status_for,
    transaction_id_for,
)
from checkout_bridge.engine.tax_rates import TaxRateResolver
from checkout_bridge.models.enums import MetadataKey, PaymentStatus, SessionMode, WebhookEventType
from checkout_bridge.models.remote import CheckoutSession, Review
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.providers.base import (
    ApiResult,
    CallbackResult,
    PaymentForm,
    PaymentFormResult,
    PaymentProvider,
    PaymentProviderContext,
    TransactionInfo,
    TransactionMetadataDefinition,
)
from checkout_bridge.providers.gateway import StripeGateway

logger = logging.getLogger("checkout_bridge.provider")

GatewayFactory = Callable[[StripeCheckoutSettings], StripeGateway]

STRIPE_JS_URL = "https://js.stripe.com/v3/"

TRANSACTION_METADATA_DEFINITIONS = [
    TransactionMetadataDefinition(MetadataKey.SESSION_ID.value, "Stripe Session ID"),
    TransactionMetadataDefinition(MetadataKey.CUSTOMER_ID.value, "Stripe Customer ID"),
    TransactionMetadataDefinition(MetadataKey.PAYMENT_INTENT_ID.value, "Stripe Payment Intent ID"),
    TransactionMetadataDefinition(MetadataKey.SUBSCRIPTION_ID.value, "Stripe Subscription ID"),
    TransactionMetadataDefinition(MetadataKey.CHARGE_ID.value, "Stripe Charge ID"),
    TransactionMetadataDefinition(
        MetadataKey.CARD_COUNTRY.value,
        "Stripe Card Country",
        "Two letter country code of the card used, for fraud checks",
    ),
]


def _stored(ctx: PaymentProviderContext, key: MetadataKey) -> str:
    return (ctx.order.properties.get(key.value) or "").strip()


def _redirect_script(public_key: str, session_id: str, fallback_url: str) -> str:
    """Stripe.js handler for the form's onsubmit; falls back to the session URL."""
    return (
        f"var stripe = Stripe({json.dumps(public_key)});\n"
        "window.handleStripeCheckout = function (e) {\n"
        "    e.preventDefault();\n"
        f"    stripe.redirectToCheckout({{ sessionId: {json.dumps(session_id)} }}).then(function (result) {{\n"
        f"        if (result.error) {{ window.location.href = {json.dumps(fallback_url)}; }}\n"
        "    });\n"
        "    return false;\n"
        "};"
    )


class StripeCheckoutProvider(PaymentProvider):
    """Hosted checkout sessions with webhook reconciliation."""

    can_fetch_payment_status = True
    can_capture_payments = True
    can_cancel_payments = True
    can_refund_payments = True
    finalize_at_continue_url = False

    def __init__(self, gateway_factory: GatewayFactory):
        self._gateway_factory = gateway_factory

    @property
    def name(self) -> str:
        return "stripe_checkout"

    @property
    def transaction_metadata_definitions(self) -> list[TransactionMetadataDefinition]:
        return list(TRANSACTION_METADATA_DEFINITIONS)

    def _gateway(self, ctx: PaymentProviderContext) -> StripeGateway:
        return self._gateway_factory(ctx.settings)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def generate_form(self, ctx: PaymentProviderContext) -> PaymentFormResult:
        gateway = self._gateway(ctx)
        order = ctx.order

        try:
            params = customer_params(order, ctx.settings)
            existing_customer_id = _stored(ctx, MetadataKey.CUSTOMER_ID)
            if existing_customer_id:
                # Reuse the customer, refreshing any changed billing details
                customer_id = await gateway.update_customer(existing_customer_id, params)
            else:
                customer_id = await gateway.create_customer(params)

            request = await build_checkout_session(
                order,
                ctx.settings,
                customer_id,
                TaxRateResolver(gateway, ctx.cache),
                success_url=ctx.urls.continue_url,
                cancel_url=ctx.urls.cancel_url,
            )
            session = await gateway.create_session(
                request.to_params(),
                idempotency_key=f"session-{request.client_reference_id}-{uuid.uuid4().hex[:12]}",
            )
        except Exception:
            logger.error("Stripe - GenerateForm failed for order %s", order.id, exc_info=True)
            raise

        logger.info(
            "Created %s checkout session %s for order %s (customer %s)",
            request.mode.value,
            session.id,
            order.id,
            customer_id,
        )

        form = PaymentForm(action=session.url or ctx.urls.continue_url, method="GET")
        if ctx.settings.public_key:
            form.attributes["onsubmit"] = "return handleStripeCheckout(event)"
            form.js_files.append(STRIPE_JS_URL)
            form.js.append(_redirect_script(ctx.settings.public_key, session.id, form.action))

        return PaymentFormResult(
            form=form,
            redirect_url=session.url,
            metadata={
                MetadataKey.SESSION_ID.value: session.id,
                MetadataKey.CUSTOMER_ID.value: session.customer_id or customer_id,
            },
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    async def process_callback(self, ctx: PaymentProviderContext) -> CallbackResult:
        try:
            if ctx.webhook is None:
                raise WebhookPayloadInvalid("No webhook payload on the request")

            gateway = self._gateway(ctx)
            event = await resolve_webhook_event(
                gateway, ctx.cache, ctx.webhook, ctx.settings.webhook_signing_secret
            )

            if event.type == WebhookEventType.CHECKOUT_SESSION_COMPLETED.value:
                if isinstance(event.instance, CheckoutSession):
                    return await self._session_completed(gateway, event.instance)
                raise WebhookPayloadInvalid(f"Event {event.id} does not reference a checkout session")

            if event.type == WebhookEventType.REVIEW_CLOSED.value:
                if isinstance(event.instance, Review) and event.instance.payment_intent_id:
                    return await self._review_closed(gateway, event.instance)
                raise WebhookPayloadInvalid(f"Event {event.id} does not reference a payment review")

            raise UnsupportedEventType(event.type)

        except UnsupportedEventType as e:
            logger.info("Stripe - ProcessCallback ignoring event type %s", e)
            return CallbackResult.ok()

        except Exception:
            logger.error("Stripe - ProcessCallback", exc_info=True)
            return CallbackResult.bad_request()

    async def _session_completed(
        self, gateway: StripeGateway, session: CheckoutSession
    ) -> CallbackResult:
        if session.mode == SessionMode.PAYMENT.value:
            if not session.payment_intent_id:
                raise MissingPrerequisiteState(f"Session {session.id} has no payment intent")

            intent = await gateway.retrieve_payment_intent(session.payment_intent_id)
            return CallbackResult.ok(
                TransactionInfo(
                    payment_status=status_for(intent),
                    transaction_id=transaction_id_for(intent),
                    amount_authorized=from_minor_units(intent.amount),
                ),
                {
                    MetadataKey.SESSION_ID.value: session.id,
                    MetadataKey.CUSTOMER_ID.value: session.customer_id,
                    MetadataKey.PAYMENT_INTENT_ID.value: intent.id,
                    MetadataKey.SUBSCRIPTION_ID.value: session.subscription_id,
                    MetadataKey.CHARGE_ID.value: transaction_id_for(intent),
                    MetadataKey.CARD_COUNTRY.value: card_country_for(intent),
                },
            )

        if session.mode == SessionMode.SUBSCRIPTION.value:
            if not session.subscription_id:
                raise MissingPrerequisiteState(f"Session {session.id} has no subscription")

            subscription = await gateway.retrieve_subscription(session.subscription_id)
            invoice = subscription.latest_invoice
            if invoice is None:
                raise MissingPrerequisiteState(f"Subscription {subscription.id} has no invoice yet")

            amount = invoice.payment_intent.amount if invoice.payment_intent else invoice.amount_paid
            return CallbackResult.ok(
                TransactionInfo(
                    payment_status=status_for(subscription),
                    transaction_id=transaction_id_for(invoice),
                    amount_authorized=from_minor_units(amount),
                ),
                {
                    MetadataKey.SESSION_ID.value: session.id,
                    MetadataKey.CUSTOMER_ID.value: session.customer_id,
                    MetadataKey.PAYMENT_INTENT_ID.value: invoice.payment_intent_id,
                    MetadataKey.SUBSCRIPTION_ID.value: subscription.id,
                    MetadataKey.CHARGE_ID.value: transaction_id_for(invoice),
                    MetadataKey.CARD_COUNTRY.value: card_country_for(invoice),
                },
            )

        raise UnsupportedEventType(f"checkout.session.completed in {session.mode} mode")

    async def _review_closed(self, gateway: StripeGateway, review: Review) -> CallbackResult:
        if status_for(review) == PaymentStatus.PENDING_EXTERNAL_SYSTEM:
            # The re-fetched review can still be open
            logger.info("Review %s is open, leaving payment pending", review.id)
            return CallbackResult.ok(TransactionInfo(PaymentStatus.PENDING_EXTERNAL_SYSTEM))

        intent = await gateway.retrieve_payment_intent(review.payment_intent_id)
        return CallbackResult.ok(
            TransactionInfo(
                payment_status=status_for(intent),
                transaction_id=transaction_id_for(intent),
                amount_authorized=from_minor_units(intent.amount),
            ),
            {
                MetadataKey.CHARGE_ID.value: transaction_id_for(intent),
                MetadataKey.CARD_COUNTRY.value: card_country_for(intent),
            },
        )

    async def get_order_reference(self, ctx: PaymentProviderContext) -> Optional[str]:
        if ctx.webhook is None:
            return None
        try:
            return await resolve_order_reference(
                self._gateway(ctx), ctx.cache, ctx.webhook, ctx.settings.webhook_signing_secret
            )
        except Exception:
            logger.error("Stripe - GetOrderReference", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Post-authorization operations
    # ------------------------------------------------------------------

    async def _guarded(
        self,
        operation: str,
        func: Callable[..., Awaitable[ApiResult]],
        *args: Any,
    ) -> Optional[ApiResult]:
        try:
            return await func(*args)
        except MissingPrerequisiteState as e:
            logger.info("Stripe - %s: nothing to do (%s)", operation, e)
            return None
        except Exception:
            logger.error("Stripe - %s", operation, exc_info=True)
            return ApiResult.empty()

    async def fetch_payment_status(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        if not (_stored(ctx, MetadataKey.PAYMENT_INTENT_ID) or _stored(ctx, MetadataKey.CHARGE_ID)):
            return None
        return await self._guarded("FetchPaymentStatus", self._fetch_status, ctx)

    async def _fetch_status(self, ctx: PaymentProviderContext) -> ApiResult:
        gateway = self._gateway(ctx)

        payment_intent_id = _stored(ctx, MetadataKey.PAYMENT_INTENT_ID)
        if payment_intent_id:
            intent = await gateway.retrieve_payment_intent(payment_intent_id)
            return ApiResult.of(
                TransactionInfo(status_for(intent), transaction_id_for(intent))
            )

        charge = await gateway.retrieve_charge(_stored(ctx, MetadataKey.CHARGE_ID))
        return ApiResult.of(TransactionInfo(status_for(charge), charge.id))

    async def capture_payment(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        # Subscriptions are never authorized-only, so only intents are captured
        payment_intent_id = _stored(ctx, MetadataKey.PAYMENT_INTENT_ID)
        if not payment_intent_id:
            return None
        return await self._guarded("CapturePayment", self._capture, ctx, payment_intent_id)

    async def _capture(self, ctx: PaymentProviderContext, payment_intent_id: str) -> ApiResult:
        gateway = self._gateway(ctx)

        intent = await gateway.retrieve_payment_intent(payment_intent_id)
        if intent.status == "requires_capture":
            amount = ctx.order.amount_authorized
            amount_to_capture = to_minor_units(amount) if amount is not None else intent.amount
            intent = await gateway.capture_payment_intent(
                payment_intent_id,
                amount_to_capture,
                idempotency_key=f"capture-{payment_intent_id}",
            )
            logger.info("Captured %s on payment intent %s", amount_to_capture, payment_intent_id)
        else:
            logger.info(
                "Payment intent %s is %s, skipping capture", payment_intent_id, intent.status
            )

        return ApiResult.of(
            TransactionInfo(status_for(intent), transaction_id_for(intent)),
            {
                MetadataKey.CHARGE_ID.value: transaction_id_for(intent),
                MetadataKey.CARD_COUNTRY.value: card_country_for(intent),
            },
        )

    async def refund_payment(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        charge_id = _stored(ctx, MetadataKey.CHARGE_ID)
        if not charge_id:
            return None
        return await self._guarded("RefundPayment", self._refund, ctx, charge_id)

    async def _refund(self, ctx: PaymentProviderContext, charge_id: str) -> ApiResult:
        gateway = self._gateway(ctx)

        charge = await gateway.retrieve_charge(charge_id)
        if charge.refunded:
            logger.info("Charge %s already refunded, skipping refund", charge_id)
        else:
            refund = await gateway.create_refund(charge_id, idempotency_key=f"refund-{charge_id}")
            charge = refund.charge or await gateway.retrieve_charge(charge_id)
            logger.info("Refunded charge %s (refund %s)", charge_id, refund.id)

        # A refund voids the purchase, including any recurring commitment
        subscription_id = _stored(ctx, MetadataKey.SUBSCRIPTION_ID)
        if subscription_id:
            subscription = await gateway.retrieve_subscription(subscription_id)
            if subscription.status == "canceled":
                logger.info("Subscription %s already canceled", subscription_id)
            else:
                await gateway.cancel_subscription(subscription_id, invoice_now=False, prorate=False)
                logger.info("Canceled subscription %s after refund", subscription_id)

        return ApiResult.of(TransactionInfo(status_for(charge), charge.id))

    async def cancel_payment(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        if not (_stored(ctx, MetadataKey.PAYMENT_INTENT_ID) or _stored(ctx, MetadataKey.CHARGE_ID)):
            return None
        return await self._guarded("CancelPayment", self._cancel, ctx)

    async def _cancel(self, ctx: PaymentProviderContext) -> ApiResult:
        gateway = self._gateway(ctx)

        payment_intent_id = _stored(ctx, MetadataKey.PAYMENT_INTENT_ID)
        if not payment_intent_id:
            # Captured already, so cancelling means refunding
            return await self._refund(ctx, _stored(ctx, MetadataKey.CHARGE_ID))

        intent = await gateway.retrieve_payment_intent(payment_intent_id)
        if intent.status == "succeeded":
            charge_id = _stored(ctx, MetadataKey.CHARGE_ID) or transaction_id_for(intent)
            if not charge_id:
                raise MissingPrerequisiteState(f"Payment intent {payment_intent_id} has no charge to refund")
            return await self._refund(ctx, charge_id)

        if intent.status == "canceled":
            logger.info("Payment intent %s already canceled", payment_intent_id)
        else:
            intent = await gateway.cancel_payment_intent(
                payment_intent_id, idempotency_key=f"cancel-{payment_intent_id}"
            )
            logger.info("Canceled payment intent %s", payment_intent_id)

        return ApiResult.of(TransactionInfo(status_for(intent), transaction_id_for(intent)))
