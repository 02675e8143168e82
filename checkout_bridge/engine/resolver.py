"""
Webhook event resolution.

A webhook body is never trusted as a source of object state. The flow:

  1. Verify the signature over the raw body (reject before any fetch)
  2. Parse a minimal envelope: event id, event type, object id and type
  3. Re-fetch the referenced object from the processor, so it is read
     with the API version and expansions this code expects
  4. Cache the hydrated event for the rest of the request

Re-fetching makes replays safe. A delivery processed twice resolves to
the same remote object and therefore the same status.
"""

import logging
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from checkout_bridge.engine.context import RequestCache, WebhookEvent, WebhookPayload
from checkout_bridge.engine.errors import ReferenceMalformed, WebhookPayloadInvalid
from checkout_bridge.engine.order_reference import decode_order_reference
from checkout_bridge.models.enums import OrderMetadataKey, RemoteObjectKind, WebhookEventType
from checkout_bridge.models.remote import CheckoutSession, RemoteObject, Review
from checkout_bridge.providers.gateway import StripeGateway

logger = logging.getLogger("checkout_bridge.resolver")


class EnvelopeObject(BaseModel):
    id: Optional[str] = None
    object: Optional[str] = None


class EnvelopeData(BaseModel):
    object: Optional[EnvelopeObject] = None


class WebhookEnvelope(BaseModel):
    """Only the event fields needed to know what to re-fetch."""

    id: str
    type: str
    data: Optional[EnvelopeData] = None


def _fetcher(
    gateway: StripeGateway, kind: RemoteObjectKind
) -> Callable[[str], Awaitable[RemoteObject]]:
    fetchers = {
        RemoteObjectKind.CHECKOUT_SESSION: gateway.retrieve_session,
        RemoteObjectKind.CHARGE: gateway.retrieve_charge,
        RemoteObjectKind.PAYMENT_INTENT: gateway.retrieve_payment_intent,
        RemoteObjectKind.SUBSCRIPTION: gateway.retrieve_subscription,
        RemoteObjectKind.INVOICE: gateway.retrieve_invoice,
        RemoteObjectKind.REVIEW: gateway.retrieve_review,
    }
    return fetchers[kind]


async def resolve_webhook_event(
    gateway: StripeGateway,
    cache: RequestCache,
    payload: WebhookPayload,
    signing_secret: str,
) -> WebhookEvent:
    """
    Verify, parse and hydrate a webhook delivery, once per request.

    Raises:
        SignatureInvalid: Signature missing or wrong. Nothing is fetched.
        WebhookPayloadInvalid: Body is not a processor event.
        RemoteCallFailed: The referenced object could not be fetched.
    """
    async with cache.event_lock:
        if cache.webhook_event is not None:
            return cache.webhook_event

        gateway.verify_signature(payload.body, payload.signature, signing_secret)

        try:
            envelope = WebhookEnvelope.model_validate_json(payload.body)
        except ValidationError as e:
            raise WebhookPayloadInvalid(f"Invalid webhook payload: {e}") from e

        ref = envelope.data.object if envelope.data and envelope.data.object else EnvelopeObject()
        event = WebhookEvent(
            id=envelope.id,
            type=envelope.type,
            object_id=ref.id,
            object_type=ref.object,
        )

        kind = None
        if ref.object:
            try:
                kind = RemoteObjectKind(ref.object)
            except ValueError:
                kind = None

        if kind is not None and ref.id:
            event.instance = await _fetcher(gateway, kind)(ref.id)
        else:
            logger.debug(
                "Event %s (%s) references unsupported object type %s; left unhydrated",
                envelope.id,
                envelope.type,
                ref.object,
            )

        logger.info(
            "Resolved webhook event %s type=%s object=%s/%s",
            event.id,
            event.type,
            event.object_type,
            event.object_id,
        )
        cache.webhook_event = event
        return event


async def resolve_order_reference(
    gateway: StripeGateway,
    cache: RequestCache,
    payload: WebhookPayload,
    signing_secret: str,
) -> Optional[str]:
    """
    Recover the originating host order id from a webhook delivery.

    Returns None when the event carries no usable reference; the host
    then falls back to its own order resolution.
    """
    event = await resolve_webhook_event(gateway, cache, payload, signing_secret)

    reference: Optional[str] = None
    if event.type == WebhookEventType.CHECKOUT_SESSION_COMPLETED.value:
        if isinstance(event.instance, CheckoutSession):
            reference = event.instance.client_reference_id
    elif event.type == WebhookEventType.REVIEW_CLOSED.value:
        if isinstance(event.instance, Review) and event.instance.payment_intent_id:
            intent = await gateway.retrieve_payment_intent(event.instance.payment_intent_id)
            reference = intent.metadata.get(OrderMetadataKey.ORDER_REFERENCE.value)

    if not reference:
        return None

    try:
        return decode_order_reference(reference)
    except ReferenceMalformed:
        logger.warning("Event %s carries a malformed order reference %r", event.id, reference)
        return None
