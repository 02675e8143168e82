"""
Translate processor object state into canonical payment statuses.

One pure function per object kind. More specific objects recurse into
more primitive ones (invoice → payment intent → charge). Tie-break rules
that hold throughout:

  - An open fraud review wins over every capture/success signal. A
    payment can be `succeeded` and still be under review.
  - Refund and cancellation signals win over capture signals.

Payment intent statuses:
  requires_payment_method, requires_confirmation, requires_action,
  processing, requires_capture, canceled, succeeded

Invoice statuses:
  draft, open, paid, void, uncollectible
"""

from typing import Optional

from checkout_bridge.models.enums import PaymentStatus
from checkout_bridge.models.remote import (
    Charge,
    CheckoutSession,
    Invoice,
    PaymentIntent,
    RemoteObject,
    Review,
    Subscription,
)


def charge_status(charge: Optional[Charge]) -> PaymentStatus:
    if charge is None or not charge.paid:
        return PaymentStatus.INITIALIZED

    if charge.captured:
        return PaymentStatus.REFUNDED if charge.refunded else PaymentStatus.CAPTURED

    # Refunded before capture means the authorization was released
    return PaymentStatus.CANCELLED if charge.refunded else PaymentStatus.AUTHORIZED


def payment_intent_status(intent: PaymentIntent) -> PaymentStatus:
    if intent.review is not None and intent.review.open:
        return PaymentStatus.PENDING_EXTERNAL_SYSTEM

    if intent.status == "canceled":
        return PaymentStatus.CANCELLED

    if intent.status == "requires_capture":
        return PaymentStatus.AUTHORIZED

    if intent.status == "succeeded":
        if intent.latest_charge is not None:
            return charge_status(intent.latest_charge)
        return PaymentStatus.CAPTURED

    return PaymentStatus.INITIALIZED


def invoice_status(invoice: Invoice) -> PaymentStatus:
    if invoice.status == "void":
        return PaymentStatus.CANCELLED

    if invoice.status == "open":
        return PaymentStatus.AUTHORIZED

    if invoice.status == "uncollectible":
        return PaymentStatus.ERROR

    if invoice.status == "paid":
        if invoice.payment_intent is not None:
            return payment_intent_status(invoice.payment_intent)
        if invoice.charge is not None:
            return charge_status(invoice.charge)
        return PaymentStatus.CAPTURED

    return PaymentStatus.INITIALIZED


def subscription_status(subscription: Subscription) -> PaymentStatus:
    """Classify a subscription by the invoice that last billed it."""
    if subscription.latest_invoice is not None:
        return invoice_status(subscription.latest_invoice)
    return PaymentStatus.INITIALIZED


def review_status(review: Review) -> PaymentStatus:
    # A closed review says nothing about money movement; re-read the intent
    return PaymentStatus.PENDING_EXTERNAL_SYSTEM if review.open else PaymentStatus.INITIALIZED


def status_for(obj: RemoteObject) -> PaymentStatus:
    """Classify any hydrated webhook object."""
    if isinstance(obj, PaymentIntent):
        return payment_intent_status(obj)
    if isinstance(obj, Charge):
        return charge_status(obj)
    if isinstance(obj, Invoice):
        return invoice_status(obj)
    if isinstance(obj, Subscription):
        return subscription_status(obj)
    if isinstance(obj, Review):
        return review_status(obj)
    if isinstance(obj, CheckoutSession):
        # A session alone carries no payment; wait for its intent or invoice
        return PaymentStatus.INITIALIZED
    raise TypeError(f"Unsupported remote object: {type(obj).__name__}")


def transaction_id_for(obj: Optional[RemoteObject]) -> Optional[str]:
    """The charge id that identifies the money movement behind an object."""
    if obj is None:
        return None
    if isinstance(obj, Charge):
        return obj.id
    if isinstance(obj, PaymentIntent):
        return obj.latest_charge.id if obj.latest_charge else obj.latest_charge_id
    if isinstance(obj, Invoice):
        if obj.charge is not None or obj.charge_id:
            return obj.charge.id if obj.charge else obj.charge_id
        return transaction_id_for(obj.payment_intent)
    if isinstance(obj, Subscription):
        return transaction_id_for(obj.latest_invoice)
    return None


def card_country_for(obj: Optional[RemoteObject]) -> Optional[str]:
    if isinstance(obj, Charge):
        return obj.card_country
    if isinstance(obj, PaymentIntent):
        return card_country_for(obj.latest_charge)
    if isinstance(obj, Invoice):
        return card_country_for(obj.charge) or card_country_for(obj.payment_intent)
    return None
