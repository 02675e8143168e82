"""
Typed views of the payment processor's objects.

The processor returns loosely-typed objects whose expandable fields arrive
either as an id string or as a nested object, depending on the `expand`
list of the request. These frozen dataclasses pin that down: every
expandable field is split into an ``*_id`` and an optional hydrated
object, so the status mapper never has to guess what it was given.

`RemoteObject` is the closed union a webhook event can resolve to.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional, Union


def _expandable(value: Any) -> tuple[Optional[str], Optional[Mapping[str, Any]]]:
    """Split an expandable field into (id, expanded object or None)."""
    if value is None:
        return None, None
    if isinstance(value, str):
        return value, None
    return value.get("id"), value


def _metadata(data: Mapping[str, Any]) -> dict[str, str]:
    return {str(k): str(v) for k, v in (data.get("metadata") or {}).items()}


@dataclass(frozen=True)
class Review:
    """A fraud review attached to a charge or payment intent."""

    id: str
    open: bool = False
    reason: Optional[str] = None
    payment_intent_id: Optional[str] = None
    charge_id: Optional[str] = None

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "Review":
        payment_intent_id, _ = _expandable(data.get("payment_intent"))
        charge_id, _ = _expandable(data.get("charge"))
        return cls(
            id=data["id"],
            open=bool(data.get("open")),
            reason=data.get("reason"),
            payment_intent_id=payment_intent_id,
            charge_id=charge_id,
        )


@dataclass(frozen=True)
class Charge:
    """Money moved (or attempted) against a payment method."""

    id: str
    paid: bool = False
    captured: bool = False
    refunded: bool = False
    amount: int = 0
    currency: Optional[str] = None
    card_country: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "Charge":
        payment_intent_id, _ = _expandable(data.get("payment_intent"))
        card = (data.get("payment_method_details") or {}).get("card") or {}
        return cls(
            id=data["id"],
            paid=bool(data.get("paid")),
            captured=bool(data.get("captured")),
            refunded=bool(data.get("refunded")),
            amount=int(data.get("amount") or 0),
            currency=data.get("currency"),
            card_country=card.get("country"),
            payment_intent_id=payment_intent_id,
        )


@dataclass(frozen=True)
class PaymentIntent:
    """An attempted payment progressing through authorization and capture."""

    id: str
    status: str
    amount: int = 0
    currency: Optional[str] = None
    capture_method: Optional[str] = None
    latest_charge_id: Optional[str] = None
    latest_charge: Optional[Charge] = None
    review: Optional[Review] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "PaymentIntent":
        charge_id, charge = _expandable(data.get("latest_charge"))
        _, review = _expandable(data.get("review"))
        return cls(
            id=data["id"],
            status=data.get("status") or "",
            amount=int(data.get("amount") or 0),
            currency=data.get("currency"),
            capture_method=data.get("capture_method"),
            latest_charge_id=charge_id,
            latest_charge=Charge.from_stripe(charge) if charge else None,
            review=Review.from_stripe(review) if review else None,
            metadata=_metadata(data),
        )


@dataclass(frozen=True)
class Invoice:
    """A billing document for one subscription cycle."""

    id: str
    status: Optional[str] = None
    amount_paid: int = 0
    payment_intent_id: Optional[str] = None
    payment_intent: Optional[PaymentIntent] = None
    charge_id: Optional[str] = None
    charge: Optional[Charge] = None

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "Invoice":
        payment_intent_id, payment_intent = _expandable(data.get("payment_intent"))
        charge_id, charge = _expandable(data.get("charge"))
        return cls(
            id=data["id"],
            status=data.get("status"),
            amount_paid=int(data.get("amount_paid") or 0),
            payment_intent_id=payment_intent_id,
            payment_intent=PaymentIntent.from_stripe(payment_intent) if payment_intent else None,
            charge_id=charge_id,
            charge=Charge.from_stripe(charge) if charge else None,
        )


@dataclass(frozen=True)
class Subscription:
    """A recurring billing agreement."""

    id: str
    status: Optional[str] = None
    customer_id: Optional[str] = None
    latest_invoice_id: Optional[str] = None
    latest_invoice: Optional[Invoice] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "Subscription":
        customer_id, _ = _expandable(data.get("customer"))
        invoice_id, invoice = _expandable(data.get("latest_invoice"))
        return cls(
            id=data["id"],
            status=data.get("status"),
            customer_id=customer_id,
            latest_invoice_id=invoice_id,
            latest_invoice=Invoice.from_stripe(invoice) if invoice else None,
            metadata=_metadata(data),
        )


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted checkout page representing one payment attempt for an order."""

    id: str
    mode: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    url: Optional[str] = None
    client_reference_id: Optional[str] = None
    customer_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "CheckoutSession":
        customer_id, _ = _expandable(data.get("customer"))
        payment_intent_id, _ = _expandable(data.get("payment_intent"))
        subscription_id, _ = _expandable(data.get("subscription"))
        return cls(
            id=data["id"],
            mode=data.get("mode"),
            status=data.get("status"),
            payment_status=data.get("payment_status"),
            url=data.get("url"),
            client_reference_id=data.get("client_reference_id"),
            customer_id=customer_id,
            payment_intent_id=payment_intent_id,
            subscription_id=subscription_id,
            metadata=_metadata(data),
        )


@dataclass(frozen=True)
class Refund:
    id: str
    status: Optional[str] = None
    charge_id: Optional[str] = None
    charge: Optional[Charge] = None

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "Refund":
        charge_id, charge = _expandable(data.get("charge"))
        return cls(
            id=data["id"],
            status=data.get("status"),
            charge_id=charge_id,
            charge=Charge.from_stripe(charge) if charge else None,
        )


@dataclass(frozen=True)
class TaxRate:
    id: str
    display_name: str
    percentage: Decimal
    inclusive: bool
    active: bool = True

    @classmethod
    def from_stripe(cls, data: Mapping[str, Any]) -> "TaxRate":
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or "",
            percentage=Decimal(str(data.get("percentage") or 0)),
            inclusive=bool(data.get("inclusive")),
            active=bool(data.get("active", True)),
        )

    def matches(self, display_name: str, percentage: Decimal, inclusive: bool) -> bool:
        return (
            self.display_name == display_name
            and self.percentage == percentage
            and self.inclusive == inclusive
        )


RemoteObject = Union[CheckoutSession, Charge, PaymentIntent, Subscription, Invoice, Review]
