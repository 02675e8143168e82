"""
Checkout session request builder.

Turns an order snapshot into the parameters of a hosted checkout session.
Order lines flagged recurring become subscription items; whatever part of
the order total they do not cover is charged as one extra one-time item.

Recurring lines come in two flavours:
  - Existing price (`stripePriceId`): the processor's price is reused and
    the line quantity is the number of units bought. A tax rate is only
    attached when that price excludes tax.
  - Dynamic price: an inline recurring price built from the line's
    tax-exclusive unit amount, always with an exclusive tax rate so the
    processor adds the tax on top without rounding drift.

Any recurring line switches the session to subscription mode. Order
identifying metadata goes on the sub-object of the chosen mode, so it
follows the payment intent or the subscription the session creates.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from checkout_bridge.engine.amounts import to_minor_units
from checkout_bridge.engine.locales import find_best_match_locale
from checkout_bridge.engine.order_reference import encode_order_reference
from checkout_bridge.engine.tax_rates import TaxRateResolver
from checkout_bridge.models.enums import LineProperty, OrderMetadataKey, SessionMode
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.models.snapshot import OrderLineSnapshot, OrderSnapshot

logger = logging.getLogger("checkout_bridge.session_builder")

SUBSCRIPTION_TAX_NAME = "Subscription Tax"
DEFAULT_ONE_TIME_ITEMS_HEADING = "One time items (inc Tax)"
DEFAULT_RECURRING_INTERVAL = "month"


def _compact(values: dict[str, Optional[str]]) -> dict[str, str]:
    return {k: v for k, v in values.items() if v is not None}


def customer_params(order: OrderSnapshot, settings: StripeCheckoutSettings) -> dict[str, Any]:
    """Customer create/update parameters, including the billing address."""
    address = {
        "line1": order.get_property(settings.billing_address_line1_property_alias),
        "line2": order.get_property(settings.billing_address_line2_property_alias),
        "city": order.get_property(settings.billing_address_city_property_alias),
        "state": order.get_property(settings.billing_address_state_property_alias),
        "postal_code": order.get_property(settings.billing_address_zip_code_property_alias),
        "country": order.billing_country_code,
    }

    # Fraud rules can only compare the billing country with the card
    # country through customer metadata
    metadata = {
        "billingCountry": address["country"],
        "billingZipCode": address["postal_code"],
    }

    return {
        "name": order.customer.full_name,
        "email": order.customer.email,
        "description": order.order_number,
        "address": _compact(address),
        "metadata": _compact(metadata),
    }


def order_metadata(order: OrderSnapshot, settings: StripeCheckoutSettings) -> dict[str, str]:
    """Order identifying metadata plus any configured order properties."""
    metadata = {
        OrderMetadataKey.ORDER_REFERENCE.value: encode_order_reference(order.id),
        OrderMetadataKey.ORDER_ID.value: order.id,
        OrderMetadataKey.ORDER_NUMBER.value: order.order_number,
    }
    for alias in settings.order_property_aliases:
        value = order.get_property(alias)
        if value.strip():
            metadata[alias] = value
    return metadata


def is_recurring(line: OrderLineSnapshot) -> bool:
    return line.property_is_true(LineProperty.IS_RECURRING.value)


@dataclass
class CheckoutSessionRequest:
    """Parameters for one checkout session create call."""

    mode: SessionMode
    customer_id: str
    line_items: list[dict[str, Any]]
    metadata: dict[str, str]
    client_reference_id: str
    success_url: str
    cancel_url: str
    locale: str
    payment_method_types: list[str] = field(default_factory=lambda: ["card"])
    capture_method: str = "manual"
    receipt_email: Optional[str] = None

    @property
    def has_recurring_items(self) -> bool:
        return self.mode == SessionMode.SUBSCRIPTION

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "mode": self.mode.value,
            "customer": self.customer_id,
            "payment_method_types": list(self.payment_method_types),
            "line_items": self.line_items,
            "client_reference_id": self.client_reference_id,
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "locale": self.locale,
        }

        if self.mode == SessionMode.SUBSCRIPTION:
            params["subscription_data"] = {"metadata": dict(self.metadata)}
        else:
            payment_intent_data: dict[str, Any] = {
                "capture_method": self.capture_method,
                "metadata": dict(self.metadata),
            }
            if self.receipt_email:
                payment_intent_data["receipt_email"] = self.receipt_email
            params["payment_intent_data"] = payment_intent_data

        return params


async def _recurring_line_item(
    line: OrderLineSnapshot,
    currency: str,
    tax_rates: TaxRateResolver,
) -> dict[str, Any]:
    percentage = line.tax_rate * 100
    quantity = int(line.quantity)

    price_id = line.get_property(LineProperty.PRICE_ID.value).strip()
    if price_id:
        # The processor's price may drift from the shop's price; the line
        # quantity counts units of that price
        item: dict[str, Any] = {"price": price_id, "quantity": quantity}
        price_includes_tax = line.property_is_true(LineProperty.PRICE_INCLUDES_TAX.value)
        if not price_includes_tax and percentage != 0:
            item["tax_rates"] = [
                await tax_rates.get_or_create(SUBSCRIPTION_TAX_NAME, percentage, inclusive=False)
            ]
        return item

    interval = line.get_property(LineProperty.RECURRING_INTERVAL.value).strip().lower()
    try:
        interval_count = int(line.get_property(LineProperty.RECURRING_INTERVAL_COUNT.value))
    except ValueError:
        interval_count = 1

    unit_without_tax = line.total_price_without_tax / line.quantity if quantity else line.total_price_without_tax
    price_data: dict[str, Any] = {
        "currency": currency,
        "unit_amount": to_minor_units(unit_without_tax),
        "recurring": {
            "interval": interval or DEFAULT_RECURRING_INTERVAL,
            "interval_count": interval_count,
        },
    }

    product_id = line.get_property(LineProperty.PRODUCT_ID.value).strip()
    if product_id:
        price_data["product"] = product_id
    else:
        price_data["product_data"] = {
            "name": line.name,
            "metadata": {"productReference": line.product_reference},
        }

    return {
        "price_data": price_data,
        "quantity": quantity,
        "tax_rates": [await tax_rates.get_or_create(SUBSCRIPTION_TAX_NAME, percentage, inclusive=False)],
    }


def _shortfall_line_item(
    order: OrderSnapshot,
    settings: StripeCheckoutSettings,
    currency: str,
    amount: int,
    has_recurring_items: bool,
) -> dict[str, Any]:
    order_label = f"#{order.order_number}"

    if has_recurring_items:
        name = settings.one_time_items_heading or DEFAULT_ONE_TIME_ITEMS_HEADING
        description: Optional[str] = order_label
    elif settings.order_heading:
        name = settings.order_heading
        description = order_label
    else:
        name = order_label
        description = None

    product_data: dict[str, Any] = {"name": name}
    if description:
        product_data["description"] = description
    if settings.order_image and not has_recurring_items:
        product_data["images"] = [settings.order_image]

    return {
        "price_data": {
            "currency": currency,
            "unit_amount": amount,
            "product_data": product_data,
        },
        "quantity": 1,
    }


async def build_checkout_session(
    order: OrderSnapshot,
    settings: StripeCheckoutSettings,
    customer_id: str,
    tax_rates: TaxRateResolver,
    success_url: str,
    cancel_url: str,
) -> CheckoutSessionRequest:
    """
    Assemble the checkout session request for an order.

    Tax rates for recurring lines are found or created through
    `tax_rates`, so building may make remote calls. Nothing is persisted.
    """
    currency = order.currency_code.lower()
    order_total = to_minor_units(order.transaction_amount)

    line_items: list[dict[str, Any]] = []
    recurring_total = 0

    for line in order.lines:
        if not is_recurring(line):
            continue
        line_items.append(await _recurring_line_item(line, currency, tax_rates))
        recurring_total += to_minor_units(line.total_price_with_tax)

    has_recurring_items = bool(line_items)

    if recurring_total < order_total:
        line_items.append(
            _shortfall_line_item(
                order, settings, currency, order_total - recurring_total, has_recurring_items
            )
        )

    mode = SessionMode.SUBSCRIPTION if has_recurring_items else SessionMode.PAYMENT
    request = CheckoutSessionRequest(
        mode=mode,
        customer_id=customer_id,
        line_items=line_items,
        metadata=order_metadata(order, settings),
        client_reference_id=encode_order_reference(order.id),
        success_url=success_url,
        cancel_url=cancel_url,
        locale=find_best_match_locale(order.language_iso_code),
        payment_method_types=settings.payment_method_type_list,
        capture_method="automatic" if settings.capture else "manual",
        receipt_email=order.customer.email if settings.send_stripe_receipt and order.customer.email else None,
    )

    logger.debug(
        "Built %s session for order %s: %d line item(s), recurring=%d, total=%d",
        mode.value,
        order.id,
        len(line_items),
        recurring_total,
        order_total,
    )
    return request
