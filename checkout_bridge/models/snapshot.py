"""Read-only order views handed to the payment provider by the host."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional


def _is_true(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return False
    return value == "1" or value.strip().lower() == "true"


@dataclass(frozen=True)
class CustomerInfo:
    first_name: str = ""
    last_name: str = ""
    email: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class OrderLineSnapshot:
    """One order line at the time the checkout session is created."""

    name: str
    quantity: Decimal
    unit_price_with_tax: Decimal
    unit_price_without_tax: Decimal
    total_price_with_tax: Decimal
    total_price_without_tax: Decimal
    tax_rate: Decimal = Decimal(0)  # fraction, e.g. 0.2 for 20%
    product_reference: str = ""
    properties: Mapping[str, str] = field(default_factory=dict)

    def get_property(self, alias: str) -> str:
        return self.properties.get(alias) or ""

    def property_is_true(self, alias: str) -> bool:
        return _is_true(self.properties.get(alias))


@dataclass(frozen=True)
class OrderSnapshot:
    """
    Immutable view of an order.

    The provider reads it but never changes it. Status and metadata
    changes go back to the host as result objects.
    """

    id: str
    order_number: str
    currency_code: str
    transaction_amount: Decimal
    customer: CustomerInfo = field(default_factory=CustomerInfo)
    lines: tuple[OrderLineSnapshot, ...] = ()
    properties: Mapping[str, str] = field(default_factory=dict)
    language_iso_code: Optional[str] = None
    billing_country_code: Optional[str] = None
    amount_authorized: Optional[Decimal] = None

    def get_property(self, alias: Optional[str]) -> str:
        """Value of an order property, or "" when the alias is unset or missing."""
        if not alias or not alias.strip():
            return ""
        return self.properties.get(alias) or ""
