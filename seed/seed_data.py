"""
Seed the database with sample orders.

Creates:
  - One-time orders in GBP and EUR (payment mode checkouts)
  - A mixed order: recurring coffee subscription plus a one-time grinder
  - A recurring order reusing an existing processor price
  - Edge cases: zero tax recurring line, order with no billing details

Run:
    python -m seed.seed_data
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from checkout_bridge.database import async_session, init_db
from checkout_bridge.models.order import Order, OrderLine

BILLING_GB = {
    "billingAddressLine1": "12 Harbour Street",
    "billingCity": "Bristol",
    "billingZipCode": "BS1 4QA",
}

ORDERS = [
    # ─── One-time orders ───────────────────────────────────────────────
    {
        "order": {
            "id": "5b8e1c7a-0001-4c1e-9a55-2f0c1d9e0001",
            "order_number": "ORD-1001",
            "currency_code": "GBP",
            "transaction_amount": Decimal("120.00"),
            "customer_first_name": "James",
            "customer_last_name": "Thompson",
            "customer_email": "james.thompson@example.com",
            "language_iso_code": "en-GB",
            "billing_country_code": "GB",
            "properties": BILLING_GB,
        },
        "lines": [
            {"name": "Walnut chopping board", "product_reference": "SKU-BOARD", "quantity": 1,
             "unit_price_with_tax": "90.00", "unit_price_without_tax": "75.00",
             "total_price_with_tax": "90.00", "total_price_without_tax": "75.00", "tax_rate": "0.2"},
            {"name": "Board oil", "product_reference": "SKU-OIL", "quantity": 2,
             "unit_price_with_tax": "15.00", "unit_price_without_tax": "12.50",
             "total_price_with_tax": "30.00", "total_price_without_tax": "25.00", "tax_rate": "0.2"},
        ],
    },
    {
        "order": {
            "id": "5b8e1c7a-0002-4c1e-9a55-2f0c1d9e0002",
            "order_number": "ORD-1002",
            "currency_code": "EUR",
            "transaction_amount": Decimal("59.50"),
            "customer_first_name": "Hans",
            "customer_last_name": "Mueller",
            "customer_email": "hans.mueller@example.com",
            "language_iso_code": "de-DE",
            "billing_country_code": "DE",
            "properties": {"billingAddressLine1": "Hauptstrasse 5", "billingCity": "Berlin", "billingZipCode": "10115"},
        },
        "lines": [
            {"name": "Linen apron", "product_reference": "SKU-APRON", "quantity": 1,
             "unit_price_with_tax": "59.50", "unit_price_without_tax": "50.00",
             "total_price_with_tax": "59.50", "total_price_without_tax": "50.00", "tax_rate": "0.19"},
        ],
    },
    # ─── Subscriptions ─────────────────────────────────────────────────
    # 60% recurring → subscription session with a 40% one-time shortfall item
    {
        "order": {
            "id": "5b8e1c7a-0003-4c1e-9a55-2f0c1d9e0003",
            "order_number": "ORD-1003",
            "currency_code": "GBP",
            "transaction_amount": Decimal("100.00"),
            "customer_first_name": "Charlotte",
            "customer_last_name": "Williams",
            "customer_email": "charlotte.williams@example.com",
            "language_iso_code": "en-GB",
            "billing_country_code": "GB",
            "properties": BILLING_GB,
        },
        "lines": [
            {"name": "Coffee subscription", "product_reference": "SKU-COFFEE", "quantity": 1,
             "unit_price_with_tax": "60.00", "unit_price_without_tax": "50.00",
             "total_price_with_tax": "60.00", "total_price_without_tax": "50.00", "tax_rate": "0.2",
             "properties": {"isRecurring": "true", "stripeRecurringInterval": "Month"}},
            {"name": "Burr grinder", "product_reference": "SKU-GRINDER", "quantity": 1,
             "unit_price_with_tax": "40.00", "unit_price_without_tax": "33.33",
             "total_price_with_tax": "40.00", "total_price_without_tax": "33.33", "tax_rate": "0.2"},
        ],
    },
    # Existing processor price, billed quarterly
    {
        "order": {
            "id": "5b8e1c7a-0004-4c1e-9a55-2f0c1d9e0004",
            "order_number": "ORD-1004",
            "currency_code": "GBP",
            "transaction_amount": Decimal("36.00"),
            "customer_first_name": "Liam",
            "customer_last_name": "O'Connor",
            "customer_email": "liam.oconnor@example.com",
            "language_iso_code": "en-IE",
            "billing_country_code": "IE",
            "properties": {},
        },
        "lines": [
            {"name": "Tea club", "product_reference": "SKU-TEA", "quantity": 2,
             "unit_price_with_tax": "18.00", "unit_price_without_tax": "15.00",
             "total_price_with_tax": "36.00", "total_price_without_tax": "30.00", "tax_rate": "0.2",
             "properties": {"isRecurring": "1", "stripePriceId": "price_demo_tea_club",
                            "stripePriceIncludesTax": "false"}},
        ],
    },
    # ─── Edge cases ────────────────────────────────────────────────────
    # Zero-rated recurring line, no billing details, unsupported locale
    {
        "order": {
            "id": "5b8e1c7a-0005-4c1e-9a55-2f0c1d9e0005",
            "order_number": "ORD-1005",
            "currency_code": "USD",
            "transaction_amount": Decimal("25.00"),
            "customer_first_name": "Amanda",
            "customer_last_name": "Taylor",
            "customer_email": "amanda.taylor@example.com",
            "language_iso_code": "xx",
            "billing_country_code": None,
            "properties": {},
        },
        "lines": [
            {"name": "Newsletter", "product_reference": "SKU-NEWS", "quantity": 1,
             "unit_price_with_tax": "25.00", "unit_price_without_tax": "25.00",
             "total_price_with_tax": "25.00", "total_price_without_tax": "25.00", "tax_rate": "0",
             "properties": {"isRecurring": "True", "stripeRecurringInterval": "year"}},
        ],
    },
]


async def seed():
    """Seed the database with sample data."""
    await init_db()

    async with async_session() as session:
        # Check if already seeded
        existing = await session.get(Order, ORDERS[0]["order"]["id"])
        if existing:
            print("Database already seeded. Skipping.")
            return

        for data in ORDERS:
            order = Order(**data["order"])
            session.add(order)
            for line_data in data["lines"]:
                line = dict(line_data)
                properties = line.pop("properties", {})
                session.add(OrderLine(
                    order_id=order.id,
                    properties=properties,
                    **{k: Decimal(str(v)) if k != "name" and k != "product_reference" else v
                       for k, v in line.items()},
                ))

        await session.commit()
        print(f"Seeded {len(ORDERS)} orders.")


if __name__ == "__main__":
    asyncio.run(seed())
