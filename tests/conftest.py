"""Shared test fixtures."""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from checkout_bridge.engine.context import RequestCache
from checkout_bridge.models.order import Base, Order, OrderLine
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.models.snapshot import CustomerInfo, OrderLineSnapshot, OrderSnapshot
from checkout_bridge.providers.base import PaymentProviderContext, ProviderUrls
from checkout_bridge.providers.mock_gateway import MockStripeGateway
from checkout_bridge.providers.stripe_checkout import StripeCheckoutProvider

WEBHOOK_SECRET = "whsec_test_secret"
ORDER_ID = "0b5c2f4e-8d1a-4f3b-9c6e-7a2d1e0f4b11"


def make_line(
    name: str,
    total_with_tax: str,
    total_without_tax: str,
    tax_rate: str = "0.2",
    quantity: int = 1,
    **properties: str,
) -> OrderLineSnapshot:
    qty = Decimal(quantity)
    return OrderLineSnapshot(
        name=name,
        quantity=qty,
        unit_price_with_tax=Decimal(total_with_tax) / qty,
        unit_price_without_tax=Decimal(total_without_tax) / qty,
        total_price_with_tax=Decimal(total_with_tax),
        total_price_without_tax=Decimal(total_without_tax),
        tax_rate=Decimal(tax_rate),
        product_reference=f"SKU-{name.upper().replace(' ', '-')}",
        properties=properties,
    )


def make_order(
    lines: tuple[OrderLineSnapshot, ...] = (),
    total: str = "100.00",
    order_id: str = ORDER_ID,
    properties: dict[str, str] | None = None,
    language_iso_code: str | None = "en-GB",
    billing_country_code: str | None = "GB",
    amount_authorized: Decimal | None = None,
) -> OrderSnapshot:
    return OrderSnapshot(
        id=order_id,
        order_number="ORD-1001",
        currency_code="GBP",
        transaction_amount=Decimal(total),
        customer=CustomerInfo("James", "Thompson", "james@example.com"),
        lines=lines,
        properties=properties or {},
        language_iso_code=language_iso_code,
        billing_country_code=billing_country_code,
        amount_authorized=amount_authorized,
    )


@pytest.fixture
def provider_settings() -> StripeCheckoutSettings:
    return StripeCheckoutSettings(
        continue_url="https://shop.test/continue",
        cancel_url="https://shop.test/cancel",
        error_url="https://shop.test/error",
        billing_address_line1_property_alias="billingAddressLine1",
        billing_address_city_property_alias="billingCity",
        billing_address_zip_code_property_alias="billingZipCode",
        test_secret_key="sk_test_123",
        test_public_key="pk_test_123",
        test_webhook_signing_secret=WEBHOOK_SECRET,
        test_mode=True,
        capture=False,
    )


@pytest.fixture
def urls(provider_settings: StripeCheckoutSettings) -> ProviderUrls:
    return ProviderUrls(
        continue_url=provider_settings.continue_url,
        cancel_url=provider_settings.cancel_url,
        error_url=provider_settings.error_url,
    )


@pytest.fixture
def gateway() -> MockStripeGateway:
    return MockStripeGateway(failure_rate=0.0, latency_ms=0)


@pytest.fixture
def provider(gateway: MockStripeGateway) -> StripeCheckoutProvider:
    return StripeCheckoutProvider(lambda _settings: gateway)


@pytest.fixture
def make_context(provider_settings: StripeCheckoutSettings, urls: ProviderUrls):
    """Build a fresh per-request context, as the host does for each call."""

    def _make(order=None, webhook=None, settings=None) -> PaymentProviderContext:
        return PaymentProviderContext(
            order=order,
            settings=settings or provider_settings,
            urls=urls,
            cache=RequestCache(),
            webhook=webhook,
        )

    return _make


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_session(db_session: AsyncSession):
    """Database session pre-loaded with a one-time order and a mixed subscription order."""
    one_time = Order(
        id=ORDER_ID,
        order_number="ORD-1001",
        currency_code="GBP",
        transaction_amount=Decimal("120.00"),
        customer_first_name="James",
        customer_last_name="Thompson",
        customer_email="james@example.com",
        language_iso_code="en-GB",
        billing_country_code="GB",
        properties={"billingCity": "Bristol", "billingZipCode": "BS1 4QA"},
    )
    db_session.add(one_time)
    db_session.add(OrderLine(
        order_id=ORDER_ID,
        name="Walnut chopping board",
        product_reference="SKU-BOARD",
        quantity=Decimal(1),
        unit_price_with_tax=Decimal("120.00"),
        unit_price_without_tax=Decimal("100.00"),
        total_price_with_tax=Decimal("120.00"),
        total_price_without_tax=Decimal("100.00"),
        tax_rate=Decimal("0.2"),
    ))

    mixed = Order(
        id="mixed-order-0002",
        order_number="ORD-1002",
        currency_code="GBP",
        transaction_amount=Decimal("100.00"),
        customer_first_name="Charlotte",
        customer_last_name="Williams",
        customer_email="charlotte@example.com",
        language_iso_code="en-GB",
        billing_country_code="GB",
        properties={},
    )
    db_session.add(mixed)
    db_session.add(OrderLine(
        order_id="mixed-order-0002",
        name="Coffee subscription",
        product_reference="SKU-COFFEE",
        quantity=Decimal(1),
        unit_price_with_tax=Decimal("60.00"),
        unit_price_without_tax=Decimal("50.00"),
        total_price_with_tax=Decimal("60.00"),
        total_price_without_tax=Decimal("50.00"),
        tax_rate=Decimal("0.2"),
        properties={"isRecurring": "true", "stripeRecurringInterval": "month"},
    ))
    db_session.add(OrderLine(
        order_id="mixed-order-0002",
        name="Burr grinder",
        product_reference="SKU-GRINDER",
        quantity=Decimal(1),
        unit_price_with_tax=Decimal("40.00"),
        unit_price_without_tax=Decimal("33.33"),
        total_price_with_tax=Decimal("40.00"),
        total_price_without_tax=Decimal("33.33"),
        tax_rate=Decimal("0.2"),
    ))
    await db_session.commit()

    yield db_session
