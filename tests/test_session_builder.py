"""Tests for building checkout session requests from order snapshots."""

from decimal import Decimal

import pytest

from checkout_bridge.engine.context import RequestCache
from checkout_bridge.engine.locales import find_best_match_locale
from checkout_bridge.engine.order_reference import decode_order_reference
from checkout_bridge.engine.session_builder import build_checkout_session, customer_params
from checkout_bridge.engine.tax_rates import TaxRateResolver
from checkout_bridge.models.enums import SessionMode

from conftest import ORDER_ID, make_line, make_order


async def _build(order, settings, gateway):
    return await build_checkout_session(
        order,
        settings,
        "cus_1",
        TaxRateResolver(gateway, RequestCache()),
        success_url=settings.continue_url,
        cancel_url=settings.cancel_url,
    )


@pytest.mark.asyncio
async def test_one_time_order_is_a_single_payment_item(provider_settings, gateway):
    order = make_order((make_line("Board", "100.00", "83.33"),), total="100.00")

    request = await _build(order, provider_settings, gateway)
    params = request.to_params()

    assert request.mode == SessionMode.PAYMENT
    assert len(params["line_items"]) == 1
    item = params["line_items"][0]
    assert item["quantity"] == 1
    assert item["price_data"]["unit_amount"] == 10000
    assert item["price_data"]["currency"] == "gbp"
    assert item["price_data"]["product_data"]["name"] == "#ORD-1001"
    assert "description" not in item["price_data"]["product_data"]
    assert params["payment_intent_data"]["capture_method"] == "manual"
    assert "subscription_data" not in params
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_sixty_percent_recurring_adds_forty_percent_shortfall(provider_settings, gateway):
    order = make_order(
        (
            make_line("Coffee", "60.00", "50.00", isRecurring="true", stripeRecurringInterval="Month"),
            make_line("Grinder", "40.00", "33.33"),
        ),
        total="100.00",
    )

    request = await _build(order, provider_settings, gateway)
    params = request.to_params()

    assert request.mode == SessionMode.SUBSCRIPTION
    assert len(params["line_items"]) == 2

    recurring, shortfall = params["line_items"]
    assert recurring["price_data"]["unit_amount"] == 5000
    assert recurring["price_data"]["recurring"] == {"interval": "month", "interval_count": 1}
    assert recurring["price_data"]["product_data"]["metadata"] == {"productReference": "SKU-COFFEE"}
    assert len(recurring["tax_rates"]) == 1

    assert "recurring" not in shortfall["price_data"]
    assert shortfall["price_data"]["unit_amount"] == 4000
    assert shortfall["quantity"] == 1
    assert shortfall["price_data"]["product_data"]["name"] == "One time items (inc Tax)"
    assert shortfall["price_data"]["product_data"]["description"] == "#ORD-1001"

    assert "payment_intent_data" not in params
    assert params["subscription_data"]["metadata"]["orderId"] == ORDER_ID


@pytest.mark.asyncio
async def test_dynamic_recurring_price_gets_exclusive_subscription_tax(provider_settings, gateway):
    order = make_order(
        (make_line("Coffee", "60.00", "50.00", isRecurring="1"),),
        total="60.00",
    )

    await _build(order, provider_settings, gateway)

    created = gateway.calls_to("create_tax_rate")
    assert len(created) == 1
    assert created[0].target == "Subscription Tax"
    assert created[0].params == {"percentage": Decimal("20.0"), "inclusive": False}


@pytest.mark.asyncio
async def test_fully_recurring_order_has_no_shortfall(provider_settings, gateway):
    order = make_order(
        (make_line("Coffee", "60.00", "50.00", isRecurring="TRUE"),),
        total="60.00",
    )

    request = await _build(order, provider_settings, gateway)

    assert len(request.line_items) == 1


@pytest.mark.asyncio
async def test_recurring_interval_and_product(provider_settings, gateway):
    order = make_order(
        (
            make_line(
                "Tea",
                "36.00",
                "30.00",
                quantity=2,
                isRecurring="true",
                stripeRecurringInterval="Week",
                stripeRecurringIntervalCount="3",
                stripeProductId="prod_tea",
            ),
        ),
        total="36.00",
    )

    request = await _build(order, provider_settings, gateway)
    item = request.line_items[0]

    assert item["quantity"] == 2
    assert item["price_data"]["unit_amount"] == 1500
    assert item["price_data"]["recurring"] == {"interval": "week", "interval_count": 3}
    assert item["price_data"]["product"] == "prod_tea"
    assert "product_data" not in item["price_data"]


@pytest.mark.asyncio
async def test_existing_price_reused(provider_settings, gateway):
    order = make_order(
        (make_line("Tea", "36.00", "30.00", quantity=2, isRecurring="true", stripePriceId="price_tea"),),
        total="36.00",
    )

    request = await _build(order, provider_settings, gateway)
    item = request.line_items[0]

    assert item["price"] == "price_tea"
    assert item["quantity"] == 2
    assert "price_data" not in item
    assert len(item["tax_rates"]) == 1


@pytest.mark.asyncio
async def test_existing_tax_inclusive_price_gets_no_tax_rate(provider_settings, gateway):
    order = make_order(
        (make_line("Tea", "36.00", "30.00", isRecurring="true", stripePriceId="price_tea",
                   stripePriceIncludesTax="true"),),
        total="36.00",
    )

    request = await _build(order, provider_settings, gateway)

    assert "tax_rates" not in request.line_items[0]
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_existing_zero_rated_price_gets_no_tax_rate(provider_settings, gateway):
    order = make_order(
        (make_line("News", "25.00", "25.00", tax_rate="0", isRecurring="true", stripePriceId="price_news"),),
        total="25.00",
    )

    request = await _build(order, provider_settings, gateway)

    assert "tax_rates" not in request.line_items[0]


@pytest.mark.asyncio
async def test_order_heading_and_image_on_sole_line(provider_settings, gateway):
    settings = provider_settings.model_copy(update={
        "order_heading": "Fine Kitchenware",
        "order_image": "https://shop.test/logo.png",
    })
    order = make_order((make_line("Board", "100.00", "83.33"),), total="100.00")

    request = await _build(order, settings, gateway)
    product = request.line_items[0]["price_data"]["product_data"]

    assert product["name"] == "Fine Kitchenware"
    assert product["description"] == "#ORD-1001"
    assert product["images"] == ["https://shop.test/logo.png"]


@pytest.mark.asyncio
async def test_image_not_added_to_shortfall_next_to_recurring_items(provider_settings, gateway):
    settings = provider_settings.model_copy(update={
        "order_image": "https://shop.test/logo.png",
        "one_time_items_heading": "Extras",
    })
    order = make_order(
        (make_line("Coffee", "60.00", "50.00", isRecurring="true"), make_line("Grinder", "40.00", "33.33")),
        total="100.00",
    )

    request = await _build(order, settings, gateway)
    product = request.line_items[1]["price_data"]["product_data"]

    assert product["name"] == "Extras"
    assert "images" not in product


@pytest.mark.asyncio
async def test_metadata_and_reference(provider_settings, gateway):
    settings = provider_settings.model_copy(update={"order_properties": "giftMessage, channel ,missing"})
    order = make_order(
        (make_line("Board", "100.00", "83.33"),),
        properties={"giftMessage": "Happy birthday", "channel": "web"},
    )

    request = await _build(order, settings, gateway)
    params = request.to_params()
    metadata = params["payment_intent_data"]["metadata"]

    assert decode_order_reference(params["client_reference_id"]) == ORDER_ID
    assert metadata["orderReference"] == params["client_reference_id"]
    assert metadata["orderId"] == ORDER_ID
    assert metadata["orderNumber"] == "ORD-1001"
    assert metadata["giftMessage"] == "Happy birthday"
    assert metadata["channel"] == "web"
    assert "missing" not in metadata


@pytest.mark.asyncio
async def test_session_options(provider_settings, gateway):
    settings = provider_settings.model_copy(update={
        "capture": True,
        "send_stripe_receipt": True,
        "payment_method_types": "card, klarna",
    })
    order = make_order((make_line("Board", "100.00", "83.33"),), language_iso_code="fr-CA")

    params = (await _build(order, settings, gateway)).to_params()

    assert params["customer"] == "cus_1"
    assert params["payment_method_types"] == ["card", "klarna"]
    assert params["locale"] == "fr-CA"
    assert params["success_url"] == "https://shop.test/continue"
    assert params["cancel_url"] == "https://shop.test/cancel"
    assert params["payment_intent_data"]["capture_method"] == "automatic"
    assert params["payment_intent_data"]["receipt_email"] == "james@example.com"


class TestCustomerParams:
    def test_billing_address_from_aliases(self, provider_settings):
        order = make_order(properties={
            "billingAddressLine1": "12 Harbour Street",
            "billingCity": "Bristol",
            "billingZipCode": "BS1 4QA",
        })

        params = customer_params(order, provider_settings)

        assert params["name"] == "James Thompson"
        assert params["email"] == "james@example.com"
        assert params["description"] == "ORD-1001"
        assert params["address"]["line1"] == "12 Harbour Street"
        assert params["address"]["line2"] == ""
        assert params["address"]["country"] == "GB"
        assert params["metadata"] == {"billingCountry": "GB", "billingZipCode": "BS1 4QA"}

    def test_no_billing_country(self, provider_settings):
        params = customer_params(make_order(billing_country_code=None), provider_settings)

        assert "country" not in params["address"]
        assert "billingCountry" not in params["metadata"]


class TestLocales:
    def test_exact_match(self):
        assert find_best_match_locale("pt-BR") == "pt-BR"
        assert find_best_match_locale("en_gb") == "en-GB"

    def test_language_prefix(self):
        assert find_best_match_locale("en-US") == "en"
        assert find_best_match_locale("de-AT") == "de"

    def test_auto(self):
        assert find_best_match_locale(None) == "auto"
        assert find_best_match_locale("") == "auto"
        assert find_best_match_locale("xx-YY") == "auto"
