"""Tests for find-or-create tax rates."""

import asyncio
from decimal import Decimal

import pytest

from checkout_bridge.engine.context import RequestCache
from checkout_bridge.engine.tax_rates import TaxRateResolver


@pytest.mark.asyncio
async def test_creates_missing_rate(gateway):
    resolver = TaxRateResolver(gateway, RequestCache())

    rate_id = await resolver.get_or_create("Subscription Tax", Decimal("20"), False)

    assert rate_id.startswith("txr_")
    assert len(gateway.calls_to("create_tax_rate")) == 1


@pytest.mark.asyncio
async def test_reuses_existing_remote_rate(gateway):
    gateway.add({
        "id": "txr_existing",
        "object": "tax_rate",
        "display_name": "Subscription Tax",
        "percentage": 20.0,
        "inclusive": False,
        "active": True,
    })
    resolver = TaxRateResolver(gateway, RequestCache())

    assert await resolver.get_or_create("Subscription Tax", Decimal("20.00"), False) == "txr_existing"
    assert gateway.calls_to("create_tax_rate") == []


@pytest.mark.asyncio
async def test_match_is_exact_on_all_three_fields(gateway):
    gateway.add({
        "id": "txr_inclusive",
        "object": "tax_rate",
        "display_name": "Subscription Tax",
        "percentage": 20.0,
        "inclusive": True,
    })
    gateway.add({
        "id": "txr_inactive",
        "object": "tax_rate",
        "display_name": "Subscription Tax",
        "percentage": 20.0,
        "inclusive": False,
        "active": False,
    })
    resolver = TaxRateResolver(gateway, RequestCache())

    rate_id = await resolver.get_or_create("Subscription Tax", Decimal("20"), False)

    assert rate_id not in ("txr_inclusive", "txr_inactive")


@pytest.mark.asyncio
async def test_cached_within_request(gateway):
    resolver = TaxRateResolver(gateway, RequestCache())

    first = await resolver.get_or_create("Subscription Tax", Decimal("20"), False)
    second = await resolver.get_or_create("Subscription Tax", Decimal("20"), False)

    assert first == second
    assert len(gateway.calls_to("list_tax_rates")) == 1
    assert len(gateway.calls_to("create_tax_rate")) == 1


@pytest.mark.asyncio
async def test_concurrent_lookups_create_one_rate(gateway):
    resolver = TaxRateResolver(gateway, RequestCache())

    ids = await asyncio.gather(*[
        resolver.get_or_create("Subscription Tax", Decimal("5"), False) for _ in range(5)
    ])

    assert len(set(ids)) == 1
    assert len(gateway.calls_to("create_tax_rate")) == 1


@pytest.mark.asyncio
async def test_later_request_finds_rate_created_earlier(gateway):
    """A replayed checkout must not create a second copy of the same rate."""
    first = await TaxRateResolver(gateway, RequestCache()).get_or_create("Subscription Tax", Decimal("20"), False)
    second = await TaxRateResolver(gateway, RequestCache()).get_or_create("Subscription Tax", Decimal("20"), False)

    assert first == second
    assert len(gateway.calls_to("create_tax_rate")) == 1
