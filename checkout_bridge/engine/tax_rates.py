"""
Find-or-create processor tax rates.

Tax rates are remote resources. Creating one for every checkout would
fill the account with duplicates, so a lookup goes through three steps:

  1. The tax rates already seen during this request
  2. A fresh listing of the account's active tax rates
  3. Creating the rate, and remembering it for the rest of the request

The request cache's lock serializes lookups, so two line items with the
same rate in one checkout cannot both create it. Rates are never
deleted or deactivated here.
"""

import logging
from decimal import Decimal
from typing import Optional

from checkout_bridge.engine.context import RequestCache
from checkout_bridge.models.remote import TaxRate
from checkout_bridge.providers.gateway import StripeGateway

logger = logging.getLogger("checkout_bridge.tax_rates")


def _find(rates: list[TaxRate], name: str, percentage: Decimal, inclusive: bool) -> Optional[TaxRate]:
    return next((r for r in rates if r.matches(name, percentage, inclusive)), None)


class TaxRateResolver:
    """Request-scoped tax rate lookup backed by the processor."""

    def __init__(self, gateway: StripeGateway, cache: RequestCache):
        self._gateway = gateway
        self._cache = cache

    async def get_or_create(self, name: str, percentage: Decimal, inclusive: bool) -> str:
        """Return the id of the active tax rate matching (name, percentage, inclusive)."""
        percentage = Decimal(percentage)

        async with self._cache.tax_rate_lock:
            if self._cache.tax_rates:
                cached = _find(self._cache.tax_rates, name, percentage, inclusive)
                if cached is not None:
                    return cached.id

            self._cache.tax_rates = await self._gateway.list_tax_rates()
            existing = _find(self._cache.tax_rates, name, percentage, inclusive)
            if existing is not None:
                return existing.id

            created = await self._gateway.create_tax_rate(name, percentage, inclusive)
            self._cache.tax_rates.append(created)
            logger.info(
                "Created tax rate %s (%s %s%%, inclusive=%s)",
                created.id,
                name,
                percentage,
                inclusive,
            )
            return created.id
