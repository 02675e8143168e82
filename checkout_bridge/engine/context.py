"""
Per-request state shared by the operations of one inbound call.

A `RequestCache` belongs to exactly one host request. The caller creates
it, threads it through every provider call made while handling that
request, and drops it afterwards. Nothing in here is module-level, so
concurrent webhook deliveries never see each other's events or tax rates.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from checkout_bridge.models.remote import RemoteObject, TaxRate


@dataclass(frozen=True)
class WebhookPayload:
    """Raw webhook body and its signature header, exactly as received."""

    body: bytes
    signature: Optional[str]


@dataclass
class WebhookEvent:
    """A verified webhook envelope with its referenced object re-fetched."""

    id: str
    type: str
    object_id: Optional[str]
    object_type: Optional[str]
    instance: Optional[RemoteObject] = None


@dataclass
class RequestCache:
    webhook_event: Optional[WebhookEvent] = None
    tax_rates: Optional[list[TaxRate]] = None
    event_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    tax_rate_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
