"""
Host side of the provider contract.

Loads orders into the read-only snapshots the provider works from, runs
provider operations, and applies their results to the order store:

  1. Snapshot the order (lines and properties included)
  2. Run the provider operation with a fresh per-request context
  3. Merge status, transaction id, authorized amount and metadata
  4. Audit log the outcome (applied, no-op, rejected)

Metadata keys are only ever added or overwritten. Concurrent webhook
deliveries for the same order are applied last-write-wins.
"""

import logging
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from checkout_bridge.audit.logger import append_note, log_event
from checkout_bridge.engine.context import RequestCache, WebhookPayload
from checkout_bridge.engine.errors import PaymentProviderError
from checkout_bridge.models.order import Order
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.models.snapshot import CustomerInfo, OrderLineSnapshot, OrderSnapshot
from checkout_bridge.providers.base import (
    ApiResult,
    CallbackResult,
    PaymentFormResult,
    PaymentProvider,
    PaymentProviderContext,
    ProviderUrls,
)

logger = logging.getLogger("checkout_bridge.transactions")

ProviderResult = Union[ApiResult, CallbackResult]

API_OPERATIONS = {
    "payment-status": ("fetch_payment_status", "payment_status_fetched"),
    "capture": ("capture_payment", "payment_captured"),
    "refund": ("refund_payment", "payment_refunded"),
    "cancel": ("cancel_payment", "payment_cancelled"),
}


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal(0)


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
    """Load an order with its lines (lines are never lazy loaded)."""
    result = await session.execute(
        select(Order).options(selectinload(Order.lines)).where(Order.id == order_id)
    )
    return result.scalar_one_or_none()


def snapshot_from_order(order: Order) -> OrderSnapshot:
    return OrderSnapshot(
        id=order.id,
        order_number=order.order_number,
        currency_code=order.currency_code,
        transaction_amount=_decimal(order.transaction_amount),
        customer=CustomerInfo(
            first_name=order.customer_first_name or "",
            last_name=order.customer_last_name or "",
            email=order.customer_email or "",
        ),
        lines=tuple(
            OrderLineSnapshot(
                name=line.name,
                quantity=_decimal(line.quantity),
                unit_price_with_tax=_decimal(line.unit_price_with_tax),
                unit_price_without_tax=_decimal(line.unit_price_without_tax),
                total_price_with_tax=_decimal(line.total_price_with_tax),
                total_price_without_tax=_decimal(line.total_price_without_tax),
                tax_rate=_decimal(line.tax_rate),
                product_reference=line.product_reference or "",
                properties=line.properties,
            )
            for line in order.lines
        ),
        properties=order.properties,
        language_iso_code=order.language_iso_code,
        billing_country_code=order.billing_country_code,
        amount_authorized=_decimal(order.amount_authorized) if order.amount_authorized is not None else None,
    )


async def load_snapshot(session: AsyncSession, order_id: str) -> Optional[OrderSnapshot]:
    """Immutable snapshot of an order, or None if it does not exist."""
    order = await get_order(session, order_id)
    return snapshot_from_order(order) if order else None


async def apply_transaction_update(
    session: AsyncSession,
    order: Order,
    action: str,
    result: Optional[ProviderResult],
) -> bool:
    """
    Merge a provider result into the order. Returns True if anything changed.

    A None result means the provider had nothing to do and changes
    nothing. An empty result (remote failure) changes nothing either but
    is audited as a no-op so the failed attempt stays visible.
    """
    if result is None:
        return False

    if isinstance(result, CallbackResult) and not result.success:
        return False

    info = result.transaction_info
    if info is None and not result.metadata:
        await log_event(session, f"{action}_noop", order_id=order.id, details={
            "payment_status": order.payment_status,
        })
        return False

    previous_status = order.payment_status

    if info is not None:
        order.payment_status = info.payment_status.value
        if info.transaction_id:
            order.transaction_id = info.transaction_id
        if info.amount_authorized is not None:
            order.amount_authorized = info.amount_authorized

    if result.metadata:
        properties = order.properties
        properties.update(result.metadata)
        order.properties = properties

    if previous_status != order.payment_status:
        order.notes = append_note(order.notes, f"Payment status {previous_status} → {order.payment_status}")

    await log_event(session, action, order_id=order.id, details={
        "from": previous_status,
        "to": order.payment_status,
        "transaction_id": order.transaction_id,
        "metadata_keys": sorted(result.metadata),
    })
    return True


async def start_checkout(
    session: AsyncSession,
    provider: PaymentProvider,
    settings: StripeCheckoutSettings,
    urls: ProviderUrls,
    order: Order,
) -> PaymentFormResult:
    """
    Create the remote checkout for an order and store the returned ids.

    Raises:
        RemoteCallFailed: The checkout could not be created. The failure is
            audited and committed before the error propagates.
    """
    ctx = PaymentProviderContext(snapshot_from_order(order), settings, urls)
    try:
        form = await provider.generate_form(ctx)
    except PaymentProviderError as e:
        await log_event(session, "checkout_failed", order_id=order.id, details={"error": str(e)})
        await session.commit()
        raise

    await apply_transaction_update(session, order, "checkout_created", ApiResult(metadata=form.metadata))
    await session.commit()
    return form


async def run_api_operation(
    session: AsyncSession,
    provider: PaymentProvider,
    settings: StripeCheckoutSettings,
    urls: ProviderUrls,
    order: Order,
    operation: str,
) -> Optional[ApiResult]:
    """Run fetch-status, capture, refund or cancel and apply the result."""
    method_name, action = API_OPERATIONS[operation]

    ctx = PaymentProviderContext(snapshot_from_order(order), settings, urls)
    result: Optional[ApiResult] = await getattr(provider, method_name)(ctx)

    if result is None:
        logger.info("%s on order %s: nothing to do", method_name, order.id)
    await apply_transaction_update(session, order, action, result)
    await session.commit()
    return result


async def process_webhook(
    session: AsyncSession,
    provider: PaymentProvider,
    settings: StripeCheckoutSettings,
    urls: ProviderUrls,
    payload: WebhookPayload,
) -> CallbackResult:
    """
    Match a webhook to its order, process it and apply the outcome.

    The same request cache serves the order lookup and the callback, so
    the delivery is verified and its object fetched only once.
    """
    ctx = PaymentProviderContext(None, settings, urls, RequestCache(), payload)

    order: Optional[Order] = None
    order_id = await provider.get_order_reference(ctx)
    if order_id:
        order = await get_order(session, order_id)
        if order is None:
            logger.warning("Webhook references unknown order %s", order_id)
        else:
            ctx.order = snapshot_from_order(order)

    result = await provider.process_callback(ctx)

    if not result.success:
        await log_event(session, "webhook_rejected", order_id=order.id if order else None)
    elif order is not None:
        await apply_transaction_update(session, order, "callback_processed", result)
    elif result.transaction_info is not None:
        await log_event(session, "webhook_unmatched", details={
            "order_reference": order_id,
            "payment_status": result.transaction_info.payment_status.value,
            "transaction_id": result.transaction_info.transaction_id,
        })

    await session.commit()
    return result
