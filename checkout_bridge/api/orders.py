"""
Order checkout and payment operation endpoints.

POST /orders/{id}/checkout          Create a hosted checkout session.
GET  /orders/{id}/payment-status    Re-read remote state and reconcile.
POST /orders/{id}/capture           Capture an authorized payment.
POST /orders/{id}/refund            Refund (and end any subscription).
POST /orders/{id}/cancel            Cancel, or refund once captured.
GET  /orders/{id}                   Order with transaction state.
GET  /orders/{id}/trace             Full audit trail for an order.
"""

import json
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_bridge.api.deps import get_provider, get_provider_settings, get_provider_urls
from checkout_bridge.database import get_session
from checkout_bridge.engine.errors import AmountOverflowError, RemoteCallFailed
from checkout_bridge.engine.transactions import get_order, run_api_operation, start_checkout
from checkout_bridge.models.order import AuditLog, Order
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.providers.base import ApiResult, PaymentProvider, ProviderUrls

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderLineDetail(BaseModel):
    name: str
    quantity: Decimal
    total_price_with_tax: Decimal
    tax_rate: Decimal
    properties: dict[str, str]


class OrderDetail(BaseModel):
    id: str
    order_number: str
    currency_code: str
    transaction_amount: Decimal
    customer_email: Optional[str]
    payment_status: str
    transaction_id: Optional[str]
    amount_authorized: Optional[Decimal]
    properties: dict[str, str]
    lines: list[OrderLineDetail]
    notes: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class CheckoutResponse(BaseModel):
    order_id: str
    redirect_url: Optional[str]
    form_action: str
    form_method: str
    form_attributes: dict[str, str]
    js_files: list[str]
    js: list[str]
    metadata: dict[str, str]


class OperationResponse(BaseModel):
    order_id: str
    operation: str
    outcome: str  # "applied", "noop", "nothing_to_do"
    payment_status: str
    transaction_id: Optional[str]


class AuditEntry(BaseModel):
    id: int
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class OrderTrace(BaseModel):
    order: OrderDetail
    audit_trail: list[AuditEntry]


def _order_to_detail(o: Order) -> OrderDetail:
    return OrderDetail(
        id=o.id,
        order_number=o.order_number,
        currency_code=o.currency_code,
        transaction_amount=o.transaction_amount,
        customer_email=o.customer_email,
        payment_status=o.payment_status,
        transaction_id=o.transaction_id,
        amount_authorized=o.amount_authorized,
        properties=o.properties,
        lines=[
            OrderLineDetail(
                name=line.name,
                quantity=line.quantity,
                total_price_with_tax=line.total_price_with_tax,
                tax_rate=line.tax_rate,
                properties=line.properties,
            )
            for line in o.lines
        ],
        notes=o.notes,
        created_at=o.created_at.isoformat() if o.created_at else None,
        updated_at=o.updated_at.isoformat() if o.updated_at else None,
    )


async def _get_order_or_404(session: AsyncSession, order_id: str) -> Order:
    order = await get_order(session, order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return order


def _outcome(result: Optional[ApiResult]) -> str:
    if result is None:
        return "nothing_to_do"
    return "noop" if result.is_empty else "applied"


async def _run(
    operation: str,
    order_id: str,
    session: AsyncSession,
    provider: PaymentProvider,
    provider_settings: StripeCheckoutSettings,
    urls: ProviderUrls,
) -> OperationResponse:
    order = await _get_order_or_404(session, order_id)
    result = await run_api_operation(session, provider, provider_settings, urls, order, operation)
    return OperationResponse(
        order_id=order.id,
        operation=operation,
        outcome=_outcome(result),
        payment_status=order.payment_status,
        transaction_id=order.transaction_id,
    )


@router.post("/{order_id}/checkout", response_model=CheckoutResponse, status_code=201)
async def create_checkout(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    provider: PaymentProvider = Depends(get_provider),
    provider_settings: StripeCheckoutSettings = Depends(get_provider_settings),
    urls: ProviderUrls = Depends(get_provider_urls),
):
    """
    Create a hosted checkout session for an order.

    The order's payment status stays `initialized` until the processor's
    webhook reports the payment. A processor failure answers 502, and an
    amount outside the processor's minor-unit range answers 422.
    """
    order = await _get_order_or_404(session, order_id)
    try:
        form = await start_checkout(session, provider, provider_settings, urls, order)
    except AmountOverflowError as e:
        raise HTTPException(status_code=422, detail=f"Order amount cannot be charged: {e}")
    except RemoteCallFailed as e:
        raise HTTPException(status_code=502, detail=f"Payment processor error: {e}")

    return CheckoutResponse(
        order_id=order.id,
        redirect_url=form.redirect_url,
        form_action=form.form.action,
        form_method=form.form.method,
        form_attributes=form.form.attributes,
        js_files=form.form.js_files,
        js=form.form.js,
        metadata=form.metadata,
    )


@router.get("/{order_id}/payment-status", response_model=OperationResponse)
async def fetch_payment_status(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    provider: PaymentProvider = Depends(get_provider),
    provider_settings: StripeCheckoutSettings = Depends(get_provider_settings),
    urls: ProviderUrls = Depends(get_provider_urls),
):
    """Re-read the payment from the processor and reconcile the order."""
    return await _run("payment-status", order_id, session, provider, provider_settings, urls)


@router.post("/{order_id}/capture", response_model=OperationResponse)
async def capture_payment(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    provider: PaymentProvider = Depends(get_provider),
    provider_settings: StripeCheckoutSettings = Depends(get_provider_settings),
    urls: ProviderUrls = Depends(get_provider_urls),
):
    return await _run("capture", order_id, session, provider, provider_settings, urls)


@router.post("/{order_id}/refund", response_model=OperationResponse)
async def refund_payment(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    provider: PaymentProvider = Depends(get_provider),
    provider_settings: StripeCheckoutSettings = Depends(get_provider_settings),
    urls: ProviderUrls = Depends(get_provider_urls),
):
    return await _run("refund", order_id, session, provider, provider_settings, urls)


@router.post("/{order_id}/cancel", response_model=OperationResponse)
async def cancel_payment(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    provider: PaymentProvider = Depends(get_provider),
    provider_settings: StripeCheckoutSettings = Depends(get_provider_settings),
    urls: ProviderUrls = Depends(get_provider_urls),
):
    return await _run("cancel", order_id, session, provider, provider_settings, urls)


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order_detail(order_id: str, session: AsyncSession = Depends(get_session)):
    """Get a single order with its transaction state."""
    order = await _get_order_or_404(session, order_id)
    return _order_to_detail(order)


@router.get("/{order_id}/trace", response_model=OrderTrace)
async def get_order_trace(order_id: str, session: AsyncSession = Depends(get_session)):
    """
    Full audit trail for an order.

    Returns the order plus every audit log entry, ordered chronologically.
    """
    order = await _get_order_or_404(session, order_id)

    result = await session.execute(
        select(AuditLog)
        .where(AuditLog.order_id == order_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )
    logs = result.scalars().all()

    audit_trail = []
    for log in logs:
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            action=log.action,
            details=details,
            timestamp=log.timestamp.isoformat() if log.timestamp else None,
        ))

    return OrderTrace(order=_order_to_detail(order), audit_trail=audit_trail)
