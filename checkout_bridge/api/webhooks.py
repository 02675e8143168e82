"""
Processor webhook endpoint.

POST /webhooks/stripe   Verify, reconcile and apply a webhook delivery.

Answers 200 when the delivery was processed (or deliberately ignored) and
400 when it was rejected. No other status codes are used; a 400 makes
the processor redeliver later.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from checkout_bridge.api.deps import get_provider, get_provider_settings, get_provider_urls
from checkout_bridge.database import get_session
from checkout_bridge.engine.context import WebhookPayload
from checkout_bridge.engine.transactions import process_webhook
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.providers.base import PaymentProvider, ProviderUrls

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    session: AsyncSession = Depends(get_session),
    provider: PaymentProvider = Depends(get_provider),
    provider_settings: StripeCheckoutSettings = Depends(get_provider_settings),
    urls: ProviderUrls = Depends(get_provider_urls),
):
    body = await request.body()
    result = await process_webhook(
        session,
        provider,
        provider_settings,
        urls,
        WebhookPayload(body=body, signature=stripe_signature),
    )

    content = {"received": result.success}
    if result.transaction_info is not None:
        content["payment_status"] = result.transaction_info.payment_status.value
    return JSONResponse(status_code=result.http_status, content=content)
