"""
Checkout Bridge: hosted checkout payments with webhook reconciliation.

Creates processor-hosted checkout sessions for orders, reconciles the
processor's signed webhooks into canonical payment statuses, and exposes
capture, refund, cancel and status polling for authorized payments.

Start the server:
    uvicorn checkout_bridge.main:app --reload

Demo without a processor account:
    USE_MOCK_GATEWAY=true uvicorn checkout_bridge.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from checkout_bridge.api.health import router as health_router
from checkout_bridge.api.orders import router as orders_router
from checkout_bridge.api.webhooks import router as webhooks_router
from checkout_bridge.config import settings
from checkout_bridge.database import init_db

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    await init_db()
    yield


app = FastAPI(
    title="Checkout Bridge",
    description=(
        "Hosted checkout payment provider with signed webhook reconciliation, "
        "canonical payment statuses and an immutable audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(orders_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
