"""Liveness endpoint."""

from fastapi import APIRouter

from checkout_bridge.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "gateway": "mock" if settings.use_mock_gateway else "stripe",
        "test_mode": settings.stripe_test_mode,
    }
