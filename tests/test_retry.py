"""Tests for exponential backoff on processor calls."""

import pytest

from checkout_bridge.engine import retry
from checkout_bridge.engine.errors import RateLimited, RemoteCallFailed
from checkout_bridge.engine.retry import with_retry


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(retry.asyncio, "sleep", fake_sleep)
    return recorded


def _flaky(*errors, result="ok"):
    """Async callable raising each error in turn, then returning `result`."""
    remaining = list(errors)
    calls = []

    async def call(*args, **kwargs):
        calls.append((args, kwargs))
        if remaining:
            raise remaining.pop(0)
        return result

    call.calls = calls
    return call


@pytest.mark.asyncio
async def test_success_needs_no_retry(sleeps):
    func = _flaky()
    assert await with_retry(func, "pi_1", expand=["latest_charge"]) == "ok"
    assert func.calls == [(("pi_1",), {"expand": ["latest_charge"]})]
    assert sleeps == []


@pytest.mark.asyncio
async def test_transient_errors_back_off_exponentially(sleeps):
    func = _flaky(
        RemoteCallFailed("unavailable", status_code=503),
        RemoteCallFailed("unavailable", status_code=503),
    )

    assert await with_retry(func) == "ok"
    assert len(func.calls) == 3
    assert sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(sleeps):
    func = _flaky(RateLimited(retry_after=3.0))

    assert await with_retry(func) == "ok"
    assert sleeps == [3.0]


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried(sleeps):
    func = _flaky(RemoteCallFailed("No such payment_intent", status_code=404, retriable=False))

    with pytest.raises(RemoteCallFailed) as exc_info:
        await with_retry(func)

    assert exc_info.value.status_code == 404
    assert len(func.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_retries_are_bounded(sleeps):
    errors = [RemoteCallFailed("unavailable", status_code=503) for _ in range(5)]
    func = _flaky(*errors)

    with pytest.raises(RemoteCallFailed):
        await with_retry(func)

    assert len(func.calls) == retry.MAX_RETRIES + 1
    assert len(sleeps) == retry.MAX_RETRIES
