"""
Exponential backoff retry logic for payment processor calls.

Retries transient failures (connection errors, 429 rate limits, 5xx) with
exponential backoff and a small bounded retry count. Permanent failures
(4xx client errors) are not retried. Every mutating call is sent with an
idempotency key, so a retried POST cannot duplicate a remote effect.
"""

import asyncio
import logging
from typing import Any, Callable, TypeVar

from checkout_bridge.engine.errors import RateLimited, RemoteCallFailed

logger = logging.getLogger("checkout_bridge.retry")

T = TypeVar("T")

RETRIABLE_STATUS_CODES = {429, 500, 502, 503, 504}
MAX_RETRIES = 2
BASE_DELAY = 0.5
MAX_DELAY = 8.0


async def with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Args:
        func: Async callable to execute.
        max_retries: Maximum number of retry attempts.
        base_delay: First backoff interval in seconds.

    Returns:
        The result of the function call.

    Raises:
        RemoteCallFailed: On permanent failure or exhausted retries.
    """
    delay = base_delay
    last_error = None

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except RemoteCallFailed as e:
            last_error = e
            if not e.retriable:
                raise

            if attempt < max_retries:
                sleep_for = min(delay, MAX_DELAY)
                if isinstance(e, RateLimited) and e.retry_after:
                    sleep_for = min(e.retry_after, MAX_DELAY)

                logger.warning(
                    "Retriable error on attempt %d/%d: %s; sleeping %.1fs",
                    attempt + 1,
                    max_retries + 1,
                    e,
                    sleep_for,
                )
                await asyncio.sleep(sleep_for)
                delay = min(delay * 2, MAX_DELAY)
            else:
                logger.error("Exhausted %d retries for processor call: %s", max_retries, e)
                raise

    raise last_error or RemoteCallFailed("Unknown error after retries")
