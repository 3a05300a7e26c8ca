"""Bounded retry for outbound fetches — per-attempt timeout, exponential backoff with jitter.

Every provider client funnels its HTTP calls through ``fetch_with_retry`` so
timeouts, 429 handling and retry budgets behave the same everywhere.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from signalhub.data.circuit_breaker import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 8.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 0.4  # seconds: 0.4, 0.8, 1.6
DEFAULT_JITTER = 0.25

# Failures worth another attempt. Anything else (parse errors, bugs) propagates at once.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    httpx.HTTPStatusError,
    RateLimitError,
    asyncio.TimeoutError,
)


def backoff_delay(attempt: int, base: float, jitter: float) -> float:
    """Delay before retry number ``attempt + 1`` (attempt is 0-based)."""
    delay = base * (2 ** attempt)
    if jitter > 0:
        delay += random.uniform(0, delay * jitter)
    return delay


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        # 4xx other than 408/429 will not get better by asking again
        code = exc.response.status_code
        return code >= 500 or code in (408, 429)
    return isinstance(exc, RETRYABLE_ERRORS)


async def fetch_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    jitter: float = DEFAULT_JITTER,
    label: str = "fetch",
) -> T:
    """Await ``operation()`` with a timeout, retrying transient failures.

    Raises the last error once ``max_attempts`` is exhausted.
    """
    if max_attempts <= 0:
        raise ValueError(f"max_attempts must be positive, got {max_attempts}")

    for attempt in range(max_attempts):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except Exception as e:
            if not _is_retryable(e) or attempt == max_attempts - 1:
                raise
            delay = backoff_delay(attempt, backoff_base, jitter)
            if isinstance(e, RateLimitError) and e.retry_after:
                delay = max(delay, e.retry_after)
            logger.warning(
                "%s failed (attempt %d/%d): %s — retrying in %.1fs",
                label, attempt + 1, max_attempts, str(e) or type(e).__name__, delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


def raise_for_rate_limit(resp: httpx.Response, provider: str) -> None:
    """Turn a 429 into ``RateLimitError`` (honoring Retry-After), else raise_for_status."""
    if resp.status_code == 429:
        retry_after = None
        header = resp.headers.get("Retry-After")
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None
        raise RateLimitError(provider, retry_after=retry_after)
    resp.raise_for_status()
