"""Provider circuit breaker — stops hammering a price provider that keeps failing.

After ``failure_threshold`` consecutive failures a provider is skipped for
``cooldown_seconds``; a 429 with Retry-After opens it for at least that long.
Once the cooldown passes one probe call is let through (half-open) and the
first success closes the circuit again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_COOLDOWN_SECONDS = 300  # 5 minutes


class RateLimitError(Exception):
    """Raised when a provider answers 429 Too Many Requests."""

    def __init__(self, provider: str, retry_after: float | None = None):
        self.provider = provider
        self.retry_after = retry_after
        super().__init__(f"Rate limited by {provider}" + (
            f" (retry after {retry_after}s)" if retry_after else ""
        ))


@dataclass
class _ProviderState:
    consecutive_failures: int = 0
    open_until: float = 0.0  # clock value when the circuit re-closes
    total_failures: int = 0
    total_successes: int = 0
    times_opened: int = 0


class APICircuitBreaker:
    """Per-provider circuit breaker with a shared threshold and cooldown."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        self._threshold = failure_threshold
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._providers: dict[str, _ProviderState] = {}

    def _state(self, provider: str) -> _ProviderState:
        return self._providers.setdefault(provider, _ProviderState())

    def is_open(self, provider: str) -> bool:
        """True while the provider should be skipped."""
        state = self._state(provider)
        return state.open_until > 0 and self._clock() < state.open_until

    def record_success(self, provider: str) -> None:
        state = self._state(provider)
        if state.consecutive_failures >= self._threshold:
            logger.info(
                "Circuit closed for %s after %d consecutive failures",
                provider, state.consecutive_failures,
            )
        state.consecutive_failures = 0
        state.open_until = 0.0
        state.total_successes += 1

    def record_failure(self, provider: str, error: BaseException | None = None) -> None:
        """Count a failure; opens the circuit at the threshold or on a 429 with Retry-After."""
        state = self._state(provider)
        state.consecutive_failures += 1
        state.total_failures += 1

        cooldown = None
        if state.consecutive_failures >= self._threshold:
            cooldown = self._cooldown
        if isinstance(error, RateLimitError) and error.retry_after:
            cooldown = max(cooldown or 0.0, error.retry_after)

        if cooldown is not None:
            state.open_until = self._clock() + cooldown
            state.times_opened += 1
            logger.warning(
                "Circuit OPEN for %s: %d consecutive failures — skipping for %.0fs",
                provider, state.consecutive_failures, cooldown,
            )

    def get_stats(self) -> dict[str, dict]:
        return {
            provider: {
                "consecutive_failures": s.consecutive_failures,
                "is_open": self.is_open(provider),
                "times_opened": s.times_opened,
                "total_failures": s.total_failures,
                "total_successes": s.total_successes,
            }
            for provider, s in self._providers.items()
        }
