"""Shared test fixtures."""

from __future__ import annotations

import numpy as np
import pytest

DAY = 86_400


class FakeClock:
    """Manually advanced clock for cache and store tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_000_000.0)


@pytest.fixture
def random_walk() -> tuple[list[float], list[float]]:
    """400 bars of a positive random walk with noisy volume."""
    np.random.seed(42)
    n = 400
    closes = 100 + np.cumsum(np.random.randn(n) * 1.5)
    closes = np.maximum(closes, 10)  # keep positive
    volumes = np.random.randint(500_000, 5_000_000, n).astype(float)
    return closes.tolist(), volumes.tolist()


@pytest.fixture
def rise_then_fall() -> tuple[list[float], list[float]]:
    """260 bars: +1 per bar for 200 bars (peak 299), then -4 per bar for 60 bars.

    Volume is flat so the volume component stays neutral.
    """
    rising = [100.0 + t for t in range(200)]
    falling = [299.0 - 4.0 * k for k in range(1, 61)]
    closes = rising + falling
    volumes = [1_000_000.0] * len(closes)
    return closes, volumes


@pytest.fixture
def timestamps_for():
    def _make(n: int, start: int = 1_600_000_000) -> list[int]:
        return [start + i * DAY for i in range(n)]
    return _make
