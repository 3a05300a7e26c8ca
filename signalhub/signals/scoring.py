"""Composite scorer — folds MA, MACD, RSI and volume into a 0-100 score.

Each component maps its indicator onto points in [-2, +2]. Points are
normalized to [0, 1] via (p + 2) / 4, weighted, summed and scaled to 0-100.
A missing indicator contributes 0 points (neutral) at its full weight.

Profiles tune the mapping per audience: equities read RSI linearly across
30-70, crypto reads it centered across 40-60.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from enum import Enum

from signalhub.config import RSIMode
from signalhub.features.indicators import IndicatorSet

MAX_POINTS = 2.0

COMPONENTS = ("ma", "macd", "rsi", "volume")

DEFAULT_WEIGHTS = {"ma": 0.40, "macd": 0.30, "rsi": 0.20, "volume": 0.10}

# (minimum ratio, points), checked top-down; anything at or below 0.5 is -2
VOLUME_STEPS = ((1.8, 2.0), (1.3, 1.0))
VOLUME_NEUTRAL_FLOOR = 0.7
VOLUME_WEAK_FLOOR = 0.5


class Status(str, Enum):
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"


@dataclass(frozen=True)
class ScoreProfile:
    """Scoring parameters for one audience (equities, crypto, ...)."""
    name: str
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    rsi_mode: RSIMode = RSIMode.LINEAR
    ma_spread_cap: float = 0.20   # |ma50/ma200 - 1| at which MA points saturate
    macd_tolerance: float = 0.005  # |hist/ma50| at which MACD points saturate
    buy_threshold: int = 66
    sell_threshold: int = 33

    def __post_init__(self) -> None:
        missing = [c for c in COMPONENTS if c not in self.weights]
        if missing:
            raise ValueError(f"Profile {self.name!r} is missing weights for {missing}")
        total = sum(self.weights[c] for c in COMPONENTS)
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Profile {self.name!r} weights sum to {total}, expected 1.0")
        if self.ma_spread_cap <= 0 or self.macd_tolerance <= 0:
            raise ValueError(f"Profile {self.name!r} caps must be positive")
        if not 0 <= self.sell_threshold < self.buy_threshold <= 100:
            raise ValueError(
                f"Profile {self.name!r} needs 0 <= sell ({self.sell_threshold}) "
                f"< buy ({self.buy_threshold}) <= 100"
            )


EQUITY_PROFILE = ScoreProfile(name="equity", rsi_mode=RSIMode.LINEAR)
CRYPTO_PROFILE = ScoreProfile(name="crypto", rsi_mode=RSIMode.CENTERED)

PROFILES: dict[str, ScoreProfile] = {
    EQUITY_PROFILE.name: EQUITY_PROFILE,
    CRYPTO_PROFILE.name: CRYPTO_PROFILE,
}


def get_profile(name: str, rsi_mode: RSIMode | str | None = None) -> ScoreProfile:
    """Look up a profile by name, optionally overriding its RSI mode."""
    try:
        profile = PROFILES[name]
    except KeyError:
        raise KeyError(f"Unknown score profile {name!r}; known: {sorted(PROFILES)}") from None
    if rsi_mode is not None and RSIMode(rsi_mode) != profile.rsi_mode:
        profile = replace(profile, rsi_mode=RSIMode(rsi_mode))
    return profile


@dataclass(frozen=True)
class ComponentScore:
    name: str
    weight: float
    points: float
    contribution: float  # share of the final score, in score units


@dataclass(frozen=True)
class ScoreResult:
    score: int
    status: Status
    profile: str
    breakdown: list[ComponentScore]

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "status": self.status.value,
            "profile": self.profile,
            "breakdown": [asdict(c) for c in self.breakdown],
        }


# ---------------------------------------------------------------------------
# Component point mappings
# ---------------------------------------------------------------------------

def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def ma_points(ma50: float | None, ma200: float | None, cap: float = 0.20) -> float:
    if ma50 is None or ma200 is None or ma200 <= 0:
        return 0.0
    spread = _clamp(ma50 / ma200 - 1, -cap, cap)
    return MAX_POINTS * spread / cap


def macd_points(hist: float | None, ma50: float | None, tolerance: float = 0.005) -> float:
    if hist is None:
        return 0.0
    if ma50 is None or ma50 <= 0:
        if hist > 0:
            return 1.0
        if hist < 0:
            return -1.0
        return 0.0
    ratio = hist / ma50
    return MAX_POINTS * _clamp(ratio / tolerance, -1.0, 1.0)


def rsi_points(value: float | None, mode: RSIMode = RSIMode.LINEAR) -> float:
    if value is None:
        return 0.0
    if RSIMode(mode) == RSIMode.CENTERED:
        lo, hi = 40.0, 60.0
    else:
        lo, hi = 30.0, 70.0
    mid = (lo + hi) / 2
    half = (hi - lo) / 2
    return MAX_POINTS * _clamp((value - mid) / half, -1.0, 1.0)


def volume_points(ratio: float | None) -> float:
    if ratio is None:
        return 0.0
    for floor, points in VOLUME_STEPS:
        if ratio >= floor:
            return points
    if ratio > VOLUME_NEUTRAL_FLOOR:
        return 0.0
    if ratio > VOLUME_WEAK_FLOOR:
        return -1.0
    return -2.0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def status_for_score(score: int, profile: ScoreProfile = EQUITY_PROFILE) -> Status:
    if score >= profile.buy_threshold:
        return Status.BUY
    if score <= profile.sell_threshold:
        return Status.SELL
    return Status.HOLD


def score_from_points(
    points: dict[str, float],
    profile: ScoreProfile | None = None,
) -> ScoreResult:
    """Fold per-component points into a score. Missing components count as 0 points."""
    profile = profile or EQUITY_PROFILE
    breakdown: list[ComponentScore] = []
    total = 0.0
    for name in COMPONENTS:
        p = _clamp(float(points.get(name, 0.0)), -MAX_POINTS, MAX_POINTS)
        weight = profile.weights[name]
        normalized = (p + MAX_POINTS) / (2 * MAX_POINTS)
        total += weight * normalized
        breakdown.append(ComponentScore(
            name=name,
            weight=weight,
            points=round(p, 4),
            contribution=round(weight * normalized * 100, 4),
        ))
    # half-up rounding, clamped against float drift
    score = int(_clamp(math.floor(total * 100 + 0.5), 0, 100))
    return ScoreResult(
        score=score,
        status=status_for_score(score, profile),
        profile=profile.name,
        breakdown=breakdown,
    )


def component_points(indicators: IndicatorSet, profile: ScoreProfile) -> dict[str, float]:
    return {
        "ma": ma_points(indicators.ma50, indicators.ma200, profile.ma_spread_cap),
        "macd": macd_points(indicators.macd_hist, indicators.ma50, profile.macd_tolerance),
        "rsi": rsi_points(indicators.rsi14, profile.rsi_mode),
        "volume": volume_points(indicators.volume_ratio),
    }


def compute_score(
    indicators: IndicatorSet,
    profile: ScoreProfile | None = None,
) -> ScoreResult:
    """Score an indicator set. Deterministic; never raises on missing data."""
    profile = profile or EQUITY_PROFILE
    return score_from_points(component_points(indicators, profile), profile)


def signal_strength(result: ScoreResult) -> int | None:
    """Distance from neutral on the signal's own side: BUY -> score, SELL -> 100 - score."""
    if result.status == Status.BUY:
        return result.score
    if result.status == Status.SELL:
        return 100 - result.score
    return None
