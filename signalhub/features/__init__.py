"""Feature layer — TA primitives, feature extractors and indicator sets."""

from signalhub.features.indicators import IndicatorSet, compute_indicator_set, rolling_indicator_sets
from signalhub.features.extractors import latest_trend_features, latest_volatility_features

__all__ = [
    "IndicatorSet",
    "compute_indicator_set",
    "rolling_indicator_sets",
    "latest_trend_features",
    "latest_volatility_features",
]
