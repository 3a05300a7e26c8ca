"""Tests for trend and volatility feature extractors."""

from __future__ import annotations

import pytest

from signalhub.features.extractors import (
    breakout_bias,
    latest_trend_features,
    latest_volatility_features,
    lookback_return_pct,
    range_position,
    realized_volatility,
    stretch_from_sma,
    trend_efficiency,
)


class TestLookbackReturn:
    def test_percent_change(self):
        closes = [100.0, 105.0, 110.0]
        assert lookback_return_pct(closes, 2, 2) == pytest.approx(10.0)

    def test_insufficient_history(self):
        assert lookback_return_pct([1.0, 2.0], 1, 2) is None

    def test_index_out_of_range(self):
        assert lookback_return_pct([1.0, 2.0, 3.0], 5, 1) is None
        assert lookback_return_pct([1.0, 2.0, 3.0], -1, 1) is None

    def test_non_positive_base(self):
        assert lookback_return_pct([0.0, 2.0], 1, 1) is None

    def test_non_positive_lookback_raises(self):
        with pytest.raises(ValueError):
            lookback_return_pct([1.0, 2.0], 1, 0)


class TestRangePosition:
    def test_at_high_is_one(self):
        assert range_position([1.0, 2.0, 3.0], 2, 3) == 1.0

    def test_at_low_is_zero(self):
        assert range_position([3.0, 2.0, 1.0], 2, 3) == 0.0

    def test_midpoint(self):
        assert range_position([0.0, 10.0, 5.0], 2, 3) == pytest.approx(0.5)

    def test_flat_window_is_half(self):
        assert range_position([4.0] * 5, 4, 5) == 0.5


class TestRealizedVolatility:
    def test_constant_returns_have_zero_vol(self):
        closes = [100.0 * (1.01 ** i) for i in range(30)]
        assert realized_volatility(closes, 29, 20) == pytest.approx(0.0, abs=1e-12)

    def test_population_std(self):
        # returns: +10%, -10% -> mean 0, population std 0.1
        closes = [100.0, 110.0, 99.0]
        assert realized_volatility(closes, 2, 2) == pytest.approx(0.1)

    def test_insufficient(self):
        assert realized_volatility([1.0, 2.0], 1, 5) is None


class TestTrendEfficiency:
    def test_straight_line_is_one(self):
        closes = [float(i) for i in range(20)]
        assert trend_efficiency(closes, 19, 14) == pytest.approx(1.0)

    def test_round_trip_is_zero(self):
        closes = [1.0, 2.0, 3.0, 2.0, 1.0]
        assert trend_efficiency(closes, 4, 4) == pytest.approx(0.0)

    def test_flat_path_is_zero(self):
        assert trend_efficiency([5.0] * 20, 19, 14) == 0.0


class TestBreakoutBias:
    def test_above_trailing_high_is_positive(self):
        closes = [100.0] * 20 + [110.0]
        assert breakout_bias(closes, 20, 20) == pytest.approx(1.0)

    def test_small_breakout_between_half_and_one(self):
        closes = [float(v) for v in range(90, 110)] + [110.0]
        value = breakout_bias(closes, 20, 20)
        assert 0.5 < value < 1.0

    def test_below_trailing_low_is_negative(self):
        closes = [100.0] * 20 + [90.0]
        assert breakout_bias(closes, 20, 20) == pytest.approx(-1.0)

    def test_inside_range_is_centered(self):
        closes = [90.0, 110.0] * 10 + [100.0]
        assert breakout_bias(closes, 20, 20) == pytest.approx(0.0)

    def test_bounded(self, random_walk):
        closes, _ = random_walk
        for i in range(20, len(closes)):
            value = breakout_bias(closes, i, 20)
            assert -1.0 <= value <= 1.0


class TestStretchFromSMA:
    def test_above_mean(self):
        closes = [100.0] * 19 + [120.0]
        # sma = 101 -> (120/101 - 1) * 100
        assert stretch_from_sma(closes, 19, 20) == pytest.approx((120 / 101 - 1) * 100)

    def test_insufficient(self):
        assert stretch_from_sma([1.0] * 5, 4, 20) is None


class TestLatestFeatures:
    def test_long_series_fully_populated(self, random_walk):
        closes, _ = random_walk
        trend = latest_trend_features(closes)
        assert trend.ret20 is not None
        assert trend.ret60 is not None
        assert 0.0 <= trend.range_pos20 <= 1.0
        assert 0.0 <= trend.efficiency14 <= 1.0
        assert latest_volatility_features(closes).stdev20 >= 0

    def test_short_series_is_none(self):
        trend = latest_trend_features([100.0, 101.0])
        assert trend.ret20 is None
        assert trend.ret60 is None
        assert latest_volatility_features([100.0]).stdev20 is None

    def test_empty_series(self):
        assert latest_trend_features([]).ret20 is None
