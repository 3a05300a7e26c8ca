"""Tests for indicator-set assembly."""

from __future__ import annotations

import pytest

from signalhub.features.indicators import (
    DEATH_CROSS,
    GOLDEN_CROSS,
    IndicatorSet,
    compute_indicator_set,
    rolling_indicator_sets,
)


def test_full_history_populates_everything(random_walk):
    closes, volumes = random_walk
    ind = compute_indicator_set(closes, volumes)
    assert ind.ma50 is not None
    assert ind.ma200 is not None
    assert 0 <= ind.rsi14 <= 100
    assert ind.macd_hist == pytest.approx(ind.macd - ind.macd_signal)
    assert ind.volume == volumes[-1]
    assert ind.volume_ratio == pytest.approx(volumes[-1] / ind.volume_avg20)
    assert ind.trend.ret20 is not None
    assert ind.volatility.stdev20 is not None


def test_short_history_is_null_not_error():
    closes = [100.0 + i for i in range(30)]
    ind = compute_indicator_set(closes, [1.0] * 30)
    assert ind.ma50 is None
    assert ind.ma200 is None
    assert ind.macd is None
    assert ind.rsi14 is not None
    assert ind.cross is None


def test_empty_input():
    ind = compute_indicator_set([], [])
    assert ind == IndicatorSet()


def test_mismatched_lengths_raise():
    with pytest.raises(ValueError):
        compute_indicator_set([1.0, 2.0], [1.0])


def test_idempotent_and_does_not_mutate(random_walk):
    closes, volumes = random_walk
    before_c, before_v = list(closes), list(volumes)
    first = compute_indicator_set(closes, volumes)
    second = compute_indicator_set(closes, volumes)
    assert first == second
    assert closes == before_c
    assert volumes == before_v


def test_zero_average_volume_gives_no_ratio():
    closes = [100.0 + i for i in range(40)]
    ind = compute_indicator_set(closes, [0.0] * 40)
    assert ind.volume_avg20 == 0.0
    assert ind.volume_ratio is None


def test_cross_labels():
    assert IndicatorSet(ma50=110.0, ma200=100.0).cross == GOLDEN_CROSS
    assert IndicatorSet(ma50=90.0, ma200=100.0).cross == DEATH_CROSS
    assert IndicatorSet(ma50=100.0, ma200=100.0).cross is None


def test_to_dict_shape(random_walk):
    closes, volumes = random_walk
    d = compute_indicator_set(closes, volumes).to_dict()
    assert set(d) == {"ma", "rsi", "macd", "volume", "trend", "volatility"}
    assert set(d["macd"]) == {"macd", "signal", "hist"}
    assert "ratio" in d["volume"]
    assert "breakout20" in d["trend"]


class TestRollingIndicatorSets:
    def test_matches_prefix_computation(self, random_walk):
        closes, volumes = random_walk
        closes, volumes = closes[:260], volumes[:260]
        start = 199
        rolling = rolling_indicator_sets(closes, volumes, start=start)
        assert len(rolling) == len(closes) - start
        for offset in (0, 1, 30, 60):
            i = start + offset
            expected = compute_indicator_set(closes[:i + 1], volumes[:i + 1])
            got = rolling[offset]
            assert got.ma50 == pytest.approx(expected.ma50)
            assert got.ma200 == pytest.approx(expected.ma200)
            assert got.rsi14 == pytest.approx(expected.rsi14)
            assert got.macd_hist == pytest.approx(expected.macd_hist)
            assert got.volume_ratio == pytest.approx(expected.volume_ratio)
            assert got.trend == expected.trend

    def test_sma_and_features_match_trailing_window(self, random_walk):
        closes, volumes = random_walk
        window = 200
        rolling = rolling_indicator_sets(closes, volumes, start=window - 1)
        i = len(closes) - 1
        trailing = compute_indicator_set(closes[i - window + 1:], volumes[i - window + 1:])
        got = rolling[-1]
        assert got.ma50 == pytest.approx(trailing.ma50)
        assert got.ma200 == pytest.approx(trailing.ma200)
        assert got.volume_avg20 == pytest.approx(trailing.volume_avg20)
        assert got.trend.ret60 == pytest.approx(trailing.trend.ret60)
        assert got.volatility.stdev20 == pytest.approx(trailing.volatility.stdev20)
