"""Tests for the composite scorer."""

from __future__ import annotations

import pytest

from signalhub.config import RSIMode
from signalhub.features.indicators import IndicatorSet, compute_indicator_set
from signalhub.signals.scoring import (
    CRYPTO_PROFILE,
    EQUITY_PROFILE,
    ScoreProfile,
    Status,
    compute_score,
    get_profile,
    ma_points,
    macd_points,
    rsi_points,
    score_from_points,
    signal_strength,
    status_for_score,
    volume_points,
)

ALL = ("ma", "macd", "rsi", "volume")


# ---------------------------------------------------------------------------
# Boundary law
# ---------------------------------------------------------------------------

class TestBoundaries:
    def test_all_max_is_100_buy(self):
        result = score_from_points({c: 2.0 for c in ALL})
        assert result.score == 100
        assert result.status == Status.BUY

    def test_all_min_is_0_sell(self):
        result = score_from_points({c: -2.0 for c in ALL})
        assert result.score == 0
        assert result.status == Status.SELL

    def test_all_neutral_is_50_hold(self):
        result = score_from_points({c: 0.0 for c in ALL})
        assert result.score == 50
        assert result.status == Status.HOLD

    def test_out_of_range_points_are_clamped(self):
        assert score_from_points({c: 9.0 for c in ALL}).score == 100
        assert score_from_points({c: -9.0 for c in ALL}).score == 0

    def test_missing_components_are_neutral(self):
        assert score_from_points({}).score == 50

    def test_weighted_components(self):
        # ma at +1: 0.4 * 0.75 + 0.6 * 0.5 = 0.6
        assert score_from_points({"ma": 1.0}).score == 60
        assert score_from_points({"volume": 2.0}).score == 55

    def test_breakdown_sums_to_score(self):
        result = score_from_points({"ma": 1.2, "macd": -0.4, "rsi": 2.0, "volume": -1.0})
        total = sum(c.contribution for c in result.breakdown)
        assert abs(total - result.score) <= 0.5
        assert [c.name for c in result.breakdown] == list(ALL)


class TestStatusThresholds:
    @pytest.mark.parametrize("score,status", [
        (100, Status.BUY),
        (66, Status.BUY),
        (65, Status.HOLD),
        (34, Status.HOLD),
        (33, Status.SELL),
        (0, Status.SELL),
    ])
    def test_thresholds(self, score, status):
        assert status_for_score(score) == status

    def test_strength(self):
        buy = score_from_points({c: 2.0 for c in ALL})
        sell = score_from_points({c: -2.0 for c in ALL})
        hold = score_from_points({})
        assert signal_strength(buy) == 100
        assert signal_strength(sell) == 100
        assert signal_strength(hold) is None


# ---------------------------------------------------------------------------
# Component mappings
# ---------------------------------------------------------------------------

class TestMAPoints:
    def test_golden_spread_saturates(self):
        assert ma_points(130.0, 100.0) == pytest.approx(2.0)

    def test_death_spread_saturates(self):
        assert ma_points(70.0, 100.0) == pytest.approx(-2.0)

    def test_linear_inside_cap(self):
        assert ma_points(110.0, 100.0) == pytest.approx(1.0)

    def test_missing_is_neutral(self):
        assert ma_points(None, 100.0) == 0.0
        assert ma_points(100.0, None) == 0.0


class TestMACDPoints:
    def test_scaled_by_price(self):
        # hist / ma50 = 0.0025 -> half of the tolerance -> +1
        assert macd_points(0.25, 100.0) == pytest.approx(1.0)

    def test_saturates(self):
        assert macd_points(-5.0, 100.0) == pytest.approx(-2.0)

    def test_sign_only_without_ma(self):
        assert macd_points(0.3, None) == 1.0
        assert macd_points(-0.3, None) == -1.0
        assert macd_points(0.0, None) == 0.0

    def test_missing_is_neutral(self):
        assert macd_points(None, 100.0) == 0.0


class TestRSIPoints:
    @pytest.mark.parametrize("value,expected", [
        (30.0, -2.0), (50.0, 0.0), (70.0, 2.0), (60.0, 1.0), (10.0, -2.0), (95.0, 2.0),
    ])
    def test_linear(self, value, expected):
        assert rsi_points(value, RSIMode.LINEAR) == pytest.approx(expected)

    @pytest.mark.parametrize("value,expected", [
        (40.0, -2.0), (50.0, 0.0), (60.0, 2.0), (55.0, 1.0),
    ])
    def test_centered(self, value, expected):
        assert rsi_points(value, RSIMode.CENTERED) == pytest.approx(expected)

    def test_accepts_string_mode(self):
        assert rsi_points(55.0, "centered") == pytest.approx(1.0)

    def test_missing_is_neutral(self):
        assert rsi_points(None) == 0.0


class TestVolumePoints:
    @pytest.mark.parametrize("ratio,expected", [
        (2.5, 2.0), (1.8, 2.0), (1.5, 1.0), (1.0, 0.0), (0.6, -1.0), (0.5, -2.0), (0.1, -2.0),
    ])
    def test_steps(self, ratio, expected):
        assert volume_points(ratio) == expected

    def test_missing_is_neutral(self):
        assert volume_points(None) == 0.0


# ---------------------------------------------------------------------------
# Indicator sets -> scores
# ---------------------------------------------------------------------------

class TestComputeScore:
    def test_empty_indicators_are_neutral(self):
        result = compute_score(IndicatorSet())
        assert result.score == 50
        assert result.status == Status.HOLD

    def test_bounded_and_deterministic(self, random_walk):
        closes, volumes = random_walk
        for end in range(1, len(closes), 37):
            ind = compute_indicator_set(closes[:end], volumes[:end])
            a = compute_score(ind)
            b = compute_score(ind)
            assert 0 <= a.score <= 100
            assert a == b

    def test_strong_uptrend_is_buy(self):
        closes = [100.0 + t for t in range(220)]
        ind = compute_indicator_set(closes, [1_000_000.0] * 220)
        assert compute_score(ind).status == Status.BUY

    def test_profiles_differ_on_rsi(self):
        ind = IndicatorSet(rsi14=58.0)
        assert compute_score(ind, EQUITY_PROFILE).score < compute_score(ind, CRYPTO_PROFILE).score

    def test_to_dict(self):
        d = compute_score(IndicatorSet(rsi14=70.0)).to_dict()
        assert d["status"] == "HOLD"
        assert d["profile"] == "equity"
        assert len(d["breakdown"]) == 4


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class TestProfiles:
    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            ScoreProfile(name="bad", weights={"ma": 0.5, "macd": 0.5, "rsi": 0.5, "volume": 0.5})

    def test_missing_weight_rejected(self):
        with pytest.raises(ValueError):
            ScoreProfile(name="bad", weights={"ma": 1.0})

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ValueError):
            ScoreProfile(name="bad", buy_threshold=40, sell_threshold=60)

    def test_get_profile(self):
        assert get_profile("equity") is EQUITY_PROFILE
        assert get_profile("crypto").rsi_mode == RSIMode.CENTERED

    def test_get_profile_override(self):
        profile = get_profile("crypto", rsi_mode="linear")
        assert profile.rsi_mode == RSIMode.LINEAR
        assert CRYPTO_PROFILE.rsi_mode == RSIMode.CENTERED

    def test_unknown_profile(self):
        with pytest.raises(KeyError):
            get_profile("forex")
