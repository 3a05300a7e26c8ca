"""Tests for the signal-transition backtest."""

from __future__ import annotations

import pytest

from signalhub.backtest.engine import (
    AFTER_CONFIRMATION,
    BacktestResult,
    UNTIL_NEXT,
    StatusPoint,
    aggregate_backtests,
    build_status_series,
    event_stats,
    extract_events,
    run_backtest,
)
from signalhub.features.indicators import IndicatorSet
from signalhub.signals.scoring import Status, score_from_points

_POINTS = {
    Status.BUY: {"ma": 2.0, "macd": 2.0, "rsi": 2.0, "volume": 2.0},
    Status.SELL: {"ma": -2.0, "macd": -2.0, "rsi": -2.0, "volume": -2.0},
    Status.HOLD: {},
}


def _points(closes, statuses, start=0):
    """Hand-built status series: ``statuses[k]`` applies to bar ``start + k``."""
    out = []
    for k, status in enumerate(statuses):
        i = start + k
        result = score_from_points(_POINTS[status])
        assert result.status == status
        out.append(StatusPoint(
            index=i, timestamp=None, close=closes[i], result=result, indicators=IndicatorSet(),
        ))
    return out


# ---------------------------------------------------------------------------
# Event extraction on a hand-built status series
# ---------------------------------------------------------------------------

class TestExtractEvents:
    closes = [100.0 + i for i in range(20)]

    def _events(self, statuses, horizons=(3, 30), confirmation_bars=7):
        points = _points(self.closes, statuses)
        return extract_events(points, self.closes, horizons, confirmation_bars)

    def test_transitions_into_buy_and_sell(self):
        statuses = [Status.HOLD] + [Status.BUY] * 9 + [Status.SELL] * 10
        events = self._events(statuses)
        assert [e.status for e in events] == [Status.BUY, Status.SELL]

        buy, sell = events
        assert buy.index == 1
        assert buy.next_index == 10
        assert buy.next_status == Status.SELL
        assert buy.bars_held == 9
        assert not buy.is_open

        assert sell.index == 10
        assert sell.is_open
        assert sell.bars_held == 9

    def test_horizon_returns(self):
        statuses = [Status.HOLD] + [Status.BUY] * 9 + [Status.SELL] * 10
        buy, sell = self._events(statuses)

        assert buy.forward["3"].raw_pct == pytest.approx((104 / 101 - 1) * 100, abs=1e-3)
        assert buy.forward["3"].aligned_pct == buy.forward["3"].raw_pct
        assert buy.forward["30"] is None  # beyond the end of the series

        # SELL: price keeps rising, so the aligned return is negative
        assert sell.forward["3"].raw_pct > 0
        assert sell.forward["3"].aligned_pct == -sell.forward["3"].raw_pct

    def test_until_next_and_after_confirmation(self):
        statuses = [Status.HOLD] + [Status.BUY] * 9 + [Status.SELL] * 10
        buy, sell = self._events(statuses)

        assert buy.until_next.exit_index == 10
        assert buy.until_next.raw_pct == pytest.approx((110 / 101 - 1) * 100, abs=1e-3)
        # confirmation entry at bar 1 + 7 = 8, exit at the next change
        assert buy.after_confirmation.raw_pct == pytest.approx((110 / 108 - 1) * 100, abs=1e-3)

        assert sell.until_next is None
        assert sell.after_confirmation is None
        assert sell.aligned_return(UNTIL_NEXT) is None

    def test_excursions(self):
        statuses = [Status.HOLD] + [Status.BUY] * 9 + [Status.SELL] * 10
        buy, sell = self._events(statuses)
        assert buy.mfe_pct == pytest.approx((110 / 101 - 1) * 100, abs=1e-3)
        assert buy.mae_pct == pytest.approx((102 / 101 - 1) * 100, abs=1e-3)
        assert sell.mfe_pct == pytest.approx(-(111 / 110 - 1) * 100, abs=1e-3)
        assert sell.mae_pct == pytest.approx(-(119 / 110 - 1) * 100, abs=1e-3)

    def test_short_signal_drops_longer_horizons(self):
        statuses = [Status.HOLD, Status.BUY, Status.BUY, Status.HOLD] + [Status.HOLD] * 16
        (buy,) = self._events(statuses)
        assert buy.bars_held == 2
        assert buy.forward["3"] is None
        assert buy.after_confirmation is None
        assert buy.until_next is not None

    def test_series_opening_in_buy_has_no_event(self):
        assert self._events([Status.BUY] * 20) == []

    def test_change_at_second_point_fires(self):
        statuses = [Status.SELL] + [Status.BUY] * 19
        (buy,) = self._events(statuses)
        assert buy.index == 1
        assert buy.is_open

    def test_hold_to_hold_never_fires(self):
        assert self._events([Status.HOLD] * 20) == []

    def test_reentry_after_hold_is_a_new_event(self):
        statuses = [Status.BUY] * 5 + [Status.HOLD] * 5 + [Status.BUY] * 10
        events = self._events(statuses)
        assert [e.index for e in events] == [10]

    def test_to_dict(self):
        statuses = [Status.HOLD] + [Status.BUY] * 19
        (event,) = self._events(statuses)
        d = event.to_dict()
        assert d["status"] == "BUY"
        assert d["open"] is True
        assert set(d["forward"]) == {"3", "30"}
        assert d[AFTER_CONFIRMATION] is None


# ---------------------------------------------------------------------------
# Full replay
# ---------------------------------------------------------------------------

class TestRunBacktest:
    def test_insufficient_data(self):
        closes = [100.0] * 201
        result = run_backtest(closes, [1.0] * 201, window_size=200)
        assert result.insufficient_data
        assert result.events == []
        assert result.current is None
        assert result.stats[UNTIL_NEXT].count == 0

    def test_minimum_length_runs(self):
        closes = [100.0 + i for i in range(202)]
        result = run_backtest(closes, [1.0] * 202, window_size=200)
        assert not result.insufficient_data
        assert [p.index for p in result.points] == [199, 200, 201]

    @pytest.mark.parametrize("method", ["window", "rolling"])
    def test_rise_then_fall(self, rise_then_fall, method):
        closes, volumes = rise_then_fall
        result = run_backtest(closes, volumes, window_size=200, method=method)

        # opens in BUY at the first evaluated bar, which is not a change
        assert result.points[0].index == 199
        assert result.points[0].status == Status.BUY
        assert [e.status for e in result.events] == [Status.SELL]
        (sell,) = result.events

        assert sell.index > 199
        assert sell.is_open
        assert sell.mfe_pct > 0
        assert result.current.status == Status.SELL

        assert result.stats[UNTIL_NEXT].count == 0

    def test_steady_uptrend_has_no_events(self):
        closes = [100.0 + i for i in range(230)]
        volumes = [1000.0] * 230
        result = run_backtest(closes, volumes, window_size=200)
        assert {p.status for p in result.points} == {Status.BUY}
        assert result.events == []

    def test_no_look_ahead(self, random_walk):
        closes, volumes = random_walk
        full = build_status_series(closes[:300], volumes[:300], 200)
        cut = build_status_series(closes[:260], volumes[:260], 200)
        assert len(cut) == 61
        for a, b in zip(cut, full):
            assert a.index == b.index
            assert a.result == b.result

    def test_deterministic(self, random_walk):
        closes, volumes = random_walk
        a = run_backtest(closes[:300], volumes[:300], window_size=200)
        b = run_backtest(closes[:300], volumes[:300], window_size=200)
        assert a.to_dict() == b.to_dict()

    def test_inputs_not_mutated(self, random_walk):
        closes, volumes = random_walk
        before = list(closes)
        run_backtest(closes[:260], volumes[:260], window_size=200)
        assert closes == before

    def test_timestamps_carried(self, rise_then_fall, timestamps_for):
        closes, volumes = rise_then_fall
        stamps = timestamps_for(len(closes))
        result = run_backtest(closes, volumes, timestamps=stamps)
        for event in result.events:
            assert event.timestamp == stamps[event.index]

    def test_to_dict_without_events(self, rise_then_fall):
        closes, volumes = rise_then_fall
        d = run_backtest(closes, volumes).to_dict(include_events=False)
        assert "events" not in d
        assert d["event_count"] == 1
        assert d["current"]["status"] == "SELL"
        assert set(d["stats"]) == {"7", "30", UNTIL_NEXT, AFTER_CONFIRMATION}

    @pytest.mark.parametrize("kwargs", [
        {"window_size": 0},
        {"horizons": (7, 0)},
        {"method": "bogus"},
        {"confirmation_bars": 0},
        {"timestamps": [1, 2, 3]},
    ])
    def test_invalid_arguments(self, kwargs):
        closes = [100.0] * 210
        with pytest.raises(ValueError):
            run_backtest(closes, [1.0] * 210, **kwargs)

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            run_backtest([1.0] * 210, [1.0] * 209)


# ---------------------------------------------------------------------------
# Market aggregation
# ---------------------------------------------------------------------------

def test_aggregate_backtests(rise_then_fall):
    closes, volumes = rise_then_fall
    good = run_backtest(closes, volumes)
    short = run_backtest(closes[:100], volumes[:100])

    market = aggregate_backtests({"AAA": good, "BBB": short, "CCC": None})

    assert market.eligible == 3
    assert market.included == 1
    assert market.instruments["CCC"]["available"] is False
    assert market.instruments["BBB"]["insufficient_data"] is True
    assert market.instruments["AAA"]["event_count"] == 1
    assert market.aggregate[UNTIL_NEXT] == good.stats[UNTIL_NEXT]
    assert market.to_dict()["aggregate"][UNTIL_NEXT]["count"] == 0


def test_aggregate_pools_events():
    closes = [100.0 + i for i in range(20)]
    statuses = [Status.HOLD] + [Status.BUY] * 9 + [Status.HOLD] * 10
    events = extract_events(_points(closes, statuses), closes, (3,))

    def _result():
        return BacktestResult(
            window_size=1, horizons=(3,), bars=20,
            events=list(events), stats=event_stats(events, (3,)),
        )

    market = aggregate_backtests({"A": _result(), "B": _result()}, horizons=(3,))
    assert market.aggregate[UNTIL_NEXT].count == 2
    assert market.aggregate["3"].count == 2
