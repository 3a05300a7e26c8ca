"""Signal-transition backtest — replays the composite scorer walk-forward.

For every bar ``i >= window_size - 1`` the scorer sees only bars up to ``i``.
An event fires when the status moves into BUY or SELL; the event stays active
until the next status change. Returns are measured from the event close and
reported both raw and direction-aligned (a SELL that is followed by a falling
price has a positive aligned return).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from signalhub.backtest.metrics import ReturnStats, summarize_returns
from signalhub.features.indicators import (
    IndicatorSet,
    compute_indicator_set,
    rolling_indicator_sets,
)
from signalhub.signals.scoring import (
    ScoreProfile,
    ScoreResult,
    Status,
    compute_score,
    signal_strength,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 200
DEFAULT_HORIZONS = (7, 30)
DEFAULT_CONFIRMATION_BARS = 7

UNTIL_NEXT = "until_next"
AFTER_CONFIRMATION = "after_confirmation"

METHODS = ("window", "rolling")


@dataclass(frozen=True)
class StatusPoint:
    """Scorer output at one bar of the replay."""
    index: int
    timestamp: int | None
    close: float
    result: ScoreResult
    indicators: IndicatorSet

    @property
    def status(self) -> Status:
        return self.result.status

    @property
    def score(self) -> int:
        return self.result.score

    @property
    def strength(self) -> int | None:
        return signal_strength(self.result)


@dataclass(frozen=True)
class ForwardReturn:
    exit_index: int
    raw_pct: float
    aligned_pct: float


@dataclass(frozen=True)
class SignalEvent:
    index: int
    timestamp: int | None
    status: Status
    score: int
    close: float
    next_index: int | None
    next_status: Status | None
    bars_held: int
    forward: dict[str, ForwardReturn | None]
    until_next: ForwardReturn | None
    after_confirmation: ForwardReturn | None
    mfe_pct: float | None
    mae_pct: float | None

    @property
    def is_open(self) -> bool:
        return self.next_index is None

    def aligned_return(self, key: str) -> float | None:
        """Aligned return for a horizon key ("7", "30", "until_next", "after_confirmation")."""
        if key == UNTIL_NEXT:
            fr = self.until_next
        elif key == AFTER_CONFIRMATION:
            fr = self.after_confirmation
        else:
            fr = self.forward.get(key)
        return fr.aligned_pct if fr is not None else None

    def to_dict(self) -> dict:
        def _fr(fr: ForwardReturn | None) -> dict | None:
            if fr is None:
                return None
            return {"exit_index": fr.exit_index, "raw_pct": fr.raw_pct, "aligned_pct": fr.aligned_pct}

        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "score": self.score,
            "close": self.close,
            "next_index": self.next_index,
            "next_status": self.next_status.value if self.next_status else None,
            "bars_held": self.bars_held,
            "open": self.is_open,
            "forward": {k: _fr(v) for k, v in self.forward.items()},
            UNTIL_NEXT: _fr(self.until_next),
            AFTER_CONFIRMATION: _fr(self.after_confirmation),
            "mfe_pct": self.mfe_pct,
            "mae_pct": self.mae_pct,
        }


@dataclass
class BacktestResult:
    window_size: int
    horizons: tuple[int, ...]
    bars: int
    events: list[SignalEvent] = field(default_factory=list)
    stats: dict[str, ReturnStats] = field(default_factory=dict)
    points: list[StatusPoint] = field(default_factory=list)
    insufficient_data: bool = False

    @property
    def current(self) -> StatusPoint | None:
        return self.points[-1] if self.points else None

    def to_dict(self, include_events: bool = True) -> dict:
        current = self.current
        out = {
            "window_size": self.window_size,
            "horizons": list(self.horizons),
            "bars": self.bars,
            "insufficient_data": self.insufficient_data,
            "event_count": len(self.events),
            "current": {
                "status": current.status.value,
                "score": current.score,
                "index": current.index,
            } if current else None,
            "stats": {k: v.to_dict() for k, v in self.stats.items()},
        }
        if include_events:
            out["events"] = [e.to_dict() for e in self.events]
        return out


def _pct(start: float, end: float) -> float | None:
    if start <= 0:
        return None
    return (end / start - 1) * 100


def _align(status: Status, raw: float) -> float:
    return -raw if status == Status.SELL else raw


def _forward(closes: Sequence[float], status: Status, entry: int, exit_: int) -> ForwardReturn | None:
    raw = _pct(closes[entry], closes[exit_])
    if raw is None:
        return None
    return ForwardReturn(
        exit_index=exit_,
        raw_pct=round(raw, 4),
        aligned_pct=round(_align(status, raw), 4),
    )


def _validate(closes, volumes, window_size, horizons, timestamps, method) -> None:
    if window_size <= 0:
        raise ValueError(f"window_size must be positive, got {window_size}")
    if any(h <= 0 for h in horizons):
        raise ValueError(f"horizons must be positive, got {list(horizons)}")
    if len(closes) != len(volumes):
        raise ValueError(
            f"closes and volumes must have equal length ({len(closes)} != {len(volumes)})"
        )
    if timestamps is not None and len(timestamps) != len(closes):
        raise ValueError(
            f"timestamps and closes must have equal length ({len(timestamps)} != {len(closes)})"
        )
    if method not in METHODS:
        raise ValueError(f"method must be one of {METHODS}, got {method!r}")


def build_status_series(
    closes: Sequence[float],
    volumes: Sequence[float],
    window_size: int = DEFAULT_WINDOW,
    *,
    profile: ScoreProfile | None = None,
    method: str = "window",
    timestamps: Sequence[int] | None = None,
) -> list[StatusPoint]:
    """Scorer status at every bar ``i >= window_size - 1``, using no data after ``i``.

    ``method="window"`` recomputes the indicator set on the trailing
    ``window_size`` bars (exact, O(N * window)). ``method="rolling"`` uses
    single-pass recurrences seeded from the first bar (O(N)).
    """
    _validate(closes, volumes, window_size, (), timestamps, method)
    closes = [float(c) for c in closes]
    volumes = [float(v) for v in volumes]
    n = len(closes)
    start = window_size - 1
    if n <= start:
        return []

    if method == "rolling":
        indicator_sets = rolling_indicator_sets(closes, volumes, start=start)
    else:
        indicator_sets = [
            compute_indicator_set(closes[i - start:i + 1], volumes[i - start:i + 1])
            for i in range(start, n)
        ]

    points: list[StatusPoint] = []
    for offset, indicators in enumerate(indicator_sets):
        i = start + offset
        points.append(StatusPoint(
            index=i,
            timestamp=int(timestamps[i]) if timestamps is not None else None,
            close=closes[i],
            result=compute_score(indicators, profile),
            indicators=indicators,
        ))
    return points


def _next_change(points: list[StatusPoint]) -> list[int | None]:
    """Position (in ``points``) of the next status change after each point."""
    out: list[int | None] = [None] * len(points)
    for k in range(len(points) - 2, -1, -1):
        if points[k + 1].status != points[k].status:
            out[k] = k + 1
        else:
            out[k] = out[k + 1]
    return out


def _excursions(
    closes: Sequence[float], status: Status, entry: int, last: int,
) -> tuple[float | None, float | None]:
    mfe = mae = None
    for k in range(entry + 1, last + 1):
        raw = _pct(closes[entry], closes[k])
        if raw is None:
            continue
        aligned = _align(status, raw)
        if mfe is None or aligned > mfe:
            mfe = aligned
        if mae is None or aligned < mae:
            mae = aligned
    return (
        round(mfe, 4) if mfe is not None else None,
        round(mae, 4) if mae is not None else None,
    )


def extract_events(
    points: list[StatusPoint],
    closes: Sequence[float],
    horizons: Sequence[int] = DEFAULT_HORIZONS,
    confirmation_bars: int = DEFAULT_CONFIRMATION_BARS,
) -> list[SignalEvent]:
    """Turn a status series into BUY/SELL events with their forward returns.

    The status before the first point is unknown, so no event fires there;
    the earliest event is a change seen at the second point.
    """
    n = len(closes)
    next_change = _next_change(points)
    events: list[SignalEvent] = []
    prev = points[0].status if points else Status.HOLD
    for k, point in enumerate(points):
        status = point.status
        if status != prev and status in (Status.BUY, Status.SELL):
            i = point.index
            nk = next_change[k]
            next_point = points[nk] if nk is not None else None
            next_index = next_point.index if next_point else None
            held = (next_index - i) if next_index is not None else (n - 1 - i)

            def lasted(bars: int) -> bool:
                return next_index is None or next_index - i >= bars

            forward: dict[str, ForwardReturn | None] = {}
            for h in horizons:
                forward[str(h)] = (
                    _forward(closes, status, i, i + h) if i + h < n and lasted(h) else None
                )

            until_next = _forward(closes, status, i, next_index) if next_index is not None else None

            after_confirmation = None
            entry = i + confirmation_bars
            if next_index is not None and lasted(confirmation_bars) and entry < n and entry <= next_index:
                after_confirmation = _forward(closes, status, entry, next_index)

            last = next_index if next_index is not None else n - 1
            mfe, mae = _excursions(closes, status, i, last)

            events.append(SignalEvent(
                index=i,
                timestamp=point.timestamp,
                status=status,
                score=point.score,
                close=point.close,
                next_index=next_index,
                next_status=next_point.status if next_point else None,
                bars_held=held,
                forward=forward,
                until_next=until_next,
                after_confirmation=after_confirmation,
                mfe_pct=mfe,
                mae_pct=mae,
            ))
        prev = status
    return events


def stats_keys(horizons: Sequence[int]) -> list[str]:
    return [str(h) for h in horizons] + [UNTIL_NEXT, AFTER_CONFIRMATION]


def event_stats(events: Sequence[SignalEvent], horizons: Sequence[int]) -> dict[str, ReturnStats]:
    return {
        key: summarize_returns(e.aligned_return(key) for e in events)
        for key in stats_keys(horizons)
    }


def run_backtest(
    closes: Sequence[float],
    volumes: Sequence[float],
    window_size: int = DEFAULT_WINDOW,
    horizons: Sequence[int] = DEFAULT_HORIZONS,
    *,
    profile: ScoreProfile | None = None,
    method: str = "window",
    confirmation_bars: int = DEFAULT_CONFIRMATION_BARS,
    timestamps: Sequence[int] | None = None,
) -> BacktestResult:
    """Replay the scorer over a price history and collect signal events.

    Returns an empty result flagged ``insufficient_data`` when the series has
    fewer than ``window_size + 2`` bars.
    """
    horizons = tuple(int(h) for h in horizons)
    _validate(closes, volumes, window_size, horizons, timestamps, method)
    if confirmation_bars <= 0:
        raise ValueError(f"confirmation_bars must be positive, got {confirmation_bars}")

    n = len(closes)
    if n < window_size + 2:
        return BacktestResult(
            window_size=window_size,
            horizons=horizons,
            bars=n,
            stats=event_stats([], horizons),
            insufficient_data=True,
        )

    points = build_status_series(
        closes, volumes, window_size,
        profile=profile, method=method, timestamps=timestamps,
    )
    closes = [float(c) for c in closes]
    events = extract_events(points, closes, horizons, confirmation_bars)
    return BacktestResult(
        window_size=window_size,
        horizons=horizons,
        bars=n,
        events=events,
        stats=event_stats(events, horizons),
        points=points,
    )


# ---------------------------------------------------------------------------
# Market-level aggregation
# ---------------------------------------------------------------------------

@dataclass
class MarketBacktest:
    horizons: tuple[int, ...]
    instruments: dict[str, dict]
    aggregate: dict[str, ReturnStats]
    eligible: int
    included: int

    def to_dict(self) -> dict:
        return {
            "horizons": list(self.horizons),
            "eligible": self.eligible,
            "included": self.included,
            "instruments": self.instruments,
            "aggregate": {k: v.to_dict() for k, v in self.aggregate.items()},
        }


def aggregate_backtests(
    results: Mapping[str, BacktestResult | None],
    horizons: Sequence[int] = DEFAULT_HORIZONS,
) -> MarketBacktest:
    """Per-instrument stats plus stats pooled over every instrument's events.

    ``None`` (fetch failed) and insufficient-data results are listed but add
    no events.
    """
    horizons = tuple(horizons)
    instruments: dict[str, dict] = {}
    pooled: list[SignalEvent] = []
    included = 0
    for symbol, result in results.items():
        if result is None:
            instruments[symbol] = {"available": False, "insufficient_data": True, "stats": None}
            continue
        instruments[symbol] = {
            "available": True,
            "insufficient_data": result.insufficient_data,
            "event_count": len(result.events),
            "stats": {k: v.to_dict() for k, v in result.stats.items()},
        }
        if not result.insufficient_data:
            included += 1
            pooled.extend(result.events)

    logger.info(
        "Aggregated backtest: %d/%d instruments included, %d events",
        included, len(results), len(pooled),
    )
    return MarketBacktest(
        horizons=horizons,
        instruments=instruments,
        aggregate=event_stats(pooled, horizons),
        eligible=len(results),
        included=included,
    )
