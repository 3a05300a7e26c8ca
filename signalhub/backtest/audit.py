"""Strategy audit — simulates simple trading rules on top of the replayed signals.

Five rules are compared: trade every status flip, trade only strong signals
(strength 70+/80+), and trade strong signals that also pass an entry-quality
check built from trend, range, RSI, volume and volatility features.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from enum import Enum

from signalhub.backtest.engine import StatusPoint
from signalhub.backtest.metrics import compute_trade_metrics
from signalhub.features.indicators import IndicatorSet
from signalhub.signals.scoring import Status

logger = logging.getLogger(__name__)

RECENT_TRADES = 5
TOP_ASSETS = 8

# Minimum entry-quality score per strength threshold
MIN_ENTRY_QUALITY = {70: 55, 80: 63}


class Strategy(str, Enum):
    STATUS_FLIP = "status_flip"
    STRENGTH_70 = "strength_70"
    STRENGTH_80 = "strength_80"
    ENTRY_70 = "entry_70"
    ENTRY_80 = "entry_80"


STRATEGY_META = {
    Strategy.STATUS_FLIP: {"label": "Raw status flips", "threshold": 0, "entry_safe": False},
    Strategy.STRENGTH_70: {"label": "Strength 70+", "threshold": 70, "entry_safe": False},
    Strategy.STRENGTH_80: {"label": "Strength 80+", "threshold": 80, "entry_safe": False},
    Strategy.ENTRY_70: {"label": "Entry-safe 70+", "threshold": 70, "entry_safe": True},
    Strategy.ENTRY_80: {"label": "Entry-safe 80+", "threshold": 80, "entry_safe": True},
}


@dataclass(frozen=True)
class EntryQuality:
    score: int
    qualifies: bool


@dataclass(frozen=True)
class AuditPoint:
    index: int
    timestamp: int | None
    close: float
    score: int
    status: Status
    strength: int | None
    entry70: EntryQuality | None
    entry80: EntryQuality | None


@dataclass(frozen=True)
class Trade:
    symbol: str
    strategy: Strategy
    side: Status
    entry_index: int
    exit_index: int
    entry_timestamp: int | None
    exit_timestamp: int | None
    entry_score: int
    exit_score: int
    bars_held: int
    return_pct: float

    def to_dict(self) -> dict:
        d = asdict(self)
        d["strategy"] = self.strategy.value
        d["side"] = self.side.value
        return d


@dataclass(frozen=True)
class OpenPosition:
    symbol: str
    side: Status
    entry_index: int
    entry_timestamp: int | None
    bars_open: int
    return_pct_to_now: float

    def to_dict(self) -> dict:
        d = asdict(self)
        d["side"] = self.side.value
        return d


@dataclass
class AssetAudit:
    symbol: str
    points: list[AuditPoint]
    trades: dict[Strategy, list[Trade]] = field(default_factory=dict)
    open_positions: dict[Strategy, OpenPosition | None] = field(default_factory=dict)


def _score_band(value: float | None, if_missing: float, bands) -> float:
    if value is None:
        return if_missing
    for predicate, points in bands:
        if predicate(value):
            return points
    return 0.0


def entry_quality(
    side: Status,
    strength: int,
    threshold: int,
    indicators: IndicatorSet,
) -> EntryQuality:
    """Rate how clean an entry looks on a 0-100 scale.

    Missing features score half marks so a short history neither blocks nor
    boosts an entry.
    """
    buy = side == Status.BUY
    trend = indicators.trend
    score = 0.0
    max_score = 0.0

    # strength above the threshold (28)
    room = max(1, 100 - threshold)
    max_score += 28
    score += min(28.0, max(0.0, (strength - threshold) / room * 28))

    # short and long trend agreement (18)
    max_score += 18
    score += _score_band(trend.ret20, 5, [
        (lambda r: (r > 0) if buy else (r < 0), 10),
        (lambda r: True, 2),
    ])
    score += _score_band(trend.ret60, 4, [
        (lambda r: (r > 0) if buy else (r < 0), 8),
        (lambda r: True, 2),
    ])

    # position in the 20-bar range and path efficiency (16)
    max_score += 16
    if buy:
        range_bands = [(lambda p: p >= 0.58, 10), (lambda p: p >= 0.48, 6), (lambda p: True, 2)]
    else:
        range_bands = [(lambda p: p <= 0.42, 10), (lambda p: p <= 0.52, 6), (lambda p: True, 2)]
    score += _score_band(trend.range_pos20, 5, range_bands)
    score += 3 if trend.efficiency14 is None else min(1.0, max(0.0, trend.efficiency14)) * 6

    # RSI not stretched against the entry (12)
    max_score += 12
    if buy:
        rsi_bands = [
            (lambda r: 48 <= r <= 69, 12),
            (lambda r: 69 < r <= 75, 6),
            (lambda r: r >= 40, 8),
            (lambda r: True, 2),
        ]
    else:
        rsi_bands = [
            (lambda r: 31 <= r <= 52, 12),
            (lambda r: 25 <= r < 31, 6),
            (lambda r: r <= 60, 8),
            (lambda r: True, 2),
        ]
    score += _score_band(indicators.rsi14, 6, rsi_bands)

    # participation (10)
    max_score += 10
    score += _score_band(indicators.volume_ratio, 5, [
        (lambda v: 0.95 <= v <= 2.2, 10),
        (lambda v: v >= 0.75, 6),
        (lambda v: True, 3),
    ])

    # realized volatility in a tradeable band (16)
    max_score += 16
    score += _score_band(indicators.volatility.stdev20, 8, [
        (lambda s: 0.008 <= s <= 0.09, 16),
        (lambda s: s <= 0.12, 10),
        (lambda s: True, 4),
    ])

    quality = int(score / max_score * 100 + 0.5)
    return EntryQuality(score=quality, qualifies=quality >= MIN_ENTRY_QUALITY[threshold])


def build_audit_points(points: Sequence[StatusPoint]) -> list[AuditPoint]:
    out: list[AuditPoint] = []
    for p in points:
        strength = p.strength
        q70 = q80 = None
        if strength is not None:
            q70 = entry_quality(p.status, strength, 70, p.indicators)
            q80 = entry_quality(p.status, strength, 80, p.indicators)
        out.append(AuditPoint(
            index=p.index,
            timestamp=p.timestamp,
            close=p.close,
            score=p.score,
            status=p.status,
            strength=strength,
            entry70=q70,
            entry80=q80,
        ))
    return out


def is_eligible(point: AuditPoint, strategy: Strategy) -> bool:
    if point.status not in (Status.BUY, Status.SELL):
        return False
    if strategy == Strategy.STATUS_FLIP:
        return True
    if point.strength is None:
        return False
    if strategy == Strategy.STRENGTH_70:
        return point.strength >= 70
    if strategy == Strategy.STRENGTH_80:
        return point.strength >= 80
    if strategy == Strategy.ENTRY_70:
        return point.strength >= 70 and point.entry70 is not None and point.entry70.qualifies
    return point.strength >= 80 and point.entry80 is not None and point.entry80.qualifies


def _aligned_pct(side: Status, entry: float, exit_: float) -> float | None:
    if entry <= 0:
        return None
    raw = (exit_ / entry - 1) * 100
    return -raw if side == Status.SELL else raw


def simulate_strategy(
    symbol: str,
    strategy: Strategy,
    points: Sequence[AuditPoint],
) -> tuple[list[Trade], OpenPosition | None]:
    """Walk the points once, opening on fresh eligibility and closing on exit."""
    trades: list[Trade] = []
    open_: AuditPoint | None = None

    for k, point in enumerate(points):
        eligible = is_eligible(point, strategy)

        if open_ is not None:
            must_exit = point.status != open_.status or (
                strategy != Strategy.STATUS_FLIP and not eligible
            )
            if must_exit:
                ret = _aligned_pct(open_.status, open_.close, point.close)
                if ret is not None:
                    trades.append(Trade(
                        symbol=symbol,
                        strategy=strategy,
                        side=open_.status,
                        entry_index=open_.index,
                        exit_index=point.index,
                        entry_timestamp=open_.timestamp,
                        exit_timestamp=point.timestamp,
                        entry_score=open_.score,
                        exit_score=point.score,
                        bars_held=max(0, point.index - open_.index),
                        return_pct=round(ret, 4),
                    ))
                open_ = None

        if open_ is None and eligible:
            prev = points[k - 1] if k > 0 else None
            continuing = (
                prev is not None
                and prev.status == point.status
                and is_eligible(prev, strategy)
            )
            if not continuing:
                open_ = point

    position = None
    if open_ is not None and points:
        last = points[-1]
        ret = _aligned_pct(open_.status, open_.close, last.close)
        if ret is not None:
            position = OpenPosition(
                symbol=symbol,
                side=open_.status,
                entry_index=open_.index,
                entry_timestamp=open_.timestamp,
                bars_open=max(0, last.index - open_.index),
                return_pct_to_now=round(ret, 4),
            )
    return trades, position


def run_asset_audit(symbol: str, points: Sequence[StatusPoint]) -> AssetAudit:
    audit_points = build_audit_points(points)
    audit = AssetAudit(symbol=symbol, points=audit_points)
    for strategy in Strategy:
        trades, position = simulate_strategy(symbol, strategy, audit_points)
        audit.trades[strategy] = trades
        audit.open_positions[strategy] = position
    return audit


def _trade_order(trade: Trade) -> tuple:
    return (
        trade.exit_timestamp if trade.exit_timestamp is not None else trade.exit_index,
        trade.symbol,
    )


def summarize_strategy(strategy: Strategy, audits: Sequence[AssetAudit]) -> dict:
    """Pooled statistics of one strategy across every audited asset.

    Trades are pooled in exit order so the compounded curve follows time.
    """
    trades = sorted(
        (t for a in audits for t in a.trades.get(strategy, [])),
        key=_trade_order,
    )
    open_positions = [
        a.open_positions[strategy] for a in audits
        if a.open_positions.get(strategy) is not None
    ]
    returns = [t.return_pct for t in trades]
    metrics = compute_trade_metrics(returns)

    per_asset: dict[str, list[float]] = {}
    for t in trades:
        per_asset.setdefault(t.symbol, []).append(t.return_pct)
    top_assets = []
    for symbol, asset_returns in per_asset.items():
        m = compute_trade_metrics(asset_returns)
        top_assets.append({
            "symbol": symbol,
            "closed_trades": m.total_trades,
            "win_rate": m.win_rate,
            "avg_return_pct": m.avg_return_pct,
            "compounded_value": m.compounded_value,
        })
    top_assets.sort(key=lambda r: (-r["closed_trades"], -(r["avg_return_pct"] or 0.0), r["symbol"]))

    meta = STRATEGY_META[strategy]
    return {
        "key": strategy.value,
        "label": meta["label"],
        "closed_trades": metrics.total_trades,
        "wins": sum(1 for r in returns if r > 0),
        "losses": sum(1 for r in returns if r <= 0),
        "win_rate": metrics.win_rate,
        "avg_return_pct": metrics.avg_return_pct,
        "median_return_pct": metrics.median_return_pct,
        "avg_bars_held": round(sum(t.bars_held for t in trades) / len(trades), 2) if trades else None,
        "flat_profit": metrics.flat_profit if trades else None,
        "compounded_value": metrics.compounded_value if trades else None,
        "max_drawdown_pct": metrics.max_drawdown_pct if trades else None,
        "profit_factor": metrics.profit_factor,
        "open_positions": len(open_positions),
        "recent_trades": [t.to_dict() for t in reversed(trades[-RECENT_TRADES:])],
        "top_assets": top_assets[:TOP_ASSETS],
    }


def summarize_market_audit(audits: Sequence[AssetAudit]) -> list[dict]:
    summaries = [summarize_strategy(s, audits) for s in Strategy]
    logger.info(
        "Strategy audit over %d assets: %s",
        len(audits),
        ", ".join(f"{s['key']}={s['closed_trades']}" for s in summaries),
    )
    return summaries
