"""Daily price series model and cleaning of raw provider arrays."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class PriceSeries:
    """Aligned daily bars: unix-second timestamps, closes and volumes."""
    timestamps: list[int] = field(default_factory=list)
    closes: list[float] = field(default_factory=list)
    volumes: list[float] = field(default_factory=list)
    source: str = ""

    def __len__(self) -> int:
        return len(self.closes)

    @property
    def empty(self) -> bool:
        return not self.closes

    @property
    def last_timestamp(self) -> int | None:
        return self.timestamps[-1] if self.timestamps else None


def clean_series(
    timestamps: Sequence,
    closes: Sequence,
    volumes: Sequence,
    source: str = "",
) -> PriceSeries:
    """Drop bars without a finite timestamp/close, zero-fill bad volumes,
    sort by time and keep the last bar for a repeated timestamp."""
    if not (len(timestamps) == len(closes) == len(volumes)):
        raise ValueError(
            f"timestamps, closes and volumes must have equal length "
            f"({len(timestamps)}, {len(closes)}, {len(volumes)})"
        )
    if len(closes) == 0:
        return PriceSeries(source=source)

    df = pd.DataFrame({
        "timestamp": pd.to_numeric(pd.Series(list(timestamps), dtype=object), errors="coerce"),
        "close": pd.to_numeric(pd.Series(list(closes), dtype=object), errors="coerce"),
        "volume": pd.to_numeric(pd.Series(list(volumes), dtype=object), errors="coerce"),
    })
    df = df.replace([np.inf, -np.inf], np.nan)
    df = df.dropna(subset=["timestamp", "close"])
    df["volume"] = df["volume"].fillna(0.0)
    df["timestamp"] = df["timestamp"].astype("int64")
    df = df.drop_duplicates(subset="timestamp", keep="last").sort_values("timestamp")

    return PriceSeries(
        timestamps=[int(t) for t in df["timestamp"]],
        closes=[float(c) for c in df["close"]],
        volumes=[float(v) for v in df["volume"]],
        source=source,
    )
