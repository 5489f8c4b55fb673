from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable

import pandas as pd

from market_stream.data.window import BoundedWindow
from market_stream.utils.num import safe_pct

FRAME_COLUMNS = ["timestamp", "price", "volume"]


@dataclass(frozen=True)
class Sample:
    """One timestamped price/volume observation (timestamp in epoch ms)."""

    timestamp: int
    price: float
    volume: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "price": self.price,
            "volume": self.volume,
        }


@dataclass(frozen=True)
class PriceChange:
    change: float
    change_percent: float


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float


class PriceSeries(BoundedWindow[Sample]):
    """
    Sliding window of Samples with chart-oriented derived accessors.

    Every accessor is computed from the retained contents at call time;
    after eviction, change/range describe the window, not all-time history.
    """

    def __init__(self, capacity: int = 100, *, tz: tzinfo = timezone.utc):
        super().__init__(capacity)
        self.tz = tz

    @classmethod
    def from_samples(cls, samples: Iterable[Sample], capacity: int = 100, *, tz: tzinfo = timezone.utc) -> "PriceSeries":
        series = cls(capacity, tz=tz)
        series.append_all(samples)
        return series

    def copy(self) -> "PriceSeries":
        return PriceSeries.from_samples(self.buffer, self.capacity, tz=self.tz)

    def prices(self) -> list[float]:
        return [s.price for s in self.buffer]

    def timestamps(self) -> list[int]:
        return [s.timestamp for s in self.buffer]

    def price_change(self) -> PriceChange:
        if len(self.buffer) < 2:
            return PriceChange(0.0, 0.0)
        oldest = self.buffer[0].price
        change = self.buffer[-1].price - oldest
        return PriceChange(change, safe_pct(change, oldest))

    def price_range(self) -> PriceRange:
        prices = self.prices()
        if not prices:
            return PriceRange(0.0, 0.0)
        return PriceRange(min(prices), max(prices))

    def labels(self, count: int = 5) -> list[str]:
        """
        Up to `count` HH:MM labels, sampling every len // count samples
        (stride at least 1) starting from the oldest.
        """
        samples = self.all()
        if not samples or count <= 0:
            return []
        step = max(1, len(samples) // count)
        out: list[str] = []
        for sample in samples[::step]:
            if len(out) == count:
                break
            dt = datetime.fromtimestamp(sample.timestamp / 1000.0, tz=self.tz)
            out.append(dt.strftime("%H:%M"))
        return out

    def to_frame(self) -> pd.DataFrame:
        """Retained samples as a DataFrame (timestamp, price, volume), oldest first."""
        if not self.buffer:
            return pd.DataFrame(columns=FRAME_COLUMNS)
        return pd.DataFrame([s.to_dict() for s in self.buffer], columns=FRAME_COLUMNS)
