from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any, Dict, Optional, Sequence

from market_stream.data.series import PriceSeries, Sample
from market_stream.utils.config import DeltaPolicy
from market_stream.utils.num import round_to, safe_pct


@dataclass(frozen=True)
class EntitySeed:
    """Initial description of a tracked key, optionally with pre-seeded history."""

    key: str
    display_name: str
    base_value: float = 0.0
    size_metric: float = 0.0
    history: tuple[Sample, ...] = ()


@dataclass(frozen=True)
class EntitySnapshot:
    """
    Immutable read view of an Entity's scalar state.

    Handed to search / sort / presentation so readers never observe
    an Entity between two steps of an update.
    """

    key: str
    display_name: str
    current_value: float
    previous_value: float
    derived_delta: float
    derived_delta_percent: float
    cumulative_volume: int
    range_high: float
    range_low: float
    size_metric: float
    sample_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "current_value": self.current_value,
            "previous_value": self.previous_value,
            "derived_delta": self.derived_delta,
            "derived_delta_percent": self.derived_delta_percent,
            "cumulative_volume": self.cumulative_volume,
            "range_high": self.range_high,
            "range_low": self.range_low,
            "size_metric": self.size_metric,
            "sample_count": self.sample_count,
        }


@dataclass
class Entity:
    """One tracked instrument: current value, derived deltas, running range and its PriceSeries."""

    key: str
    display_name: str
    current_value: float
    previous_value: float = 0.0
    derived_delta: float = 0.0
    derived_delta_percent: float = 0.0
    cumulative_volume: int = 0
    range_high: Optional[float] = None
    range_low: Optional[float] = None
    size_metric: float = 0.0
    series: PriceSeries = field(default_factory=PriceSeries)

    def __post_init__(self) -> None:
        # An unset range starts at the current value.
        if self.range_high is None:
            self.range_high = float(self.current_value)
        if self.range_low is None:
            self.range_low = float(self.current_value)

    @classmethod
    def seed(
        cls,
        key: str,
        display_name: str,
        *,
        history: Sequence[Sample] = (),
        base_value: float = 0.0,
        size_metric: float = 0.0,
        capacity: int = 100,
        policy: DeltaPolicy | None = None,
        tz: tzinfo = timezone.utc,
    ) -> "Entity":
        """
        Build an Entity from a pre-seeded history.

        With history: current = last price, previous = first price, delta is
        first -> last, volume is summed and the range spans the history.
        Without history every value starts at `base_value`.
        """
        policy = policy or DeltaPolicy()
        series = PriceSeries.from_samples(history, capacity, tz=tz)

        if not history:
            return cls(
                key=key,
                display_name=display_name,
                current_value=float(base_value),
                previous_value=float(base_value),
                range_high=float(base_value),
                range_low=float(base_value),
                size_metric=float(size_metric),
                series=series,
            )

        prices = [s.price for s in history]
        first, last = prices[0], prices[-1]
        delta = last - first
        delta_pct = safe_pct(delta, first, zero_base=policy.zero_base_percent)
        return cls(
            key=key,
            display_name=display_name,
            current_value=last,
            previous_value=first,
            derived_delta=round_to(delta, policy.round_digits),
            derived_delta_percent=round_to(delta_pct, policy.round_digits),
            cumulative_volume=sum(int(s.volume) for s in history),
            range_high=max(prices),
            range_low=min(prices),
            size_metric=float(size_metric),
            series=series,
        )

    @classmethod
    def from_seed(
        cls,
        seed: EntitySeed,
        *,
        capacity: int = 100,
        policy: DeltaPolicy | None = None,
        tz: tzinfo = timezone.utc,
    ) -> "Entity":
        return cls.seed(
            seed.key,
            seed.display_name,
            history=seed.history,
            base_value=seed.base_value,
            size_metric=seed.size_metric,
            capacity=capacity,
            policy=policy,
            tz=tz,
        )

    def apply(self, sample: Sample, policy: DeltaPolicy | None = None) -> None:
        """
        Apply one Sample.

        Deltas are measured against the value held before this sample. The
        caller serializes apply() per Entity (EntityStore holds its lock).
        """
        policy = policy or DeltaPolicy()
        price = float(sample.price)
        base = self.current_value

        self.series.append(sample)

        delta = price - base
        delta_pct = safe_pct(delta, base, zero_base=policy.zero_base_percent)
        self.derived_delta = round_to(delta, policy.round_digits)
        self.derived_delta_percent = round_to(delta_pct, policy.round_digits)

        self.previous_value = base
        self.current_value = price
        self.cumulative_volume += int(sample.volume)
        self.range_high = max(self.range_high, price)
        self.range_low = min(self.range_low, price)

    def snapshot(self) -> EntitySnapshot:
        return EntitySnapshot(
            key=self.key,
            display_name=self.display_name,
            current_value=self.current_value,
            previous_value=self.previous_value,
            derived_delta=self.derived_delta,
            derived_delta_percent=self.derived_delta_percent,
            cumulative_volume=self.cumulative_volume,
            range_high=self.range_high,
            range_low=self.range_low,
            size_metric=self.size_metric,
            sample_count=self.series.size(),
        )
