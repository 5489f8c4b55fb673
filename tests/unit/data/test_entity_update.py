from __future__ import annotations

import pytest

from market_stream.data.entity import Entity, EntitySeed
from market_stream.utils.config import DeltaPolicy
from tests.helpers.factories import sample


def _entity(value: float = 100.0, capacity: int = 100) -> Entity:
    return Entity.seed("AAPL", "Apple Inc.", base_value=value, capacity=capacity)


def test_apply_updates_all_derived_fields() -> None:
    e = _entity(100.0)
    e.apply(sample(110.0, 1, 500))

    assert e.current_value == 110.0
    assert e.previous_value == 100.0
    assert e.derived_delta == pytest.approx(10.0)
    assert e.derived_delta_percent == pytest.approx(10.0)
    assert e.cumulative_volume == 500
    assert e.range_high == 110.0
    assert e.range_low == 100.0
    assert e.series.prices() == [110.0]


def test_delta_uses_value_before_update() -> None:
    e = _entity(100.0)
    e.apply(sample(110.0, 1))
    e.apply(sample(99.0, 2))
    assert e.previous_value == 110.0
    assert e.derived_delta == pytest.approx(-11.0)
    assert e.derived_delta_percent == pytest.approx(-10.0)
    assert e.range_high == 110.0
    assert e.range_low == 99.0


def test_zero_base_guard_yields_zero_percent() -> None:
    e = _entity(0.0)
    e.apply(sample(5.0, 1))
    assert e.derived_delta == pytest.approx(5.0)
    assert e.derived_delta_percent == 0.0


def test_zero_base_policy_is_configurable() -> None:
    e = _entity(0.0)
    e.apply(sample(5.0, 1), DeltaPolicy(zero_base_percent=-1.0))
    assert e.derived_delta_percent == -1.0


def test_non_zero_base_is_not_affected_by_zero_guard() -> None:
    e = _entity(50.0)
    e.apply(sample(75.0, 1), DeltaPolicy(zero_base_percent=-1.0))
    assert e.derived_delta_percent == pytest.approx(50.0)


def test_default_policy_rounds_to_two_digits() -> None:
    e = _entity(3.0)
    e.apply(sample(4.0, 1))
    assert e.derived_delta_percent == 33.33


def test_full_precision_policy() -> None:
    e = _entity(3.0)
    e.apply(sample(4.0, 1), DeltaPolicy(round_digits=None))
    assert e.derived_delta_percent == pytest.approx(100.0 / 3.0)


def test_series_eviction_follows_capacity() -> None:
    e = _entity(100.0, capacity=2)
    for i, p in enumerate([101.0, 102.0, 103.0]):
        e.apply(sample(p, i, 1))
    assert e.series.prices() == [102.0, 103.0]
    # running totals keep counting evicted samples
    assert e.cumulative_volume == 3
    assert e.range_high == 103.0
    assert e.range_low == 100.0


def test_seed_with_history() -> None:
    history = (sample(100.0, 1, 10), sample(120.0, 2, 20), sample(90.0, 3, 30), sample(110.0, 4, 40))
    e = Entity.from_seed(EntitySeed("MSFT", "Microsoft", base_value=1.0, size_metric=5e9, history=history))

    assert e.current_value == 110.0
    assert e.previous_value == 100.0
    assert e.derived_delta == pytest.approx(10.0)
    assert e.derived_delta_percent == pytest.approx(10.0)
    assert e.cumulative_volume == 100
    assert e.range_high == 120.0
    assert e.range_low == 90.0
    assert e.size_metric == 5e9
    assert e.series.size() == 4


def test_seed_without_history_uses_base_value() -> None:
    e = Entity.seed("V", "Visa", base_value=279.8)
    assert e.current_value == e.previous_value == 279.8
    assert e.range_high == e.range_low == 279.8
    assert e.series.size() == 0


def test_derived_metrics_round_trip_over_retained_samples() -> None:
    prices = [100.0, 101.5, 99.25, 104.0, 102.75, 98.5, 103.25]
    e = _entity(100.0, capacity=4)
    for i, p in enumerate(prices):
        e.apply(sample(p, i * 1000, 1))

    retained = prices[-4:]
    change = e.series.price_change()
    rng = e.series.price_range()
    assert change.change == pytest.approx(retained[-1] - retained[0])
    assert change.change_percent == pytest.approx((retained[-1] - retained[0]) / retained[0] * 100)
    assert rng.min == min(retained)
    assert rng.max == max(retained)


def test_snapshot_is_detached_copy() -> None:
    e = _entity(100.0)
    snap = e.snapshot()
    e.apply(sample(120.0, 1))
    assert snap.current_value == 100.0
    assert e.snapshot().current_value == 120.0
    assert e.snapshot().sample_count == 1


def test_direct_construction_starts_range_at_current_value() -> None:
    e = Entity(key="AAPL", display_name="Apple", current_value=100.0)
    assert (e.range_low, e.range_high) == (100.0, 100.0)

    e.apply(sample(105.0, 1))
    assert e.range_low == 100.0
    assert e.range_high == 105.0

    explicit = Entity(key="X", display_name="X", current_value=10.0, range_low=5.0, range_high=20.0)
    assert (explicit.range_low, explicit.range_high) == (5.0, 20.0)
