from __future__ import annotations

import time
from dataclasses import dataclass

import numpy as np

from market_stream.data.entity import EntitySeed
from market_stream.data.series import Sample


@dataclass(frozen=True)
class InstrumentInfo:
    symbol: str
    name: str
    base_price: float
    market_cap: float


DEFAULT_UNIVERSE: tuple[InstrumentInfo, ...] = (
    InstrumentInfo("AAPL", "Apple Inc.", 178.50, 2_800_000_000_000),
    InstrumentInfo("GOOGL", "Alphabet Inc.", 141.25, 1_800_000_000_000),
    InstrumentInfo("MSFT", "Microsoft Corporation", 378.90, 2_900_000_000_000),
    InstrumentInfo("AMZN", "Amazon.com Inc.", 178.35, 1_850_000_000_000),
    InstrumentInfo("META", "Meta Platforms Inc.", 505.75, 1_300_000_000_000),
    InstrumentInfo("TSLA", "Tesla Inc.", 248.50, 790_000_000_000),
    InstrumentInfo("NVDA", "NVIDIA Corporation", 875.30, 2_200_000_000_000),
    InstrumentInfo("JPM", "JPMorgan Chase & Co.", 198.45, 580_000_000_000),
    InstrumentInfo("V", "Visa Inc.", 279.80, 560_000_000_000),
    InstrumentInfo("JNJ", "Johnson & Johnson", 156.20, 380_000_000_000),
    InstrumentInfo("WMT", "Walmart Inc.", 165.30, 450_000_000_000),
    InstrumentInfo("PG", "Procter & Gamble Co.", 158.90, 380_000_000_000),
    InstrumentInfo("DIS", "The Walt Disney Company", 112.45, 205_000_000_000),
    InstrumentInfo("NFLX", "Netflix Inc.", 628.50, 280_000_000_000),
    InstrumentInfo("INTC", "Intel Corporation", 45.30, 195_000_000_000),
)

HISTORY_SPACING_MS = 5_000
MIN_PRICE = 1.0


def random_walk_history(
    base_price: float,
    rng: np.random.Generator,
    *,
    points: int = 50,
    now_ms: int | None = None,
    max_step: float = 0.02,
) -> tuple[Sample, ...]:
    """
    `points` samples spaced 5s apart ending just before `now_ms`.

    Each step moves the price by a uniform +/- max_step fraction,
    floored at MIN_PRICE and rounded to cents.
    """
    if points <= 0:
        return ()
    now = int(now_ms if now_ms is not None else time.time() * 1000)
    moves = rng.uniform(-max_step, max_step, size=points)
    volumes = rng.integers(10_000, 110_000, size=points)

    out: list[Sample] = []
    price = float(base_price)
    for i in range(points):
        price = max(price + moves[i] * price, MIN_PRICE)
        out.append(Sample(
            timestamp=now - (points - i) * HISTORY_SPACING_MS,
            price=round(price, 2),
            volume=int(volumes[i]),
        ))
    return tuple(out)


def seed_universe(
    rng: np.random.Generator | None = None,
    *,
    universe: tuple[InstrumentInfo, ...] = DEFAULT_UNIVERSE,
    points: int = 50,
    now_ms: int | None = None,
) -> list[EntitySeed]:
    rng = rng if rng is not None else np.random.default_rng()
    return [
        EntitySeed(
            key=info.symbol,
            display_name=info.name,
            base_value=info.base_price,
            size_metric=info.market_cap,
            history=random_walk_history(info.base_price, rng, points=points, now_ms=now_ms),
        )
        for info in universe
    ]
