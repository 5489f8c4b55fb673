from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator

import numpy as np

from ingestion.simulated.universe import DEFAULT_UNIVERSE, InstrumentInfo


class SimulatedSource:
    """
    Async demo feed producing Finnhub-shaped trade payloads ({"s", "p", "t", "v"}).

    Every step it sleeps a random interval in [min_step_ms, max_step_ms],
    then moves 1-3 random symbols by a uniform +/- max_move fraction.
    `max_steps=None` runs until the consumer stops iterating.
    """

    def __init__(
        self,
        *,
        universe: tuple[InstrumentInfo, ...] = DEFAULT_UNIVERSE,
        rng: np.random.Generator | None = None,
        min_step_ms: int = 800,
        max_step_ms: int = 1500,
        max_move: float = 0.01,
        max_steps: int | None = None,
        start_prices: dict[str, float] | None = None,
    ) -> None:
        if not universe:
            raise ValueError("SimulatedSource needs at least one instrument")
        if min_step_ms < 0 or max_step_ms < min_step_ms:
            raise ValueError("step interval must satisfy 0 <= min_step_ms <= max_step_ms")
        self._rng = rng if rng is not None else np.random.default_rng()
        self._symbols = [i.symbol for i in universe]
        self._prices = {i.symbol: float(i.base_price) for i in universe}
        if start_prices:
            self._prices.update({k: float(v) for k, v in start_prices.items() if k in self._prices})
        self._min_step_ms = int(min_step_ms)
        self._max_step_ms = int(max_step_ms)
        self._max_move = float(max_move)
        self._max_steps = max_steps

    def price(self, symbol: str) -> float | None:
        return self._prices.get(symbol)

    def step(self) -> list[dict[str, Any]]:
        """One simulation step: payloads for 1-3 randomly chosen symbols."""
        n = int(self._rng.integers(1, 4))
        out: list[dict[str, Any]] = []
        for _ in range(n):
            symbol = self._symbols[int(self._rng.integers(0, len(self._symbols)))]
            move = float(self._rng.uniform(-self._max_move, self._max_move))
            price = round(self._prices[symbol] * (1.0 + move), 2)
            self._prices[symbol] = price
            out.append({
                "s": symbol,
                "p": price,
                "t": int(time.time() * 1000),
                "v": int(self._rng.integers(5_000, 55_000)),
            })
        return out

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        steps = 0
        while self._max_steps is None or steps < self._max_steps:
            delay_ms = float(self._rng.uniform(self._min_step_ms, self._max_step_ms)) if self._max_step_ms else 0.0
            await asyncio.sleep(delay_ms / 1000.0)
            for payload in self.step():
                yield payload
            steps += 1
