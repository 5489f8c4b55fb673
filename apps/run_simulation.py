from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone

import numpy as np

from ingestion.simulated.source import SimulatedSource
from ingestion.simulated.universe import seed_universe
from ingestion.worker import FeedWorker
from market_stream.runtime.engine import StreamEngine
from market_stream.utils.config import load_config
from market_stream.utils.logger import get_logger, init_logging, log_info

_LOGGER = get_logger(__name__)


def _make_run_id() -> str:
    return "sim-" + datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _render(engine: StreamEngine, top: int) -> str:
    rows = engine.ranked()[:top]
    lines = [f"{'KEY':<6} {'NAME':<26} {'VALUE':>10} {'CHG%':>7} {'VOLUME':>12}"]
    for e in rows:
        lines.append(
            f"{e.key:<6} {e.display_name[:26]:<26} {e.current_value:>10.2f} "
            f"{e.derived_delta_percent:>7.2f} {e.cumulative_volume:>12d}"
        )
    return "\n".join(lines)


async def main(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    init_logging(args.logging, run_id=_make_run_id(), mode=args.log_profile)

    rng = np.random.default_rng(args.seed)
    engine = StreamEngine(cfg)
    engine.load(seed_universe(rng, points=args.history))
    if args.query:
        engine.view.set_query(args.query)
    if args.sort:
        engine.view.set_sort_field(args.sort)

    def on_flush(updated: frozenset[str]) -> None:
        log_info(_LOGGER, "flush", updated=sorted(updated))
        print(_render(engine, args.top), flush=True)

    engine.start()
    unsubscribe = engine.subscribe(on_flush)

    source = SimulatedSource(
        rng=rng,
        min_step_ms=args.min_step_ms,
        max_step_ms=args.max_step_ms,
        max_steps=args.steps,
        start_prices={e.key: e.current_value for e in engine.entities()},
    )
    worker = FeedWorker(source=source, sink=engine)
    try:
        await worker.run()
        # Let the final pending batch land before teardown.
        await asyncio.sleep(cfg.flush_interval_ms / 1000.0 * 2)
    finally:
        unsubscribe()
        engine.stop()

    for key in [e.key for e in engine.ranked()[:3]]:
        series = engine.series(key)
        if series is None:
            continue
        change = series.price_change()
        log_info(
            _LOGGER,
            "series summary",
            key=key,
            samples=series.size(),
            change=round(change.change, 2),
            change_percent=round(change.change_percent, 2),
            labels=series.labels(cfg.label_count),
        )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulated tick stream -> coalesced ranked view")
    parser.add_argument("--config", default=None, help="stream config JSON (default: built-in defaults)")
    parser.add_argument("--logging", default="configs/logging.json", help="logging profile file")
    parser.add_argument("--log_profile", default=None, help="logging profile name")
    parser.add_argument("--steps", type=int, default=20, help="simulation steps to run")
    parser.add_argument("--min_step_ms", type=int, default=50)
    parser.add_argument("--max_step_ms", type=int, default=150)
    parser.add_argument("--history", type=int, default=50, help="seeded samples per symbol")
    parser.add_argument("--seed", type=int, default=None, help="RNG seed for reproducible runs")
    parser.add_argument("--query", default="", help="search query applied to the ranked view")
    parser.add_argument("--sort", default=None, choices=["value", "delta_percent", "volume", "name", "size_metric"])
    parser.add_argument("--top", type=int, default=10)
    asyncio.run(main(parser.parse_args()))
