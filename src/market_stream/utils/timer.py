import time
from contextlib import contextmanager

from .logger import get_logger, log_debug


def now_ms() -> int:
    """Wall-clock time as epoch milliseconds int."""
    return int(time.time() * 1000)


@contextmanager
def timed_block(name: str, **context):
    """Profile execution time of a code block."""
    logger = get_logger("market_stream.timer")

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = (time.perf_counter() - start) * 1000  # ms
        log_debug(logger, f"[TIMER] {name}", elapsed_ms=round(elapsed, 3), **context)


def to_interval_ms(interval: str | int | float) -> int | None:
    """Parse '250ms', '1s', '2m', '1h' (or a bare number of ms) into milliseconds."""
    if isinstance(interval, bool):
        return None
    if isinstance(interval, (int, float)):
        return int(interval)
    if not isinstance(interval, str) or not interval.strip():
        return None
    s = interval.strip().lower()
    try:
        if s.endswith("ms"):
            return int(s[:-2])
        if s.endswith("s"):
            return int(float(s[:-1]) * 1000)
        if s.endswith("m"):
            return int(float(s[:-1]) * 60_000)
        if s.endswith("h"):
            return int(float(s[:-1]) * 3_600_000)
        return int(s)
    except ValueError:
        return None


"""
Example usage:
from market_stream.utils.timer import timed_block

with timed_block("flush_apply", batch_size=len(batch)):
    store.apply_batch(batch)
"""
