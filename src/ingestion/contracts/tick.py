"""
Inbound tick boundary.

The transport layer hands us raw trade payloads; this module is the only
place they are turned into (key, Sample). Two shapes are accepted:

    canonical : {"symbol", "price", "timestamp", "volume"}
    finnhub   : {"s", "p", "t", "v"}

Anything malformed raises DataError so the caller can drop and log it.
"""
from __future__ import annotations

import math
from typing import Any, Mapping

from market_stream.data.series import Sample
from market_stream.exceptions.core import DataError

_KEYMAP: dict[str, str] = {
    "s": "symbol",
    "p": "price",
    "t": "timestamp",
    "v": "volume",
}


def _coerce_epoch_ms(x: Any) -> int:
    """Coerce seconds-or-ms epoch into epoch milliseconds int.

    Heuristic: seconds are ~1e9, ms are ~1e12.
    """
    if x is None:
        raise DataError("timestamp cannot be None")
    if isinstance(x, bool):
        raise DataError("invalid timestamp type: bool")
    try:
        v = float(x)
    except (TypeError, ValueError) as e:
        raise DataError(f"invalid timestamp: {x!r}") from e
    if not math.isfinite(v) or v < 0:
        raise DataError(f"invalid timestamp: {x!r}")
    if v < 10_000_000_000:  # seconds
        return int(round(v * 1000.0))
    return int(round(v))


def _coerce_price(x: Any) -> float:
    if x is None or isinstance(x, bool):
        raise DataError(f"invalid price: {x!r}")
    try:
        v = float(x)
    except (TypeError, ValueError) as e:
        raise DataError(f"invalid price: {x!r}") from e
    if not math.isfinite(v):
        raise DataError(f"price must be finite: {x!r}")
    return v


def _coerce_volume(x: Any) -> int:
    if x is None:
        return 0
    if isinstance(x, bool):
        raise DataError("invalid volume type: bool")
    try:
        v = float(x)
    except (TypeError, ValueError) as e:
        raise DataError(f"invalid volume: {x!r}") from e
    if not math.isfinite(v) or v < 0:
        raise DataError(f"volume must be a non-negative number: {x!r}")
    return int(v)


def canonicalize(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Rename short Finnhub keys to canonical names; canonical keys win on conflict."""
    out: dict[str, Any] = {}
    for k, v in payload.items():
        out.setdefault(_KEYMAP.get(k, k), v)
    for k in ("symbol", "price", "timestamp", "volume"):
        if k in payload:
            out[k] = payload[k]
    return out


def normalize_tick(payload: Mapping[str, Any], *, symbol: str | None = None) -> tuple[str, Sample]:
    """
    Normalize one raw trade payload into (key, Sample).

    Rules:
        - `symbol` argument overrides the payload's symbol
        - price and timestamp are required; volume defaults to 0
        - no enrichment, no inference beyond unit coercion
    """
    if not isinstance(payload, Mapping):
        raise DataError(f"tick payload must be a mapping, got {type(payload).__name__}")

    data = canonicalize(payload)
    key = symbol if symbol is not None else data.get("symbol")
    if not isinstance(key, str) or not key.strip():
        raise DataError(f"tick missing symbol: {payload!r}")
    if "price" not in data:
        raise DataError(f"tick missing price: {payload!r}")
    if "timestamp" not in data:
        raise DataError(f"tick missing timestamp: {payload!r}")

    sample = Sample(
        timestamp=_coerce_epoch_ms(data["timestamp"]),
        price=_coerce_price(data["price"]),
        volume=_coerce_volume(data.get("volume")),
    )
    return key.strip(), sample
