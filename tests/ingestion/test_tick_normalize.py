from __future__ import annotations

import math

import pytest

from ingestion.contracts.tick import canonicalize, normalize_tick
from market_stream.data.series import Sample
from market_stream.exceptions.core import DataError


def test_normalize_finnhub_payload() -> None:
    key, sample = normalize_tick({"s": "AAPL", "p": 178.5, "t": 1_700_000_000_123, "v": 100})
    assert key == "AAPL"
    assert sample == Sample(timestamp=1_700_000_000_123, price=178.5, volume=100)


def test_normalize_canonical_payload_and_seconds_timestamp() -> None:
    key, sample = normalize_tick({"symbol": " MSFT ", "price": "378.90", "timestamp": 1_700_000_000.5})
    assert key == "MSFT"
    assert isinstance(sample.timestamp, int)
    assert sample.timestamp == 1_700_000_000_500
    assert sample.price == 378.9
    assert sample.volume == 0


def test_symbol_argument_overrides_payload() -> None:
    key, _ = normalize_tick({"s": "AAPL", "p": 1, "t": 1}, symbol="GOOGL")
    assert key == "GOOGL"


def test_canonical_keys_win_on_conflict() -> None:
    out = canonicalize({"s": "AAPL", "symbol": "MSFT", "p": 1.0})
    assert out["symbol"] == "MSFT"
    assert out["price"] == 1.0


@pytest.mark.parametrize(
    "payload",
    [
        {"p": 1.0, "t": 1},
        {"s": "", "p": 1.0, "t": 1},
        {"s": "AAPL", "t": 1},
        {"s": "AAPL", "p": 1.0},
        {"s": "AAPL", "p": None, "t": 1},
        {"s": "AAPL", "p": "abc", "t": 1},
        {"s": "AAPL", "p": math.nan, "t": 1},
        {"s": "AAPL", "p": True, "t": 1},
        {"s": "AAPL", "p": 1.0, "t": -5},
        {"s": "AAPL", "p": 1.0, "t": None},
        {"s": "AAPL", "p": 1.0, "t": 1, "v": -1},
        {"s": "AAPL", "p": 1.0, "t": 1, "v": "lots"},
    ],
)
def test_malformed_payloads_raise_data_error(payload) -> None:
    with pytest.raises(DataError):
        normalize_tick(payload)


def test_non_mapping_payload_raises() -> None:
    with pytest.raises(DataError):
        normalize_tick(["AAPL", 1.0, 1])  # type: ignore[arg-type]


def test_module_documents_accepted_shapes() -> None:
    import ingestion.contracts.tick as tick

    assert tick.__doc__ is not None
    assert "finnhub" in tick.__doc__
