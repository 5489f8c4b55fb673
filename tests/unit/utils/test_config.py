from __future__ import annotations

import json
from datetime import timezone
from pathlib import Path

import pytest

from market_stream.exceptions.core import ConfigError
from market_stream.utils.config import DeltaPolicy, StreamConfig, build_config, load_config
from market_stream.utils.timer import to_interval_ms
from market_stream.view.ranked import SortConfig


def test_defaults() -> None:
    cfg = build_config()
    assert cfg.window_capacity == 100
    assert cfg.flush_interval_ms == 250
    assert cfg.label_count == 5
    assert cfg.tz() is timezone.utc
    assert cfg.delta == DeltaPolicy(round_digits=2, zero_base_percent=0.0)
    assert cfg.default_sort == SortConfig(field="size_metric", direction="desc")


@pytest.mark.parametrize(
    "raw, expected",
    [("250ms", 250), ("1s", 1000), ("0.5s", 500), ("2m", 120_000), ("1h", 3_600_000), ("40", 40), (75, 75)],
)
def test_interval_parsing(raw, expected: int) -> None:
    assert to_interval_ms(raw) == expected
    assert build_config({"flush_interval_ms": raw}).flush_interval_ms == expected


@pytest.mark.parametrize("raw", ["", "fast", "10x", True])
def test_to_interval_ms_rejects_garbage(raw) -> None:
    assert to_interval_ms(raw) is None


@pytest.mark.parametrize(
    "raw",
    [
        {"window_capacity": 0},
        {"window_capacity": -5},
        {"flush_interval_ms": 0},
        {"flush_interval_ms": "soon"},
        {"label_count": 0},
        {"label_timezone": "Mars/Olympus_Mons"},
        {"delta": {"round_digits": -1}},
        {"default_sort": {"field": "ticker"}},
    ],
)
def test_invalid_values_raise_config_error(raw) -> None:
    with pytest.raises(ConfigError):
        build_config(raw)


def test_named_timezone() -> None:
    cfg = build_config({"label_timezone": "America/New_York"})
    assert str(cfg.tz()) == "America/New_York"


def test_load_config_from_file(tmp_path: Path) -> None:
    path = tmp_path / "stream.json"
    path.write_text(json.dumps({"window_capacity": 20, "flush_interval_ms": "100ms", "delta": {"round_digits": None}}))
    cfg = load_config(path)
    assert isinstance(cfg, StreamConfig)
    assert cfg.window_capacity == 20
    assert cfg.flush_interval_ms == 100
    assert cfg.delta.round_digits is None


def test_load_config_none_gives_defaults() -> None:
    assert load_config(None) == StreamConfig()


def test_shipped_stream_config_matches_defaults() -> None:
    path = Path(__file__).resolve().parents[3] / "configs" / "stream.json"
    assert load_config(path) == StreamConfig()


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(bad)

    arr = tmp_path / "arr.json"
    arr.write_text("[1, 2]")
    with pytest.raises(ConfigError):
        load_config(arr)
