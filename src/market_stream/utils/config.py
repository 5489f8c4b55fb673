from __future__ import annotations

import json
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, ValidationError, field_validator

from market_stream.exceptions.core import ConfigError
from market_stream.utils.timer import to_interval_ms
from market_stream.view.ranked import SortConfig


class DeltaPolicy(BaseModel):
    """
    Precision and degenerate-input policy for per-tick deltas.

    round_digits: digits kept on derived_delta / derived_delta_percent
        (None stores full precision).
    zero_base_percent: percent reported when the pre-update value is 0.
    """

    round_digits: Optional[int] = Field(default=2, ge=0)
    zero_base_percent: float = 0.0


class StreamConfig(BaseModel):
    window_capacity: int = Field(default=100, gt=0, description="Samples retained per entity.")
    flush_interval_ms: int = Field(default=250, gt=0, description="Coalescer window.")
    label_count: int = Field(default=5, gt=0)
    label_timezone: str = "UTC"
    delta: DeltaPolicy = Field(default_factory=DeltaPolicy)
    default_sort: SortConfig = Field(default_factory=lambda: SortConfig(field="size_metric", direction="desc"))

    @field_validator("flush_interval_ms", mode="before")
    @classmethod
    def _parse_interval(cls, v: Any) -> Any:
        if isinstance(v, str):
            ms = to_interval_ms(v)
            if ms is None:
                raise ValueError(f"Invalid interval format: {v!r}")
            return ms
        return v

    @field_validator("label_timezone")
    @classmethod
    def _check_timezone(cls, v: str) -> str:
        _resolve_tz(v)
        return v

    def tz(self) -> tzinfo:
        return _resolve_tz(self.label_timezone)


def _resolve_tz(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def build_config(raw: Mapping[str, Any] | None = None) -> StreamConfig:
    try:
        return StreamConfig.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid stream config: {exc}") from exc


def load_config(path: str | Path | None = None) -> StreamConfig:
    """Load a StreamConfig from a JSON file; None yields the defaults."""
    if path is None:
        return build_config()
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {p}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be an object: {p}")
    return build_config(raw)
