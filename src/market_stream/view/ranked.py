from __future__ import annotations

from typing import Any, Callable, Dict, Literal, Optional, Sequence, TypeVar

from pydantic import BaseModel

from market_stream.search.ordered_index import search, text_collation_key
from market_stream.utils.logger import get_logger, log_debug

SortField = Literal["value", "delta_percent", "volume", "name", "size_metric"]
SortDirection = Literal["asc", "desc"]
E = TypeVar("E")

_SORT_KEYS: Dict[str, Callable[[Any], Any]] = {
    "value": lambda e: e.current_value,
    "delta_percent": lambda e: e.derived_delta_percent,
    "volume": lambda e: e.cumulative_volume,
    "name": lambda e: text_collation_key(e.display_name),
    "size_metric": lambda e: e.size_metric,
}

# (filter bound prefix, entity attribute)
_RANGE_BOUNDS = (
    ("value", "current_value"),
    ("delta_percent", "derived_delta_percent"),
    ("size_metric", "size_metric"),
)


class SortConfig(BaseModel):
    field: SortField = "size_metric"
    direction: SortDirection = "desc"

    def toggled(self) -> "SortConfig":
        return SortConfig(field=self.field, direction="asc" if self.direction == "desc" else "desc")


class ViewFilters(BaseModel):
    """Text query plus inclusive numeric bounds; None leaves a bound unset."""

    query: str = ""
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    min_delta_percent: Optional[float] = None
    max_delta_percent: Optional[float] = None
    min_size_metric: Optional[float] = None
    max_size_metric: Optional[float] = None


def sort_entities(entities: Sequence[E], config: SortConfig) -> list[E]:
    """Stable sort; equal elements keep input order in both directions."""
    # sorted(reverse=True) preserves the relative order of equal keys.
    return sorted(entities, key=_SORT_KEYS[config.field], reverse=config.direction == "desc")


def filter_entities(entities: Sequence[E], filters: ViewFilters) -> list[E]:
    result = search(entities, filters.query) if filters.query else list(entities)
    for name, attr in _RANGE_BOUNDS:
        lo = getattr(filters, f"min_{name}")
        hi = getattr(filters, f"max_{name}")
        if lo is not None:
            result = [e for e in result if getattr(e, attr) >= lo]
        if hi is not None:
            result = [e for e in result if getattr(e, attr) <= hi]
    return result


class RankedView:
    """
    Materializes the displayable list: search, then range filters, then sort.

    Holds the presentation's current SortConfig / ViewFilters; entity state is
    passed in on every materialize() call.
    """

    def __init__(self, sort: SortConfig | None = None, filters: ViewFilters | None = None):
        self.sort = sort or SortConfig()
        self.filters = filters or ViewFilters()
        self._logger = get_logger(__name__)

    def materialize(self, entities: Sequence[E]) -> list[E]:
        out = sort_entities(filter_entities(entities, self.filters), self.sort)
        log_debug(
            self._logger,
            "RankedView materialized",
            total=len(entities),
            shown=len(out),
            sort_field=self.sort.field,
            direction=self.sort.direction,
        )
        return out

    def set_sort(self, config: SortConfig) -> None:
        self.sort = config

    def set_sort_field(self, field: SortField) -> None:
        self.sort = SortConfig(field=field, direction=self.sort.direction)

    def toggle_direction(self) -> None:
        self.sort = self.sort.toggled()

    def set_query(self, query: str) -> None:
        self.set_filters(query=query)

    def set_filters(self, **changes: Any) -> None:
        """Partial update; unknown filter names raise ValueError."""
        unknown = set(changes) - set(ViewFilters.model_fields)
        if unknown:
            raise ValueError(f"Unknown filter(s): {sorted(unknown)}")
        self.filters = ViewFilters.model_validate({**self.filters.model_dump(), **changes})
