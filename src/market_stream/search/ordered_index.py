"""
Ordered lookup over entity collections.

Functions here take entity-like objects exposing `key`, `display_name`
and `current_value` (Entity or EntitySnapshot). Inputs documented as
sorted must already be sorted by the matching comparator; nothing here
sorts a second time except `search`, which builds its own name-sorted copy.
"""
from __future__ import annotations

from typing import Any, Callable, Generic, Iterable, Literal, Sequence, TypeVar

from market_stream.utils.logger import get_logger, log_debug

SortBy = Literal["key", "name", "value"]
E = TypeVar("E")

_logger = get_logger(__name__)


def text_collation_key(s: str) -> tuple[str, str]:
    """Case-insensitive ordering with the raw string as a deterministic tiebreak."""
    return (s.casefold(), s)


def key_collation_key(s: str) -> tuple[str, str]:
    # Must agree with find_by_exact_key, which compares upper-cased keys.
    return (s.upper(), s)


def _sort_key(sort_by: SortBy) -> Callable[[Any], Any]:
    if sort_by == "key":
        return lambda e: key_collation_key(e.key)
    if sort_by == "name":
        return lambda e: text_collation_key(e.display_name)
    if sort_by == "value":
        return lambda e: e.current_value
    raise ValueError(f"Unsupported sort_by: {sort_by!r}")


def find_by_exact_key(sorted_entities: Sequence[E], key: str) -> E | None:
    """Binary search on a key-sorted sequence; both sides compared upper-cased."""
    target = key.upper()
    left, right = 0, len(sorted_entities) - 1
    while left <= right:
        mid = (left + right) // 2
        mid_key = sorted_entities[mid].key.upper()  # type: ignore[attr-defined]
        if mid_key == target:
            return sorted_entities[mid]
        if mid_key < target:
            left = mid + 1
        else:
            right = mid - 1
    return None


def find_by_name_prefix(sorted_by_name: Sequence[E], prefix: str) -> list[E]:
    """
    All entities whose name starts with `prefix` (case-insensitive).

    Binary search finds the leftmost match; matches are contiguous in a
    name-sorted input, so a forward scan collects the rest. An empty prefix
    returns the input unchanged.
    """
    if not prefix:
        return list(sorted_by_name)

    needle = prefix.casefold()
    left, right = 0, len(sorted_by_name) - 1
    first_match = -1
    while left <= right:
        mid = (left + right) // 2
        mid_name = sorted_by_name[mid].display_name.casefold()  # type: ignore[attr-defined]
        if mid_name.startswith(needle):
            first_match = mid
            right = mid - 1
        elif mid_name < needle:
            left = mid + 1
        else:
            right = mid - 1

    if first_match == -1:
        return []

    out: list[E] = []
    for entity in sorted_by_name[first_match:]:
        if not entity.display_name.casefold().startswith(needle):  # type: ignore[attr-defined]
            break
        out.append(entity)
    return out


def insertion_index(sorted_entities: Sequence[E], candidate: E, sort_by: SortBy = "key") -> int:
    """Leftmost index keeping order, placed after any existing equals."""
    key_fn = _sort_key(sort_by)
    target = key_fn(candidate)
    left, right = 0, len(sorted_entities)
    while left < right:
        mid = (left + right) // 2
        if target < key_fn(sorted_entities[mid]):
            right = mid
        else:
            left = mid + 1
    return left


def search(entities: Sequence[E], query: str) -> list[E]:
    """
    Three-tier text search.

    1. key prefix over the input, input order kept
    2. name prefix over a name-sorted copy, for entities not already matched
    3. only when 1 and 2 are both empty: substring over name and key, input order
    A blank query returns the input unchanged.
    """
    if not query or not query.strip():
        return list(entities)

    needle = query.strip().casefold()

    key_matches = [e for e in entities if e.key.casefold().startswith(needle)]  # type: ignore[attr-defined]
    by_name = sorted(entities, key=_sort_key("name"))
    name_matches = find_by_name_prefix(by_name, needle)

    seen: set[str] = set()
    results: list[E] = []
    for entity in (*key_matches, *name_matches):
        k = entity.key  # type: ignore[attr-defined]
        if k in seen:
            continue
        seen.add(k)
        results.append(entity)

    if results:
        return results

    fallback = [
        e for e in entities
        if needle in e.display_name.casefold() or needle in e.key.casefold()  # type: ignore[attr-defined]
    ]
    log_debug(_logger, "search fell back to substring scan", query=query, matches=len(fallback))
    return fallback


class OrderedIndex(Generic[E]):
    """
    Sorted read view over entities, maintained by rebuild() or incremental insert().

    Ties keep arrival order: insert() lands after existing equals, rebuild()
    uses a stable sort.
    """

    def __init__(self, sort_by: SortBy = "key", entities: Iterable[E] = ()):
        self._key_fn = _sort_key(sort_by)
        self.sort_by: SortBy = sort_by
        self._items: list[E] = []
        self.rebuild(entities)

    def rebuild(self, entities: Iterable[E]) -> None:
        self._items = sorted(entities, key=self._key_fn)

    def insert(self, entity: E) -> int:
        idx = insertion_index(self._items, entity, self.sort_by)
        self._items.insert(idx, entity)
        return idx

    def find(self, key: str) -> E | None:
        if self.sort_by != "key":
            raise ValueError("find() requires an index sorted by key")
        return find_by_exact_key(self._items, key)

    def prefix(self, name_prefix: str) -> list[E]:
        if self.sort_by != "name":
            raise ValueError("prefix() requires an index sorted by name")
        return find_by_name_prefix(self._items, name_prefix)

    def items(self) -> list[E]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
