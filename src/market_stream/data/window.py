from __future__ import annotations

from collections import deque
from typing import Generic, Iterable, Iterator, TypeVar

from market_stream.utils.logger import get_logger, log_debug

T = TypeVar("T")


class BoundedWindow(Generic[T]):
    """
    Fixed-capacity FIFO buffer with oldest-eviction.

    Invariants:
      - len(window) <= capacity after every append
      - index 0 is always the oldest retained item
    """

    def __init__(self, capacity: int = 100):
        capacity = int(capacity)
        if capacity <= 0:
            raise ValueError(f"BoundedWindow capacity must be > 0, got {capacity}")
        self._capacity = capacity
        self.buffer: deque[T] = deque(maxlen=capacity)
        self._logger = get_logger(__name__)
        log_debug(self._logger, "BoundedWindow initialized", capacity=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, item: T) -> None:
        """Add to the tail; a full window drops exactly one item from the head."""
        self.buffer.append(item)

    def append_all(self, items: Iterable[T]) -> None:
        """Same as repeated append: later items may evict earlier ones from this call."""
        for item in items:
            self.append(item)

    def clear(self) -> None:
        log_debug(self._logger, "BoundedWindow cleared", size=len(self.buffer))
        self.buffer.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all(self) -> list[T]:
        """Copy of the contents, oldest first."""
        return list(self.buffer)

    def recent(self, n: int) -> list[T]:
        """Last min(n, size) items, oldest first."""
        if n <= 0 or not self.buffer:
            return []
        return list(self.buffer)[-n:]

    def latest(self) -> T | None:
        if not self.buffer:
            return None
        return self.buffer[-1]

    def size(self) -> int:
        return len(self.buffer)

    def is_full(self) -> bool:
        return len(self.buffer) >= self._capacity

    def __len__(self) -> int:
        return len(self.buffer)

    def __iter__(self) -> Iterator[T]:
        return iter(self.all())

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={len(self.buffer)}, capacity={self._capacity})"
