from __future__ import annotations

import asyncio
from typing import Callable, Iterable, Mapping

from market_stream.data.entity import Entity, EntitySeed, EntitySnapshot
from market_stream.data.series import PriceSeries, Sample
from market_stream.runtime.coalescer import UpdateCoalescer
from market_stream.runtime.store import EntityStore
from market_stream.search.ordered_index import OrderedIndex, SortBy
from market_stream.utils.config import StreamConfig
from market_stream.utils.logger import (
    get_logger,
    log_data_integrity,
    log_debug,
    log_error,
    log_exception,
    log_heartbeat,
    log_info,
)
from market_stream.utils.num import is_finite_number
from market_stream.utils.timer import now_ms, timed_block
from market_stream.view.ranked import RankedView

FlushListener = Callable[[frozenset[str]], None]


class StreamEngine:
    """
    Wires the stream core together.

    Inbound (from a transport layer):
      - on_tick(key, sample)            -> coalescer
      - on_connection_change(connected)
      - on_error(error)

    Flush path:
      coalescer batch -> EntityStore.apply_batch -> listeners(updated keys)

    Outbound (to a presentation layer):
      - entities() / get_entity() / history() / series()
      - ranked(): search + range filters + sort over current snapshots
      - subscribe(listener): called once per flush
    """

    def __init__(
        self,
        config: StreamConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.config = config or StreamConfig()
        self.store = EntityStore(self.config.window_capacity, self.config.delta, tz=self.config.tz())
        self.view = RankedView(sort=self.config.default_sort)
        self.coalescer: UpdateCoalescer[str, Sample] = UpdateCoalescer(
            self._apply_flush,
            self.config.flush_interval_ms,
            loop=loop,
            name="ticks",
        )
        self._loop = loop
        self._listeners: list[FlushListener] = []
        self._accepting = True
        self._connected = False
        self._last_error: str | None = None
        self._last_update_ms: int | None = None
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self, seeds: Iterable[EntitySeed]) -> None:
        """Create one Entity per seed (initial snapshot)."""
        tz = self.config.tz()
        self.store.load(
            Entity.from_seed(s, capacity=self.config.window_capacity, policy=self.config.delta, tz=tz)
            for s in seeds
        )
        self._last_update_ms = now_ms()

    def start(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._accepting = True
        log_info(
            self._logger,
            "StreamEngine started",
            entities=len(self.store),
            window_capacity=self.config.window_capacity,
            flush_interval_ms=self.config.flush_interval_ms,
        )

    def stop(self) -> None:
        """Stop accepting ticks and drop anything pending. Idempotent."""
        was_accepting = self._accepting
        self._accepting = False
        self.coalescer.stop()
        if was_accepting:
            log_info(self._logger, "StreamEngine stopped")

    # ------------------------------------------------------------------
    # Inbound callbacks
    # ------------------------------------------------------------------

    def on_tick(self, key: str, sample: Sample) -> bool:
        """Queue a tick for the next flush; malformed input is a logged no-op."""
        if not self._accepting:
            log_debug(self._logger, "tick dropped after stop", key=key)
            return False
        reason = _reject_reason(key, sample)
        if reason is not None:
            log_data_integrity(self._logger, "malformed tick dropped", key=key, reason=reason, payload=repr(sample))
            return False
        self.coalescer.record(key, sample)
        return True

    def on_tick_threadsafe(self, key: str, sample: Sample) -> None:
        """on_tick for producers running outside the event loop thread."""
        if self._loop is None:
            raise RuntimeError("StreamEngine.on_tick_threadsafe requires start() or an explicit loop")
        self._loop.call_soon_threadsafe(self.on_tick, key, sample)

    def on_connection_change(self, connected: bool) -> None:
        if bool(connected) != self._connected:
            log_info(self._logger, "feed connection changed", connected=bool(connected))
        self._connected = bool(connected)

    def on_error(self, error: BaseException | str) -> None:
        self._last_error = str(error)
        log_error(self._logger, "feed error", error=self._last_error, err_type=type(error).__name__)

    def clear_error(self) -> None:
        self._last_error = None

    # ------------------------------------------------------------------
    # Flush path
    # ------------------------------------------------------------------

    def _apply_flush(self, batch: Mapping[str, Sample]) -> None:
        with timed_block("stream_flush", batch_size=len(batch)):
            updated = frozenset(self.store.apply_batch(batch))
        self._last_update_ms = now_ms()
        log_heartbeat(
            self._logger,
            "stream flush",
            component="StreamEngine",
            batch_size=len(batch),
            updated=len(updated),
        )
        for listener in list(self._listeners):
            try:
                listener(updated)
            except Exception:
                # One failing subscriber must not starve the others.
                log_exception(self._logger, "flush listener failed", listener=repr(listener))

    def subscribe(self, listener: FlushListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Outbound accessors
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_update_ms(self) -> int | None:
        return self._last_update_ms

    def entities(self) -> list[EntitySnapshot]:
        return self.store.entities()

    def get_entity(self, key: str) -> EntitySnapshot | None:
        return self.store.get_entity(key)

    def history(self, key: str) -> list[Sample]:
        return self.store.history(key)

    def series(self, key: str) -> PriceSeries | None:
        return self.store.series(key)

    def index(self, sort_by: SortBy = "key") -> OrderedIndex[EntitySnapshot]:
        return OrderedIndex(sort_by, self.store.entities())

    def find(self, key: str) -> EntitySnapshot | None:
        """Case-insensitive key lookup."""
        return self.index("key").find(key)

    def ranked(self) -> list[EntitySnapshot]:
        return self.view.materialize(self.store.entities())


def _reject_reason(key: object, sample: object) -> str | None:
    if not isinstance(key, str) or not key.strip():
        return "key must be a non-empty string"
    if not isinstance(sample, Sample):
        return f"expected Sample, got {type(sample).__name__}"
    if isinstance(sample.timestamp, bool) or not isinstance(sample.timestamp, int):
        return "timestamp must be an int (epoch ms)"
    if not is_finite_number(sample.price):
        return "price must be a finite number"
    if isinstance(sample.volume, bool) or not isinstance(sample.volume, int) or sample.volume < 0:
        return "volume must be a non-negative int"
    return None
