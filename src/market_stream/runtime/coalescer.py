from __future__ import annotations

import asyncio
import functools
import inspect
from enum import Enum
from typing import Any, Callable, Dict, Generic, Hashable, TypeVar

from market_stream.utils.logger import (
    get_logger,
    log_data_integrity,
    log_debug,
    log_exception,
)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

FlushFn = Callable[[Dict[Any, Any]], Any]


def _check_interval(interval_ms: int, what: str) -> float:
    interval_ms = int(interval_ms)
    if interval_ms <= 0:
        raise ValueError(f"{what} must be > 0 ms, got {interval_ms}")
    return interval_ms / 1000.0


class CoalescerState(Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"


class UpdateCoalescer(Generic[K, V]):
    """
    Batches per-key updates into at most one flush per interval.

    State machine:
        IDLE --record()--> SCHEDULED (timer armed for interval_ms)
        SCHEDULED --record()--> SCHEDULED (pending[key] overwritten, timer untouched)
        SCHEDULED --timer--> flush(batch), IDLE

    The deadline is fixed by the first record() of a cycle; later records
    never extend it. Timers run on the asyncio event loop, so record() must
    be called from the loop thread (pass `loop` to arm from elsewhere via
    call_soon_threadsafe).
    """

    def __init__(
        self,
        flush: FlushFn,
        interval_ms: int = 250,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str = "coalescer",
    ):
        self._interval_s = _check_interval(interval_ms, "UpdateCoalescer interval")
        self._flush = flush
        self._loop = loop
        self.name = name
        self._pending: Dict[K, V] = {}
        self._handle: asyncio.TimerHandle | None = None
        self._state = CoalescerState.IDLE
        self._flush_count = 0
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = get_logger(__name__)

    @property
    def state(self) -> CoalescerState:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def flush_count(self) -> int:
        return self._flush_count

    @property
    def interval_ms(self) -> int:
        return int(round(self._interval_s * 1000))

    def record(self, key: K, value: V) -> None:
        """O(1): last write wins per key; arms the timer only when idle."""
        if key is None or (isinstance(key, str) and not key.strip()):
            log_data_integrity(self._logger, "coalescer.record_rejected", coalescer=self.name, key=key, reason="empty key")
            return

        self._pending[key] = value
        if self._state is CoalescerState.SCHEDULED:
            return

        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval_s, self._fire)
        self._state = CoalescerState.SCHEDULED
        log_debug(self._logger, "coalescer.armed", coalescer=self.name, interval_ms=self.interval_ms)

    def flush_now(self) -> None:
        """Deliver whatever is pending immediately and disarm the timer."""
        self._cancel_timer()
        self._fire()

    def stop(self) -> None:
        """Cancel the timer and discard pending updates without flushing. Idempotent."""
        dropped = len(self._pending)
        self._cancel_timer()
        self._pending = {}
        self._state = CoalescerState.IDLE
        for task in list(self._tasks):
            task.cancel()
        if dropped:
            log_debug(self._logger, "coalescer.stopped", coalescer=self.name, dropped=dropped)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        # Swap state before the callback so a record() made from inside
        # flush starts a fresh cycle.
        self._handle = None
        batch, self._pending = self._pending, {}
        self._state = CoalescerState.IDLE

        if not batch:
            log_debug(self._logger, "coalescer.empty_fire", coalescer=self.name)
            return

        self._flush_count += 1
        try:
            out = self._flush(batch)
            if inspect.isawaitable(out):
                loop = self._loop or asyncio.get_running_loop()
                task = loop.create_task(out)  # type: ignore[arg-type]
                self._tasks.add(task)
                task.add_done_callback(functools.partial(self._on_flush_done, batch_size=len(batch)))
        except Exception:
            log_exception(self._logger, "coalescer.flush_error", coalescer=self.name, batch_size=len(batch))
            raise

    def _on_flush_done(self, task: asyncio.Task[Any], *, batch_size: int) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        try:
            task.result()
        except Exception:
            log_exception(self._logger, "coalescer.flush_error", coalescer=self.name, batch_size=batch_size)


class Throttle:
    """
    At most one call to `fn` per interval.

    The first call in a quiet period runs immediately and opens a window.
    Calls inside the window only remember their arguments (last one wins);
    when the window closes, fn runs once with those arguments and a new
    window opens, so two runs are never closer than the interval.
    Arguments are forwarded as-is, never merged.
    """

    def __init__(self, fn: Callable[..., Any], interval_ms: int, *, loop: asyncio.AbstractEventLoop | None = None):
        self._interval_s = _check_interval(interval_ms, "throttle interval")
        self._fn = fn
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._trailing: tuple[tuple[Any, ...], dict[str, Any]] | None = None

    @property
    def has_pending(self) -> bool:
        return self._trailing is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        if self._handle is not None:
            self._trailing = (args, kwargs)
            return
        self._open_window()
        self._fn(*args, **kwargs)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._trailing = None

    def _open_window(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._interval_s, self._close_window)

    def _close_window(self) -> None:
        self._handle = None
        if self._trailing is None:
            return
        args, kwargs = self._trailing
        self._trailing = None
        self._open_window()
        self._fn(*args, **kwargs)


class Debounce:
    """Runs `fn` once `wait_ms` has passed without another call, with the last call's arguments."""

    def __init__(self, fn: Callable[..., Any], wait_ms: int, *, loop: asyncio.AbstractEventLoop | None = None):
        self._wait_s = _check_interval(wait_ms, "debounce wait")
        self._fn = fn
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._args: tuple[tuple[Any, ...], dict[str, Any]] | None = None

    @property
    def has_pending(self) -> bool:
        return self._handle is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._args = (args, kwargs)
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._args = None

    def _fire(self) -> None:
        self._handle = None
        if self._args is None:
            return
        args, kwargs = self._args
        self._args = None
        self._fn(*args, **kwargs)


def throttle(fn: Callable[..., Any], interval_ms: int, *, loop: asyncio.AbstractEventLoop | None = None) -> Throttle:
    return Throttle(fn, interval_ms, loop=loop)


def debounce(fn: Callable[..., Any], wait_ms: int, *, loop: asyncio.AbstractEventLoop | None = None) -> Debounce:
    return Debounce(fn, wait_ms, loop=loop)
