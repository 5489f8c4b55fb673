from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from ingestion.contracts.tick import normalize_tick
from market_stream.data.series import Sample
from market_stream.exceptions.core import DataError
from market_stream.utils.logger import get_logger, log_data_integrity, log_info, log_warn

_LOG_SAMPLE_EVERY = 100


class TickSink(Protocol):
    def on_tick(self, key: str, sample: Sample) -> Any: ...
    def on_connection_change(self, connected: bool) -> Any: ...
    def on_error(self, error: BaseException | str) -> Any: ...


class FeedWorker:
    """Generic feed worker.

    Responsibility:
        raw payload -> normalize_tick -> sink.on_tick(key, sample)

    Non-responsibilities:
        - coalescing / rate limiting (the sink's coalescer owns that)
        - reconnection policy (belongs to the transport behind `source`)

    Source compatibility:
        - async sources: `__aiter__` yielding raw payloads
        - sync sources : `__iter__` yielding raw payloads (control is yielded
          to the loop after every payload)
    """

    def __init__(
        self,
        *,
        source: Any,
        sink: TickSink,
        logger: logging.Logger | None = None,
    ) -> None:
        self._source = source
        self._sink = sink
        self._logger = logger or get_logger(f"ingestion.{self.__class__.__name__}")
        self.accepted = 0
        self.dropped = 0

    def _handle(self, raw: Any) -> None:
        try:
            key, sample = normalize_tick(raw)
        except DataError as exc:
            self.dropped += 1
            log_data_integrity(
                self._logger,
                "ingestion.normalize_drop",
                worker=self.__class__.__name__,
                reason=str(exc),
                raw_type=type(raw).__name__,
            )
            return
        if self._sink.on_tick(key, sample) is False:
            self.dropped += 1
            return
        self.accepted += 1
        if self.accepted % _LOG_SAMPLE_EVERY == 0:
            log_info(self._logger, "ingestion.progress", accepted=self.accepted, dropped=self.dropped)

    async def run(self) -> None:
        log_info(
            self._logger,
            "ingestion.worker_start",
            worker=self.__class__.__name__,
            source_type=type(self._source).__name__,
        )
        self._sink.on_connection_change(True)
        stop_reason = "exhausted"
        try:
            if hasattr(self._source, "__aiter__"):
                async for raw in self._source:
                    self._handle(raw)
            else:
                for raw in self._source:
                    self._handle(raw)
                    await asyncio.sleep(0)
        except asyncio.CancelledError:
            stop_reason = "cancelled"
            raise
        except Exception as exc:
            stop_reason = "error"
            log_warn(
                self._logger,
                "ingestion.source_error",
                worker=self.__class__.__name__,
                err_type=type(exc).__name__,
                err=str(exc),
            )
            self._sink.on_error(exc)
            raise
        finally:
            self._sink.on_connection_change(False)
            log_info(
                self._logger,
                "ingestion.worker_stop",
                worker=self.__class__.__name__,
                reason=stop_reason,
                accepted=self.accepted,
                dropped=self.dropped,
            )
