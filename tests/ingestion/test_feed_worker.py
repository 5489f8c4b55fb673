from __future__ import annotations

import asyncio

import pytest

from ingestion.worker import FeedWorker
from market_stream.data.series import Sample


class RecordingSink:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.ticks: list[tuple[str, Sample]] = []
        self.connection: list[bool] = []
        self.errors: list[str] = []

    def on_tick(self, key: str, sample: Sample) -> bool:
        self.ticks.append((key, sample))
        return self.accept

    def on_connection_change(self, connected: bool) -> None:
        self.connection.append(connected)

    def on_error(self, error) -> None:
        self.errors.append(str(error))


class AsyncPayloads:
    def __init__(self, payloads, fail_with: Exception | None = None) -> None:
        self._payloads = list(payloads)
        self._fail_with = fail_with

    async def __aiter__(self):
        for p in self._payloads:
            await asyncio.sleep(0)
            yield p
        if self._fail_with is not None:
            raise self._fail_with


@pytest.mark.asyncio
async def test_worker_forwards_normalized_ticks_from_sync_source() -> None:
    sink = RecordingSink()
    source = [
        {"s": "AAPL", "p": 1.0, "t": 1, "v": 2},
        {"s": "MSFT", "p": 3.0, "t": 2},
    ]
    worker = FeedWorker(source=source, sink=sink)
    await worker.run()

    assert sink.ticks == [
        ("AAPL", Sample(timestamp=1000, price=1.0, volume=2)),
        ("MSFT", Sample(timestamp=2000, price=3.0, volume=0)),
    ]
    assert sink.connection == [True, False]
    assert worker.accepted == 2
    assert worker.dropped == 0


@pytest.mark.asyncio
async def test_worker_drops_malformed_payloads() -> None:
    sink = RecordingSink()
    source = AsyncPayloads([
        {"s": "AAPL", "p": "nope", "t": 1},
        "not a mapping",
        {"s": "AAPL", "p": 2.0, "t": 1_700_000_000_000},
    ])
    worker = FeedWorker(source=source, sink=sink)
    await worker.run()

    assert [k for k, _ in sink.ticks] == ["AAPL"]
    assert worker.accepted == 1
    assert worker.dropped == 2


@pytest.mark.asyncio
async def test_worker_counts_sink_rejections_as_dropped() -> None:
    sink = RecordingSink(accept=False)
    worker = FeedWorker(source=[{"s": "AAPL", "p": 1.0, "t": 1}], sink=sink)
    await worker.run()
    assert worker.accepted == 0
    assert worker.dropped == 1


@pytest.mark.asyncio
async def test_worker_reports_source_errors_and_reraises() -> None:
    sink = RecordingSink()
    source = AsyncPayloads([{"s": "AAPL", "p": 1.0, "t": 1}], fail_with=ConnectionError("socket closed"))
    worker = FeedWorker(source=source, sink=sink)

    with pytest.raises(ConnectionError):
        await worker.run()

    assert sink.errors == ["socket closed"]
    assert sink.connection == [True, False]
    assert worker.accepted == 1


@pytest.mark.asyncio
async def test_worker_cancellation_marks_disconnected() -> None:
    sink = RecordingSink()

    class Endless:
        async def __aiter__(self):
            while True:
                await asyncio.sleep(0.005)
                yield {"s": "AAPL", "p": 1.0, "t": 1}

    task = asyncio.create_task(FeedWorker(source=Endless(), sink=sink).run())
    await asyncio.sleep(0.03)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert sink.connection == [True, False]
    assert sink.errors == []
