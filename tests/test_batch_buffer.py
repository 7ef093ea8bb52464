"""Tests for the BatchBuffer module."""

import threading

from log_transport.batch_buffer import BatchBuffer
from log_transport.models import LogRecord


def _record(i: int) -> LogRecord:
    return LogRecord(datetime="2024-01-01T00:00:00.000Z", level="info", message=f"log-{i}")


class TestAppendAndDrain:
    """Records come out in arrival order and the buffer is left empty."""

    def test_drain_returns_records_in_order(self):
        buf = BatchBuffer()
        for i in range(3):
            buf.append(_record(i))

        batch = buf.drain()

        assert [r.message for r in batch] == ["log-0", "log-1", "log-2"]
        assert buf.pending_count == 0

    def test_drain_empty_buffer(self):
        buf = BatchBuffer()

        assert buf.drain() == []

    def test_append_after_drain_lands_in_next_batch(self):
        buf = BatchBuffer()
        buf.append(_record(0))

        first = buf.drain()
        buf.append(_record(1))

        assert [r.message for r in first] == ["log-0"]
        assert [r.message for r in buf.drain()] == ["log-1"]

    def test_no_deduplication(self):
        buf = BatchBuffer()
        record = _record(7)
        buf.append(record)
        buf.append(record)

        assert len(buf) == 2


class TestConcurrentAppend:
    """Appends racing with drains are never lost or duplicated."""

    def test_threaded_appends_all_accounted_for(self):
        buf = BatchBuffer()
        drained: list[LogRecord] = []
        done = threading.Event()

        def producer(offset: int):
            for i in range(250):
                buf.append(_record(offset + i))

        def drainer():
            while not done.is_set():
                drained.extend(buf.drain())

        drain_thread = threading.Thread(target=drainer)
        drain_thread.start()
        producers = [threading.Thread(target=producer, args=(n * 1000,)) for n in range(4)]
        for t in producers:
            t.start()
        for t in producers:
            t.join()
        done.set()
        drain_thread.join()
        drained.extend(buf.drain())

        messages = [r.message for r in drained]
        assert len(messages) == 1000
        assert len(set(messages)) == 1000
