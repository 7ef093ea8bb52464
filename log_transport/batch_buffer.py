"""Batch buffer — ordered records awaiting the next flush cycle."""

import threading

from log_transport.models import LogRecord


class BatchBuffer:
    """Append-only record buffer drained whole by the flusher.

    ``drain()`` snapshots and clears under one lock, so a record appended
    after the snapshot always lands in the following batch.
    """

    def __init__(self) -> None:
        self._records: list[LogRecord] = []
        self._lock = threading.Lock()

    def append(self, record: LogRecord) -> None:
        with self._lock:
            self._records.append(record)

    def drain(self) -> list[LogRecord]:
        """Return every pending record and leave the buffer empty."""
        with self._lock:
            batch = self._records
            self._records = []
        return batch

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._records)

    def __len__(self) -> int:
        return self.pending_count
