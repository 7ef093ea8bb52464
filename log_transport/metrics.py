"""Metrics collector — counters for lines, batches, and collaborator calls."""

import time


class ShipperMetrics:
    """Counts what the transport did; reported once at shutdown."""

    def __init__(self) -> None:
        self.lines_processed: int = 0
        self.lines_failed: int = 0
        self.batches_sent: int = 0
        self.records_sent: int = 0
        self.send_failures: int = 0
        self.notifications_sent: int = 0
        self.notification_failures: int = 0
        self._start_time = time.monotonic()

    def record_line(self, failed: bool = False, count: int = 1) -> None:
        self.lines_processed += count
        if failed:
            self.lines_failed += 1

    def record_batch(self, size: int, success: bool) -> None:
        """Record one sink submission of *size* records."""
        if success:
            self.batches_sent += 1
            self.records_sent += size
        else:
            self.send_failures += 1

    def record_notification(self, success: bool) -> None:
        if success:
            self.notifications_sent += 1
        else:
            self.notification_failures += 1

    def snapshot(self) -> dict:
        """Return a point-in-time copy of all counters plus uptime."""
        return {
            "lines_processed": self.lines_processed,
            "lines_failed": self.lines_failed,
            "batches_sent": self.batches_sent,
            "records_sent": self.records_sent,
            "send_failures": self.send_failures,
            "notifications_sent": self.notifications_sent,
            "notification_failures": self.notification_failures,
            "uptime_seconds": time.monotonic() - self._start_time,
        }
