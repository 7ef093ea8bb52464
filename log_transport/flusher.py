"""Flush driver — drains the batch buffer to the sink on a timer and at shutdown."""

import asyncio
import logging
from typing import Optional

import httpx

from log_transport.batch_buffer import BatchBuffer
from log_transport.metrics import ShipperMetrics
from log_transport.models import ErrorInfo, LogRecord, diagnostic
from log_transport.notifier import DiscordNotifier
from log_transport.sink import ParseableSink

logger = logging.getLogger(__name__)


class Flusher:
    """Hands each drained batch to the sink and alerts on error records.

    Delivery is at most once: a batch is removed from the buffer before it
    is submitted and is never re-queued. Failures are reported by appending
    a diagnostic record that ships with the next batch.
    """

    def __init__(
        self,
        buffer: BatchBuffer,
        sink: ParseableSink,
        notifier: DiscordNotifier,
        flush_interval: float = 5.0,
        metrics: Optional[ShipperMetrics] = None,
    ):
        self._buffer = buffer
        self._sink = sink
        self._notifier = notifier
        self._flush_interval = flush_interval
        self._metrics = metrics or ShipperMetrics()
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._timer_task: Optional[asyncio.Task] = None

    @property
    def flush_interval(self) -> float:
        return self._flush_interval

    # ------------------------------------------------------------------
    # Flush cycle
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Run one flush cycle. No-op when nothing is pending."""
        async with self._lock:
            batch = self._buffer.drain()
            if not batch:
                return

            response = await self._sink.send([record.to_dict() for record in batch])
            self._metrics.record_batch(len(batch), response.ok)
            if response.ok:
                logger.info("Flushed %d records", len(batch))
            else:
                self._buffer.append(
                    diagnostic(
                        "fatal",
                        f"Failed to send logs to Parseable, got status code {response.status_code}",
                        statusCode=response.status_code,
                        response=response.body,
                    )
                )

            alerts = [record for record in batch if record.is_alert]
            if alerts:
                await self._send_alerts(alerts)

    async def _send_alerts(self, alerts: list[LogRecord]) -> None:
        try:
            await self._notifier.notify(alerts)
        except httpx.HTTPError as exc:
            logger.warning("Discord notification failed: %s", exc)
            self._metrics.record_notification(False)
            self._buffer.append(
                diagnostic(
                    "warn",
                    "Failed to send fatal logs to Discord",
                    error=ErrorInfo.from_exception(exc),
                )
            )
        else:
            self._metrics.record_notification(True)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic flush task on the running loop."""
        if self._timer_task is None or self._timer_task.done():
            self._stop_event.clear()
            self._timer_task = asyncio.get_running_loop().create_task(self._flush_timer())

    async def stop(self) -> None:
        """Stop the timer, then flush whatever is still pending."""
        self._stop_event.set()
        if self._timer_task is not None:
            await self._timer_task
            self._timer_task = None
        await self.flush()

    async def _flush_timer(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._flush_interval)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                return
            try:
                await self.flush()
            except Exception:
                logger.exception("Periodic flush failed")
