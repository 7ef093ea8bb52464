"""Driver loop and wiring: stdin -> stream -> classifier -> buffer -> sink."""

import asyncio
import logging
import threading
from typing import AsyncIterator, BinaryIO, Optional

import httpx

from log_transport.batch_buffer import BatchBuffer
from log_transport.classifier import LineClassifier
from log_transport.config import TransportConfig
from log_transport.flusher import Flusher
from log_transport.lazy_iter import LazyIter, StreamExhaustedError
from log_transport.metrics import ShipperMetrics
from log_transport.models import diagnostic
from log_transport.notifier import DiscordNotifier
from log_transport.sink import ParseableSink

logger = logging.getLogger(__name__)

_EOF = object()


async def read_lines(stream: BinaryIO) -> AsyncIterator[bytes]:
    """Yield raw lines from a blocking binary file.

    A daemon thread does the blocking reads and hands lines to the loop, so
    a pending read never holds up interpreter shutdown.
    """
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()

    def pump() -> None:
        try:
            for line in iter(stream.readline, b""):
                loop.call_soon_threadsafe(lines.put_nowait, line)
            loop.call_soon_threadsafe(lines.put_nowait, _EOF)
        except RuntimeError:
            # Event loop already closed.
            return
        except (OSError, ValueError) as exc:
            try:
                loop.call_soon_threadsafe(lines.put_nowait, exc)
            except RuntimeError:
                return

    threading.Thread(target=pump, name="stdin-reader", daemon=True).start()

    while True:
        item = await lines.get()
        if item is _EOF:
            return
        if isinstance(item, Exception):
            raise item
        yield item


def decode_line(raw: bytes) -> list[str]:
    """Decode one raw line without its line ending.

    Blank lines are kept: inside a crash dump they belong to the stack.
    """
    return [raw.decode("utf-8", errors="replace").rstrip("\r\n")]


async def drive(
    stream: LazyIter,
    classifier: LineClassifier,
    flusher: Flusher,
    metrics: Optional[ShipperMetrics] = None,
) -> None:
    """Feed every line to the classifier until the stream is done, then flush.

    A fault while handling one line drops that line only.
    """
    while not stream.done:
        try:
            line = await stream.next()
        except StreamExhaustedError:
            break

        try:
            used = await classifier.handle_line(line)
        except Exception as exc:
            logger.warning("Dropping line that could not be processed: %s", exc)
            if metrics is not None:
                metrics.record_line(failed=True)
            continue
        if metrics is not None:
            metrics.record_line(count=used or 1)

    await flusher.stop()


async def run_transport(
    config: TransportConfig,
    input_stream: BinaryIO,
    client: Optional[httpx.AsyncClient] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> dict:
    """Provision the sink stream, then ship *input_stream* until it ends.

    Setting *stop_event* stops pulling input; lines already buffered are
    still processed and flushed before returning. Returns the final
    metrics snapshot.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=config.request_timeout)

    try:
        metrics = ShipperMetrics()
        buffer = BatchBuffer()
        sink = ParseableSink(
            config.parseable_url,
            config.parseable_token,
            config.service_name,
            client,
            retention_days=config.retention_days,
        )
        notifier = DiscordNotifier(
            config.discord_webhook_id,
            config.discord_webhook_token,
            config.service_name,
            client,
            api_url=config.discord_api_url,
        )
        flusher = Flusher(buffer, sink, notifier, config.flush_interval, metrics)

        async def announce_stream() -> None:
            buffer.append(diagnostic("info", "Log stream created"))
            await flusher.flush()

        await sink.ensure_stream(on_created=announce_stream)

        stream = LazyIter(read_lines(input_stream), decode_line)
        lookahead = config.lookahead_timeout if config.lookahead_timeout > 0 else None
        classifier = LineClassifier(stream, buffer.append, lookahead_timeout=lookahead)

        watcher = None
        if stop_event is not None:
            watcher = asyncio.get_running_loop().create_task(_pause_on(stop_event, stream))

        flusher.start()
        logger.info(
            "Shipping stdin to %s stream %s every %.1fs",
            config.parseable_url,
            config.service_name,
            config.flush_interval,
        )
        try:
            await drive(stream, classifier, flusher, metrics)
        finally:
            if watcher is not None:
                watcher.cancel()

        snapshot = metrics.snapshot()
        logger.info("Transport metrics: %s", snapshot)
        return snapshot
    finally:
        if owns_client:
            await client.aclose()


async def _pause_on(stop_event: asyncio.Event, stream: LazyIter) -> None:
    await stop_event.wait()
    logger.info("Stop requested, draining buffered lines")
    await stream.aclose()
