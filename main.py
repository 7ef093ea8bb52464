"""Entry point for the stdin log transport."""

import asyncio
import logging
import signal
import sys

import httpx

from log_transport.config import ConfigError, load_config
from log_transport.sink import ProvisioningError
from log_transport.transport import run_transport

logger = logging.getLogger(__name__)


async def _serve(config) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal(signum: int) -> None:
        logger.info("Received signal %d, shutting down...", signum)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, handle_signal, signum)
        except NotImplementedError:
            # Windows event loops have no signal handler support.
            pass

    await run_transport(config, sys.stdin.buffer, stop_event=stop_event)


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [TRANSPORT] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(argv)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    logging.getLogger().setLevel(config.log_level.upper())
    logger.info(
        "Config: service=%s, flush_interval=%.1fs, retention=%dd",
        config.service_name,
        config.flush_interval,
        config.retention_days,
    )

    try:
        asyncio.run(_serve(config))
    except ProvisioningError as exc:
        logger.error("Provisioning failed: %s", exc)
        return 1
    except httpx.HTTPError as exc:
        logger.error("Could not reach Parseable during startup: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
