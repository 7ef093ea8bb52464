"""Discord webhook notifier for error and fatal records."""

import logging

import httpx

from log_transport.models import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://discord.com/api/v10"

# Discord rejects embed descriptions longer than this.
MAX_DESCRIPTION = 4096
_FENCE = "```"


def _description(record: LogRecord) -> str:
    text = None
    if record.error is not None:
        text = record.error.stack
    if text is None:
        text = record.message
    body = str(text)
    room = MAX_DESCRIPTION - 2 * len(_FENCE)
    if len(body) > room:
        body = body[: room - 3] + "..."
    return f"{_FENCE}{body}{_FENCE}"


class DiscordNotifier:
    """Posts one webhook message with an embed per alerting record."""

    def __init__(
        self,
        webhook_id: str,
        webhook_token: str,
        service_name: str,
        client: httpx.AsyncClient,
        api_url: str = DEFAULT_API_URL,
    ):
        self._url = f"{api_url.rstrip('/')}/webhooks/{webhook_id}/{webhook_token}"
        self._service_name = service_name
        self._client = client

    def build_embeds(self, records: list[LogRecord]) -> list[dict]:
        embeds = []
        for record in records:
            if record.level == "fatal":
                title = f"Fatal error occured in service {self._service_name}"
            else:
                title = f"Error occured in service {self._service_name}"
            embeds.append({"title": title, "description": _description(record)})
        return embeds

    async def notify(self, records: list[LogRecord]) -> None:
        """Send all *records* in a single webhook call.

        Raises httpx.HTTPError on transport failure or a non-2xx response.
        """
        response = await self._client.post(
            self._url,
            params={"wait": "true"},
            json={"embeds": self.build_embeds(records)},
        )
        response.raise_for_status()
        logger.info("Sent %d alert(s) to Discord", len(records))
