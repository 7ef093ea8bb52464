"""Parseable sink — stream provisioning and batch submission over HTTP."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """The log stream could not be listed, created, or given a retention policy."""


@dataclass(frozen=True)
class SinkResponse:
    status_code: Optional[int]
    body: Any = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def _read_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON when labelled so, text otherwise."""
    content_type = response.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            return response.json()
        return response.text
    except ValueError:
        return None


class ParseableSink:
    """Ships batches to one Parseable log stream.

    The HTTP client is owned by the caller so tests can hand in a client
    backed by ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        stream_name: str,
        client: httpx.AsyncClient,
        retention_days: int = 30,
    ):
        self._base_url = base_url.rstrip("/")
        self._stream_name = stream_name
        self._client = client
        self._retention_days = retention_days
        self._headers = {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }

    @property
    def stream_url(self) -> str:
        return f"{self._base_url}/api/v1/logstream/{self._stream_name}"

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    async def list_streams(self) -> list[str]:
        response = await self._client.get(
            f"{self._base_url}/api/v1/logstream", headers=self._headers
        )
        if response.status_code != 200:
            logger.error("Listing log streams failed: %s", _read_body(response))
            raise ProvisioningError("Failed to get log streams")
        return [stream.get("name") for stream in response.json()]

    async def create_stream(self) -> None:
        response = await self._client.put(self.stream_url, headers=self._headers)
        if response.status_code != 200:
            logger.error("Creating log stream failed: %s", response.text)
            raise ProvisioningError("Failed to create log stream")

    async def set_retention(self) -> None:
        days = self._retention_days
        policy = [
            {
                "description": f"delete after {days} days",
                "duration": f"{days}d",
                "action": "delete",
            }
        ]
        response = await self._client.put(
            f"{self.stream_url}/retention", headers=self._headers, json=policy
        )
        if response.status_code != 200:
            logger.error("Setting retention failed: %s", response.text)
            raise ProvisioningError("Failed to setup log stream retention")

    async def ensure_stream(
        self, on_created: Optional[Callable[[], Awaitable[None]]] = None
    ) -> bool:
        """Create the stream and its retention policy unless it already exists.

        *on_created* runs between creation and the retention call; Parseable
        rejects retention on a stream that has never received an event, so
        the caller uses it to ship a first record. Returns True if the stream
        was created.
        """
        if self._stream_name in await self.list_streams():
            logger.info("Log stream %s already exists", self._stream_name)
            return False

        await self.create_stream()
        logger.info("Created log stream %s", self._stream_name)

        if on_created is not None:
            await on_created()

        await self.set_retention()
        logger.info(
            "Retention for %s set to %d days", self._stream_name, self._retention_days
        )
        return True

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def send(self, records: list[dict]) -> SinkResponse:
        """POST *records* as one JSON array.

        Never raises for HTTP failures or records that cannot be encoded as
        strict JSON; both come back as a failed SinkResponse.
        """
        try:
            content = json.dumps(records, allow_nan=False)
        except (TypeError, ValueError) as exc:
            logger.warning("Could not encode %d records: %s", len(records), exc)
            return SinkResponse(status_code=None, body=str(exc))

        try:
            response = await self._client.post(
                self.stream_url, headers=self._headers, content=content
            )
        except httpx.HTTPError as exc:
            logger.warning("Sending %d records failed: %s", len(records), exc)
            return SinkResponse(status_code=None, body=str(exc))

        if response.status_code == 200:
            return SinkResponse(status_code=200)

        logger.warning(
            "Sink rejected %d records with status %d", len(records), response.status_code
        )
        return SinkResponse(status_code=response.status_code, body=_read_body(response))
