"""Tests for the Discord webhook notifier."""

import json

import httpx
import pytest

from log_transport.models import ErrorInfo, LogRecord
from log_transport.notifier import MAX_DESCRIPTION, DiscordNotifier


def _make_notifier(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = DiscordNotifier(
        "123", "secret", "billing", client, api_url="https://discord.example.test/api/v10/"
    )
    return notifier, client


def _record(level, message=None, stack=None) -> LogRecord:
    error = ErrorInfo(type="Error", message=message, stack=stack) if stack else None
    return LogRecord(
        datetime="2024-01-01T00:00:00.000Z", level=level, message=message, error=error
    )


class TestEmbeds:
    """One embed per alerting record."""

    def test_titles_by_level(self):
        notifier, _ = _make_notifier(lambda request: httpx.Response(200))

        embeds = notifier.build_embeds([_record("fatal", "a"), _record("error", "b")])

        assert embeds[0]["title"] == "Fatal error occured in service billing"
        assert embeds[1]["title"] == "Error occured in service billing"

    def test_description_prefers_stack(self):
        notifier, _ = _make_notifier(lambda request: httpx.Response(200))

        embeds = notifier.build_embeds(
            [_record("error", "short", stack="Error: short\n    at x"), _record("error", "plain")]
        )

        assert embeds[0]["description"] == "```Error: short\n    at x```"
        assert embeds[1]["description"] == "```plain```"

    def test_long_description_truncated(self):
        notifier, _ = _make_notifier(lambda request: httpx.Response(200))

        embeds = notifier.build_embeds([_record("fatal", "x" * 10_000)])

        description = embeds[0]["description"]
        assert len(description) == MAX_DESCRIPTION
        assert description.startswith("```")
        assert description.endswith("...```")


class TestNotify:
    """The webhook call itself."""

    @pytest.mark.asyncio
    async def test_single_call_with_all_embeds(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "1"})

        notifier, client = _make_notifier(handler)

        await notifier.notify([_record("error", "a"), _record("fatal", "b")])

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v10/webhooks/123/secret"
        assert request.url.params["wait"] == "true"
        assert len(json.loads(request.content)["embeds"]) == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        notifier, client = _make_notifier(lambda request: httpx.Response(429))

        with pytest.raises(httpx.HTTPStatusError):
            await notifier.notify([_record("error", "a")])
        await client.aclose()
