"""Shared pytest fixtures for the log transport test suite."""

import pytest

from log_transport.config import TransportConfig

REQUIRED_ENV = {
    "PARSEABLE_TOKEN": "dGVzdDp0ZXN0",
    "PARSEABLE_URL": "https://logs.example.test/",
    "SERVICE_NAME": "api",
    "DISCORD_WEBHOOK_ID": "123",
    "DISCORD_WEBHOOK_TOKEN": "hook-token",
}


@pytest.fixture
def required_env(monkeypatch):
    """Set every required environment variable and clear the tunables."""
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)
    for name in (
        "FLUSH_INTERVAL",
        "RETENTION_DAYS",
        "REQUEST_TIMEOUT",
        "LOOKAHEAD_TIMEOUT",
        "DISCORD_API_URL",
        "LOG_LEVEL",
        "TRANSPORT_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    return REQUIRED_ENV


@pytest.fixture
def transport_config() -> TransportConfig:
    return TransportConfig(
        parseable_token="dGVzdDp0ZXN0",
        parseable_url="https://logs.example.test",
        service_name="api",
        discord_webhook_id="123",
        discord_webhook_token="hook-token",
        flush_interval=60.0,
        discord_api_url="https://discord.example.test/api/v10",
    )
