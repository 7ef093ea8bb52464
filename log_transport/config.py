"""Configuration module — frozen dataclass loaded from YAML, env vars, and CLI args."""

import argparse
import logging
import os
from dataclasses import dataclass
from typing import Optional

import yaml

from log_transport.notifier import DEFAULT_API_URL

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = {
    "PARSEABLE_TOKEN": "parseable_token",
    "PARSEABLE_URL": "parseable_url",
    "SERVICE_NAME": "service_name",
    "DISCORD_WEBHOOK_ID": "discord_webhook_id",
    "DISCORD_WEBHOOK_TOKEN": "discord_webhook_token",
}

# Non-secret settings that may come from the YAML file.
_TUNABLES = {
    "flush_interval": float,
    "retention_days": int,
    "request_timeout": float,
    "lookahead_timeout": float,
    "discord_api_url": str,
    "log_level": str,
}
_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ValueError):
    """Required configuration is missing or malformed."""


@dataclass(frozen=True)
class TransportConfig:
    parseable_token: str
    parseable_url: str
    service_name: str
    discord_webhook_id: str
    discord_webhook_token: str
    flush_interval: float = 5.0
    retention_days: int = 30
    request_timeout: float = 10.0
    lookahead_timeout: float = 10.0
    discord_api_url: str = DEFAULT_API_URL
    log_level: str = "INFO"


def load_yaml_config(path: Optional[str]) -> dict:
    """Load tuning values from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return {key: value for key, value in data.items() if key in _TUNABLES}


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ship newline-delimited pino logs from stdin to Parseable"
    )
    parser.add_argument("--config", type=str, default=None, help="YAML file with tuning values")
    parser.add_argument("--flush-interval", type=float, default=None)
    parser.add_argument("--retention-days", type=int, default=None)
    parser.add_argument("--request-timeout", type=float, default=None)
    parser.add_argument("--lookahead-timeout", type=float, default=None)
    parser.add_argument("--log-level", type=str, default=None)
    return parser


def _convert(key: str, value, source: str):
    try:
        return _TUNABLES[key](value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key} from {source}: {value!r}") from exc


def load_config(argv=None) -> TransportConfig:
    """Build TransportConfig from defaults <- YAML <- env vars <- CLI args.

    Pass argv for testability; when None, argparse reads sys.argv.
    """
    args = build_cli_parser().parse_args(argv)

    missing = [name for name in REQUIRED_ENV_VARS if not os.environ.get(name)]
    if missing:
        raise ConfigError(f"{', '.join(missing)} environment variable is not set")
    kwargs: dict = {field: os.environ[name] for name, field in REQUIRED_ENV_VARS.items()}
    kwargs["parseable_url"] = kwargs["parseable_url"].rstrip("/")

    config_path = args.config or os.environ.get("TRANSPORT_CONFIG")
    for key, value in load_yaml_config(config_path).items():
        kwargs[key] = _convert(key, value, config_path)

    for key in _TUNABLES:
        env_value = os.environ.get(key.upper())
        if env_value:
            kwargs[key] = _convert(key, env_value, key.upper())

        cli_value = getattr(args, key, None)
        if cli_value is not None:
            kwargs[key] = cli_value

    config = TransportConfig(**kwargs)
    if config.flush_interval <= 0:
        raise ConfigError("flush_interval must be positive")
    if config.retention_days <= 0:
        raise ConfigError("retention_days must be positive")
    if config.log_level.upper() not in _LOG_LEVELS:
        raise ConfigError(f"Unknown log level {config.log_level!r}")
    return config
