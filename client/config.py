from __future__ import annotations

import logging
import os
from typing import Any, Dict

from dotenv import load_dotenv

from shared.protocol.constants import READ_CHUNK_SIZE
from shared.settings import SETTINGS

DEFAULT_CONFIG: Dict[str, Any] = {
    "server_host": SETTINGS.server_host,
    "server_port": SETTINGS.server_port,
    "reconnect_backoff": 1,
    "max_reconnect_backoff": 30,
    "max_reconnect_retries": 5,
    "read_chunk_size": READ_CHUNK_SIZE,
    "log_level": "INFO",
    "strict_types": False,
}

CLIENT_CONFIG: Dict[str, Any] = DEFAULT_CONFIG.copy()


class ConfigError(Exception):
    """Raised when configuration values are invalid."""

    pass


def load_config(env_path: str = ".env") -> Dict[str, Any]:
    """Load client configuration from env file/environment variables.

    CLIENT_CONFIG is only updated once the whole configuration is valid.
    """
    if os.path.exists(env_path):
        load_dotenv(env_path)

    config: Dict[str, Any] = {}
    for key, default_value in DEFAULT_CONFIG.items():
        env_key = f"CLIENT_{key.upper()}"
        value = os.getenv(env_key, default_value)
        config[key] = _coerce_type(value, type(default_value))

    _validate_config(config)
    CLIENT_CONFIG.update(config)
    logging.getLogger().setLevel(CLIENT_CONFIG["log_level"])
    return CLIENT_CONFIG


def _coerce_type(value: Any, target_type: type) -> Any:
    if isinstance(value, target_type):
        return value
    try:
        if target_type is bool:
            return str(value).lower() in ("1", "true", "yes", "on")
        return target_type(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Cannot convert {value} to {target_type}") from exc


def _validate_config(config: Dict[str, Any]) -> None:
    if not (1 <= int(config["server_port"]) <= 65535):
        raise ConfigError("server_port must be between 1 and 65535")
    if config["read_chunk_size"] <= 0:
        raise ConfigError("read_chunk_size must be positive")
    if config["max_reconnect_retries"] < 0:
        raise ConfigError("max_reconnect_retries must not be negative")


__all__ = ["CLIENT_CONFIG", "DEFAULT_CONFIG", "ConfigError", "load_config"]
