from __future__ import annotations

import os
from typing import Any, Dict

from shared.protocol.constants import DEFAULT_MAX_PENDING, DEFAULT_WRITE_TIMEOUT
from shared.settings import SETTINGS, load_settings

DEFAULT_SERVER_CONFIG: Dict[str, Any] = {
    "host": "0.0.0.0",
    "port": SETTINGS.server_port,
    "log_level": "INFO",
    "watch_file": "",
    "watch_debounce_ms": 50,
    "max_pending": DEFAULT_MAX_PENDING,
    "write_timeout": DEFAULT_WRITE_TIMEOUT,
    "fragment_delay": 1.0,
}

SERVER_CONFIG = DEFAULT_SERVER_CONFIG.copy()


def load_server_config(env_path: str = ".env") -> Dict[str, Any]:
    settings = load_settings(env_path)
    SERVER_CONFIG["host"] = os.getenv("SERVER_HOST", SERVER_CONFIG["host"])
    SERVER_CONFIG["port"] = int(os.getenv("SERVER_PORT", settings.server_port))
    SERVER_CONFIG["log_level"] = os.getenv("SERVER_LOG_LEVEL", settings.log_level)
    SERVER_CONFIG["watch_file"] = os.getenv("SERVER_WATCH_FILE", SERVER_CONFIG["watch_file"])
    SERVER_CONFIG["watch_debounce_ms"] = int(os.getenv("SERVER_WATCH_DEBOUNCE_MS", SERVER_CONFIG["watch_debounce_ms"]))
    SERVER_CONFIG["max_pending"] = int(os.getenv("SERVER_MAX_PENDING", SERVER_CONFIG["max_pending"]))
    SERVER_CONFIG["write_timeout"] = float(os.getenv("SERVER_WRITE_TIMEOUT", SERVER_CONFIG["write_timeout"]))
    SERVER_CONFIG["fragment_delay"] = float(os.getenv("SERVER_FRAGMENT_DELAY", SERVER_CONFIG["fragment_delay"]))
    return SERVER_CONFIG


__all__ = ["SERVER_CONFIG", "DEFAULT_SERVER_CONFIG", "load_server_config"]
