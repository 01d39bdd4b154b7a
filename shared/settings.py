from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from shared.protocol.constants import DEFAULT_PORT


@dataclass
class Settings:
    """Shared baseline settings (both client/server build on top)."""

    server_host: str = "127.0.0.1"
    server_port: int = DEFAULT_PORT
    log_level: str = "INFO"


SETTINGS = Settings()


def load_settings(env_path: str = ".env") -> Settings:
    """Load shared settings from env/.env."""
    if Path(env_path).exists():
        load_dotenv(env_path)
    SETTINGS.server_host = os.getenv("WATCH_SERVER_HOST", SETTINGS.server_host)
    SETTINGS.server_port = int(os.getenv("WATCH_SERVER_PORT", SETTINGS.server_port))
    SETTINGS.log_level = os.getenv("WATCH_LOG_LEVEL", SETTINGS.log_level)
    return SETTINGS


__all__ = ["Settings", "SETTINGS", "load_settings"]
