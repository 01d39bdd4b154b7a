from __future__ import annotations

import time
from datetime import datetime


def utc_timestamp_ms() -> int:
    """Current UTC timestamp in milliseconds."""
    return time.time_ns() // 1_000_000


def format_timestamp_ms(timestamp: int) -> str:
    """Render a millisecond timestamp as local, human-readable time."""
    return datetime.fromtimestamp(timestamp / 1000).strftime("%A, %B %d, %Y, %I:%M:%S %p")


__all__ = ["utc_timestamp_ms", "format_timestamp_ms"]
