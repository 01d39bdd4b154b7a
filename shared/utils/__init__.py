from .common import format_timestamp_ms, utc_timestamp_ms

__all__ = ["utc_timestamp_ms", "format_timestamp_ms"]
