"""Protocol-wide constants shared by client and server."""

ENCODING = "utf-8"
FRAME_DELIMITER = b"\n"
DEFAULT_PORT = 5432
READ_CHUNK_SIZE = 4096
DEFAULT_MAX_PENDING = 100  # outbound frames queued per subscriber
DEFAULT_WRITE_TIMEOUT = 10  # seconds

__all__ = [
    "ENCODING",
    "FRAME_DELIMITER",
    "DEFAULT_PORT",
    "READ_CHUNK_SIZE",
    "DEFAULT_MAX_PENDING",
    "DEFAULT_WRITE_TIMEOUT",
]
