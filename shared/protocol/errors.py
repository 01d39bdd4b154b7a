from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Optional


class ErrorCode(IntEnum):
    """Error categories reported by the watch protocol."""

    DECODE_FAILED = 1001
    ENCODE_FAILED = 1002
    UNKNOWN_TYPE = 1003
    TRUNCATED_STREAM = 1004
    CONNECTION_FAILED = 1005


class ProtocolError(Exception):
    """Structured protocol exception carrying code + message."""

    code: ErrorCode = ErrorCode.DECODE_FAILED

    def __init__(self, message: str = "", code: Optional[ErrorCode] = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code.name} ({int(self.code)}): {message}")

    def to_log_fields(self) -> Dict[str, Any]:
        """Map error into a flat dict for log records."""
        return {"error_code": int(self.code), "error_name": self.code.name, "error_message": self.message}


class DecodeError(ProtocolError):
    """A single frame could not be turned into a message."""

    code = ErrorCode.DECODE_FAILED

    def __init__(self, message: str, payload: bytes = b"") -> None:
        self.payload = payload
        super().__init__(message)

    def to_log_fields(self) -> Dict[str, Any]:
        fields = super().to_log_fields()
        fields["payload"] = self.payload[:200].decode("utf-8", errors="replace")
        return fields


class EncodingError(ProtocolError):
    code = ErrorCode.ENCODE_FAILED


class UnknownMessageType(ProtocolError):
    """Well-formed message whose `type` the receiver does not handle."""

    code = ErrorCode.UNKNOWN_TYPE

    def __init__(self, msg: Any) -> None:
        self.msg = msg
        super().__init__(f"Unrecognized message type: {getattr(msg, 'type', None)!r}")


class TruncatedStream(ProtocolError):
    """Stream ended while an unterminated frame was still buffered."""

    code = ErrorCode.TRUNCATED_STREAM

    def __init__(self, partial: bytes) -> None:
        self.partial = partial
        super().__init__(f"Connection closed with {len(partial)} unterminated bytes pending")


class ConnectionFailure(ProtocolError):
    code = ErrorCode.CONNECTION_FAILED


__all__ = [
    "ErrorCode",
    "ProtocolError",
    "DecodeError",
    "EncodingError",
    "UnknownMessageType",
    "TruncatedStream",
    "ConnectionFailure",
]
