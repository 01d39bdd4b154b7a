"""
Shared protocol package that centralizes message types, message models, framing,
stream decoding and validation utilities for both client and server.
"""

from .commands import MsgType, is_known_type, normalize_type
from .constants import DEFAULT_PORT, ENCODING, FRAME_DELIMITER, READ_CHUNK_SIZE
from .decoder import StreamDecoder
from .errors import (
    ConnectionFailure,
    DecodeError,
    EncodingError,
    ErrorCode,
    ProtocolError,
    TruncatedStream,
    UnknownMessageType,
)
from .framing import decode_msg, encode_msg
from .messages import BaseMsg, ChangedMsg, UnknownMsg, WatchingMsg, parse_msg
from .validator import load_schema, validate_msg

__all__ = [
    "MsgType",
    "is_known_type",
    "normalize_type",
    "DEFAULT_PORT",
    "ENCODING",
    "FRAME_DELIMITER",
    "READ_CHUNK_SIZE",
    "StreamDecoder",
    "ErrorCode",
    "ProtocolError",
    "DecodeError",
    "EncodingError",
    "UnknownMessageType",
    "TruncatedStream",
    "ConnectionFailure",
    "encode_msg",
    "decode_msg",
    "BaseMsg",
    "WatchingMsg",
    "ChangedMsg",
    "UnknownMsg",
    "parse_msg",
    "load_schema",
    "validate_msg",
]
