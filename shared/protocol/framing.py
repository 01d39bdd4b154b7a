from __future__ import annotations

import json
from typing import Any, Dict, Union

from .constants import ENCODING, FRAME_DELIMITER
from .errors import DecodeError, EncodingError
from .messages import BaseMsg, parse_msg
from .validator import validate_msg


def encode_msg(msg: Union[BaseMsg, Dict[str, Any]]) -> bytes:
    """Encode message into one frame (JSON + delimiter)."""
    data = msg.model_dump() if isinstance(msg, BaseMsg) else msg
    try:
        # allow_nan=False: NaN/Infinity are not JSON and must not reach the wire.
        json_str = json.dumps(data, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Encode failed: {exc}") from exc
    return json_str.encode(ENCODING) + FRAME_DELIMITER


def decode_msg(data: Union[bytes, str]) -> BaseMsg:
    """Decode one frame payload into a message, stripping the delimiter if present.

    A trailing CR before the delimiter is dropped too, so CRLF peers decode.
    """
    raw = data.encode(ENCODING) if isinstance(data, str) else bytes(data)
    payload = raw[: -len(FRAME_DELIMITER)] if raw.endswith(FRAME_DELIMITER) else raw
    if payload.endswith(b"\r"):
        payload = payload[:-1]
    # ValueError covers bad UTF-8, bad JSON and oversized integer literals.
    try:
        obj = json.loads(payload.decode(ENCODING))
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"Decode failed: {exc}", payload) from exc
    try:
        validate_msg(obj)
        return parse_msg(obj)
    except DecodeError as exc:
        raise DecodeError(exc.message, payload) from exc


__all__ = ["encode_msg", "decode_msg"]
