from __future__ import annotations

from enum import StrEnum
from typing import Union


class MsgType(StrEnum):
    """Canonical `type` discriminants understood by client and server."""

    WATCHING = "watching"
    CHANGED = "changed"


def normalize_type(msg_type: Union[str, MsgType]) -> str:
    """Convert enum/string into canonical type text."""
    return msg_type.value if isinstance(msg_type, MsgType) else str(msg_type)


def is_known_type(value: object) -> bool:
    """Check if `value` is a registered message type."""
    try:
        MsgType(value)
        return True
    except ValueError:
        return False


__all__ = ["MsgType", "normalize_type", "is_known_type"]
