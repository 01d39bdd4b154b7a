from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema

from .commands import MsgType, normalize_type
from .errors import DecodeError

SCHEMA_DIR = Path(__file__).parent / "schemas"
ENVELOPE_SCHEMA = "envelope.json"

# Mapping type -> schema filename (relative to SCHEMA_DIR)
SCHEMA_REGISTRY: Dict[str, str] = {
    MsgType.WATCHING.value: "watching.json",
    MsgType.CHANGED.value: "changed.json",
}


@lru_cache(maxsize=16)
def _load_file(filename: str) -> dict:
    with (SCHEMA_DIR / filename).open("r", encoding="utf-8") as fp:
        return json.load(fp)


def load_schema(msg_type: str) -> Optional[dict]:
    """Load JSON schema for a message type if one is registered."""
    filename = SCHEMA_REGISTRY.get(normalize_type(msg_type))
    if not filename:
        return None
    return _load_file(filename)


def validate_envelope(msg: Any) -> None:
    """Ensure the value is a JSON object carrying a string `type`."""
    try:
        jsonschema.validate(instance=msg, schema=_load_file(ENVELOPE_SCHEMA))
    except jsonschema.ValidationError as exc:
        raise DecodeError(f"Envelope validation failed: {exc.message}") from exc


def validate_msg(msg: Any, schema: Optional[dict] = None) -> None:
    """Run standard validations (envelope + per-type json-schema).

    Unknown types only have to satisfy the envelope.
    """
    validate_envelope(msg)
    if not schema:
        schema = load_schema(msg["type"])
    if schema:
        try:
            jsonschema.validate(instance=msg, schema=schema)
        except jsonschema.ValidationError as exc:
            raise DecodeError(f"Schema validation failed for {msg['type']!r}: {exc.message}") from exc


__all__ = ["SCHEMA_REGISTRY", "load_schema", "validate_envelope", "validate_msg"]
