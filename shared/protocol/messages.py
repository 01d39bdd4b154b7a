from __future__ import annotations

from typing import Any, Dict, Literal, Type

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from shared.utils.common import utc_timestamp_ms

from .commands import MsgType
from .errors import DecodeError


class BaseMsg(BaseModel):
    """Envelope shared by every message: a `type` discriminant plus fields."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: StrictStr = Field(..., description="Discriminant such as watching / changed")

    @property
    def raw(self) -> Dict[str, Any]:
        """All fields, including ones the model does not declare."""
        return self.model_dump()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaseMsg":
        try:
            return cls(**data)
        except ValidationError as exc:
            raise DecodeError(f"Message validation failed: {exc}") from exc


class WatchingMsg(BaseMsg):
    type: Literal["watching"] = MsgType.WATCHING.value
    file: StrictStr


class ChangedMsg(BaseMsg):
    type: Literal["changed"] = MsgType.CHANGED.value
    file: StrictStr
    timestamp: StrictInt = Field(..., ge=0, description="Milliseconds since epoch")

    @classmethod
    def now(cls, file: str) -> "ChangedMsg":
        return cls(file=file, timestamp=utc_timestamp_ms())


class UnknownMsg(BaseMsg):
    """Well-formed message whose type is not registered; raw fields kept."""


MESSAGE_MODELS: Dict[str, Type[BaseMsg]] = {
    MsgType.WATCHING.value: WatchingMsg,
    MsgType.CHANGED.value: ChangedMsg,
}


def parse_msg(data: Dict[str, Any]) -> BaseMsg:
    """Build the typed model for `data`, falling back to UnknownMsg."""
    model = MESSAGE_MODELS.get(data.get("type"), UnknownMsg)
    return model.from_dict(data)


__all__ = ["BaseMsg", "WatchingMsg", "ChangedMsg", "UnknownMsg", "MESSAGE_MODELS", "parse_msg"]
