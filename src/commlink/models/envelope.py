"""
Envelope: the message unit exchanged with remote parties.
"""

import uuid
from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from commlink.errors import ValidationError
from commlink.models.values import Value, to_value

_MISSING: Any = object()


class MessageType(IntEnum):
    NOT_SET = 0
    PING = 1
    PING_RESPONSE = 2
    COMMAND = 3
    COMMAND_RESPONSE = 4
    SUBSCRIBE = 5
    SUBSCRIBE_RESPONSE = 6
    STATUS_REQUEST = 7
    STATUS_RESPONSE = 8
    NOTIFICATION = 9
    ALERT = 10
    ERROR = 11
    ERROR_TEST = 12


def new_message_id() -> str:
    return uuid.uuid4().hex


class Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: MessageType = Field(default=MessageType.NOT_SET, alias="Type")
    sub_type: int = Field(default=0, alias="SubType")
    id: str = Field(default_factory=new_message_id, alias="ID")
    response_id: Optional[str] = Field(default=None, alias="ResponseID")
    sender: Optional[str] = Field(default=None, alias="Sender")
    target: Optional[str] = Field(default=None, alias="Target")
    tag: Value = Field(default=None, alias="Tag")
    values: dict[str, Value] = Field(default_factory=dict, alias="Values")

    @property
    def is_response(self) -> bool:
        return bool(self.response_id)

    def add_value(self, key: str, value: Any) -> None:
        """Set a payload value. Re-adding a key replaces it in place."""
        if not key:
            raise ValidationError("Value key cannot be empty")
        self.values[key] = to_value(value)

    def has_value(self, key: str) -> bool:
        return key in self.values

    def get_value(self, key: str, default: Any = _MISSING) -> Value:
        if key in self.values:
            return self.values[key]
        if default is _MISSING:
            raise ValidationError(f"Envelope {self.id} has no value {key!r}")
        return default

    def _get_typed(self, key: str, kind: Any, label: str, default: Any) -> Any:
        value = self.get_value(key, default)
        if value is default and default is not _MISSING:
            return value
        # bool is an int subclass but never a valid int payload
        if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
            raise ValidationError(f"Value {key!r} is not a {label}: {value!r}")
        return value

    def get_string(self, key: str, default: Any = _MISSING) -> str:
        return self._get_typed(key, str, "string", default)

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        return self._get_typed(key, int, "integer", default)

    def get_list(self, key: str, default: Any = _MISSING) -> list[Value]:
        return self._get_typed(key, list, "list", default)

    def get_dict(self, key: str, default: Any = _MISSING) -> dict[str, Value]:
        return self._get_typed(key, dict, "mapping", default)

    def copy_for(self, target: str) -> "Envelope":
        """Deep copy addressed to `target`, with a fresh ID."""
        return self.model_copy(update={"id": new_message_id(), "target": target}, deep=True)

    def snapshot(self) -> "Envelope":
        """Deep copy with the same ID, used when handing an envelope to a transport."""
        return self.model_copy(deep=True)
