"""
Envelope payload values.

A value is one of: None, bool, int, float, str, a list of values, or a
mapping of str to values. Anything else is rejected on the way in.
"""

from enum import Enum
from typing import Any

from pydantic import JsonValue, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from commlink.errors import ValidationError

Value = JsonValue
ValueMap = dict[str, JsonValue]

_value_adapter: TypeAdapter[Any] = TypeAdapter(JsonValue)


def _normalize(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, tuple):
        return [_normalize(v) for v in obj]
    if isinstance(obj, list):
        return [_normalize(v) for v in obj]
    if isinstance(obj, dict):
        return {k: _normalize(v) for k, v in obj.items()}
    return obj


def to_value(obj: Any) -> Value:
    """Validate `obj` into a Value, returning a fresh copy of any containers."""
    try:
        return _value_adapter.validate_python(_normalize(obj))
    except PydanticValidationError as e:
        raise ValidationError(f"Unsupported value of type {type(obj).__name__}: {e.errors()[0]['msg']}")


def cast_value(value: Value, as_type: Any) -> Any:
    """Convert a Value to `as_type` using pydantic's lax conversion rules."""
    try:
        return TypeAdapter(as_type).validate_python(value)
    except PydanticValidationError as e:
        raise ValidationError(f"Cannot convert {value!r} to {as_type}: {e.errors()[0]['msg']}")
