"""
Envelope wire codec: JSON text with PascalCase keys.
"""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from commlink.errors import DeserializationError
from commlink.models.envelope import Envelope

logger = logging.getLogger("commlink.transport.codec")


def encode(envelope: Envelope) -> str:
    return envelope.model_dump_json(by_alias=True)


def decode(raw: Union[str, bytes, dict[str, Any]]) -> Envelope:
    try:
        if isinstance(raw, dict):
            return Envelope.model_validate(raw)
        return Envelope.model_validate_json(raw)
    except PydanticValidationError as e:
        raise DeserializationError(f"Malformed envelope: {e.error_count()} error(s)", details={"errors": str(e)})


def try_decode(raw: Union[str, bytes, dict[str, Any]]) -> Optional[Envelope]:
    """Decode an inbound payload. Returns None (and logs) if it is malformed."""
    try:
        return decode(raw)
    except DeserializationError as e:
        logger.debug(f"Dropping inbound payload: {e}")
        return None
