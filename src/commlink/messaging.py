"""
Envelope construction and correlation.

Responses and errors always point back at the envelope they answer:
`ResponseID` is the original `ID`, `Target` is the original `Sender` and
`Tag` is copied unchanged.
"""

from enum import IntEnum
from typing import Any, Optional

from commlink.errors import ErrorKind, ValidationError
from commlink.models.envelope import Envelope, MessageType
from commlink.models.values import Value, cast_value

FIELD_COMMAND = "Command"
FIELD_ARGUMENTS = "Arguments"
FIELD_ORIGINAL_COMMAND = "OriginalCommand"
FIELD_MESSAGE = "Message"
FIELD_ERROR_KIND = "ErrorKind"
FIELD_SERVICE_EVENT = "ServiceEvent"
FIELD_DESCRIPTION = "Description"
FIELD_STATUS_CODE = "StatusCode"
FIELD_STATUS_MESSAGE = "StatusMessage"
FIELD_STATUS_DETAILS = "StatusDetails"
FIELD_SERVER_TIME = "ServerTime"


class ServiceEvent(IntEnum):
    CONNECTED = 1
    DISCONNECTING = 2
    STOPPING = 3
    STATUS_UPDATE = 4

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


def new_request(type: MessageType, sub_type: int = 0, target: Optional[str] = None) -> Envelope:
    return Envelope(type=type, sub_type=sub_type, target=target)


def new_response(original: Envelope, type: MessageType = MessageType.NOT_SET) -> Envelope:
    return Envelope(
        type=type,
        target=original.sender,
        response_id=original.id,
        tag=original.tag,
    )


def new_error(reason: str, original: Optional[Envelope] = None, kind: ErrorKind = ErrorKind.GENERIC) -> Envelope:
    if original is not None:
        error = new_response(original, MessageType.ERROR)
    else:
        error = Envelope(type=MessageType.ERROR)
    error.add_value(FIELD_MESSAGE, reason)
    error.add_value(FIELD_ERROR_KIND, kind.value)
    return error


def error_details(envelope: Envelope) -> tuple[str, str]:
    """(kind, message) of an Error envelope."""
    return (
        envelope.get_string(FIELD_ERROR_KIND, ErrorKind.GENERIC.value),
        envelope.get_string(FIELD_MESSAGE, ""),
    )


def create_command(command: str, *args: Any, target: Optional[str] = None) -> Envelope:
    if not command:
        raise ValidationError("Command cannot be empty")
    envelope = Envelope(type=MessageType.COMMAND, target=target)
    envelope.add_value(FIELD_COMMAND, command)
    if args:
        envelope.add_value(FIELD_ARGUMENTS, list(args))
    return envelope


def parse_command_line(command_line: str, target: Optional[str] = None) -> Envelope:
    """Build a Command envelope from free text such as `"echo  A b"`.

    Tokens are lower-cased and trimmed; the first is the command.
    """
    tokens = [t.strip().lower() for t in (command_line or "").split()]
    tokens = [t for t in tokens if t]
    if not tokens:
        raise ValidationError("Command line cannot be empty")
    return create_command(tokens[0], *tokens[1:], target=target)


def get_command(envelope: Envelope) -> str:
    if envelope.type != MessageType.COMMAND:
        raise ValidationError(f"Envelope is of type {envelope.type.name}; it must be a command")
    if not envelope.has_value(FIELD_COMMAND):
        raise ValidationError("Command envelope does not have a command value set")
    command = envelope.get_value(FIELD_COMMAND)
    if not isinstance(command, str) or not command.strip():
        raise ValidationError("Command cannot be empty")
    return command


def get_arguments(envelope: Envelope) -> list[Value]:
    if envelope.type != MessageType.COMMAND:
        raise ValidationError(f"Envelope is of type {envelope.type.name}; it must be a command")
    if envelope.get_value(FIELD_ARGUMENTS, None) is None:
        return []
    return list(envelope.get_list(FIELD_ARGUMENTS))


def get_argument(arguments: Optional[list[Value]], index: int, default: Any = None, cast: Any = None) -> Any:
    if not arguments or index >= len(arguments):
        return default
    value = arguments[index]
    if cast is None:
        return value
    return cast_value(value, cast)


def create_alert(alert_code: int, target: Optional[str] = None) -> Envelope:
    return Envelope(type=MessageType.ALERT, sub_type=alert_code, target=target)


def create_notification(event: ServiceEvent, description: Optional[str] = None) -> Envelope:
    envelope = Envelope(type=MessageType.NOTIFICATION, sub_type=int(event))
    envelope.add_value(FIELD_SERVICE_EVENT, event.label)
    envelope.add_value(FIELD_DESCRIPTION, description or event.name.replace("_", " ").capitalize())
    return envelope
