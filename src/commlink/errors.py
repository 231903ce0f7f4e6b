"""
commlink error types.

Every error carries an ErrorKind code, the same string that is written into
the `ErrorKind` value of an Error envelope sent back to a requester.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    GENERIC = "error"
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    UNKNOWN_COMMAND = "unknown_command"
    NOT_IMPLEMENTED = "not_implemented"
    TRANSPORT_SEND = "transport_send_failure"
    DESERIALIZATION = "deserialization_failure"
    BROADCAST = "broadcast_partial_failure"
    CONFIG = "config_error"
    CONNECTION = "connection_error"
    EXCEPTION = "exception"
    DIAGNOSTIC = "diagnostic"


class CommlinkError(Exception):
    kind = ErrorKind.GENERIC

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None, code: Optional[str] = None):
        super().__init__(message)
        self.code = code or self.kind.value
        self.details = details


class ValidationError(CommlinkError):
    kind = ErrorKind.VALIDATION


class ConflictError(CommlinkError):
    kind = ErrorKind.CONFLICT


class UnknownCommandError(CommlinkError):
    kind = ErrorKind.UNKNOWN_COMMAND


class NotImplementedCommandError(CommlinkError):
    kind = ErrorKind.NOT_IMPLEMENTED


class TransportSendError(CommlinkError):
    kind = ErrorKind.TRANSPORT_SEND


class DeserializationError(CommlinkError):
    kind = ErrorKind.DESERIALIZATION


class ConfigError(CommlinkError):
    kind = ErrorKind.CONFIG


class ConnectionError(CommlinkError):
    kind = ErrorKind.CONNECTION


class BroadcastError(CommlinkError):
    """Raised after a fan-out completed with at least one failed contact.

    `first_error` is the first failure encountered; it is also chained as
    `__cause__` when raised.
    """

    kind = ErrorKind.BROADCAST

    def __init__(self, message: str, first_error: BaseException, failed: list[str]):
        super().__init__(message, details={"failed": list(failed)})
        self.first_error = first_error
        self.failed = list(failed)


class CommandError(CommlinkError):
    """Client side: the remote service answered a request with an Error envelope."""

    def __init__(self, message: str, code: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details=details, code=code)
