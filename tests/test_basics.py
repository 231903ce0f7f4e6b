"""Basic unit tests for the commlink package."""

from commlink import (
    BroadcastError,
    CommandError,
    CommlinkError,
    ConfigError,
    ConflictError,
    ConnectionError,
    DeserializationError,
    ErrorKind,
    NotImplementedCommandError,
    Service,
    ServiceClient,
    TransportSendError,
    UnknownCommandError,
    ValidationError,
    __version__,
)
from commlink.messaging import ServiceEvent
from commlink.models.envelope import MessageType


def test_version():
    assert __version__ == "0.1.0"


def test_public_exports():
    assert Service is not None
    assert ServiceClient is not None


def test_error_hierarchy():
    for cls in (
        ValidationError, ConflictError, UnknownCommandError, NotImplementedCommandError,
        TransportSendError, DeserializationError, BroadcastError, ConfigError,
        ConnectionError, CommandError,
    ):
        assert issubclass(cls, CommlinkError)


def test_error_attributes():
    err = ValidationError("bad token")
    assert err.code == "validation_error"
    assert err.kind is ErrorKind.VALIDATION
    assert str(err) == "bad token"
    assert err.details is None

    remote = CommandError("no such command", code="unknown_command", details={"command": "frob"})
    assert remote.code == "unknown_command"
    assert remote.details == {"command": "frob"}


def test_broadcast_error_keeps_first_failure():
    cause = TransportSendError("bob unreachable")
    err = BroadcastError("partial", first_error=cause, failed=["bob@local"])
    assert err.first_error is cause
    assert err.failed == ["bob@local"]
    assert err.details == {"failed": ["bob@local"]}


def test_enum_constants():
    assert MessageType.COMMAND == 3
    assert MessageType.ERROR_TEST == 12
    assert ServiceEvent.STATUS_UPDATE.label == "StatusUpdate"
    assert ServiceEvent.CONNECTED.label == "Connected"
