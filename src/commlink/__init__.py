"""
commlink: command and notification messaging for long-running services.

A service exposes named commands to remote subscribers over a pub-sub
transport, answers requests with correlated responses and pushes status
notifications to every known subscriber.
"""

from commlink.client import ServiceClient
from commlink.commands import CommandRegistry, ServiceCommand, sanitize
from commlink.config import ServiceConfig, load_config
from commlink.dispatcher import DispatchResult, Dispatcher
from commlink.errors import (
    BroadcastError,
    CommandError,
    CommlinkError,
    ConfigError,
    ConflictError,
    ConnectionError,
    DeserializationError,
    ErrorKind,
    NotImplementedCommandError,
    TransportSendError,
    UnknownCommandError,
    ValidationError,
)
from commlink.messaging import ServiceEvent
from commlink.models.envelope import Envelope, MessageType
from commlink.service import Service
from commlink.status import AnyChangePolicy, CodeChangePolicy, NotificationPolicy, StatusTracker
from commlink.subscribers import SubscriberDirectory
from commlink.transport.base import ConnectionState, Transport

__version__ = "0.1.0"
__all__ = [
    "Service",
    "ServiceClient",
    "ServiceConfig",
    "load_config",
    "Envelope",
    "MessageType",
    "ServiceEvent",
    "CommandRegistry",
    "ServiceCommand",
    "sanitize",
    "Dispatcher",
    "DispatchResult",
    "SubscriberDirectory",
    "StatusTracker",
    "NotificationPolicy",
    "CodeChangePolicy",
    "AnyChangePolicy",
    "Transport",
    "ConnectionState",
    "CommlinkError",
    "ErrorKind",
    "ValidationError",
    "ConflictError",
    "UnknownCommandError",
    "NotImplementedCommandError",
    "TransportSendError",
    "DeserializationError",
    "BroadcastError",
    "ConfigError",
    "ConnectionError",
    "CommandError",
]
