"""
Transport collaborator interface.

A transport owns connectivity and raw delivery. It reports connection
state changes and inbound payloads to registered handlers; each
registration returns a cleanup function.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Union

from commlink.models.envelope import Envelope

logger = logging.getLogger("commlink.transport")

RawMessage = Union[str, bytes, dict[str, Any]]
StateHandler = Callable[["ConnectionState"], None]
MessageHandler = Callable[[RawMessage], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class Transport(ABC):
    def __init__(self, identity: str) -> None:
        self.identity = identity
        self._state = ConnectionState.DISCONNECTED
        self._state_handlers: list[StateHandler] = []
        self._message_handlers: list[MessageHandler] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_ready_to_send(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    async def send(self, envelope: Envelope) -> None:
        """Deliver an envelope to `envelope.target`. Fills `sender` if unset."""

    @abstractmethod
    async def add_contact(self, identity: str) -> None: ...

    def on_state_change(self, handler: StateHandler) -> Callable[[], None]:
        self._state_handlers.append(handler)

        def remove() -> None:
            try:
                self._state_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def on_inbound_message(self, handler: MessageHandler) -> Callable[[], None]:
        self._message_handlers.append(handler)

        def remove() -> None:
            try:
                self._message_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug(f"{self.identity}: connection state {state.value}")
        for handler in list(self._state_handlers):
            handler(state)

    def _deliver(self, raw: RawMessage) -> None:
        for handler in list(self._message_handlers):
            handler(raw)
