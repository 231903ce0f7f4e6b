"""
Socket.IO transport: connects to a commlink relay server.

Connection: {url}/commlink/socket.io/ with auth={username, password}.
Waits for the relay's `ready` event before reporting CONNECTED.

Relay events:
  message    C2S {"to": target, "body": encoded envelope}
             S2C {"from": sender, "body": encoded envelope}
  subscribe  C2S {"contact": identity}   (approve a contact's subscription)
"""

import asyncio
import logging
from typing import Any, Optional

import socketio
from socketio import exceptions as sio_exceptions

from commlink.errors import ConnectionError, TransportSendError, ValidationError
from commlink.models.envelope import Envelope
from commlink.transport import codec
from commlink.transport.base import ConnectionState, Transport

logger = logging.getLogger("commlink.transport.socketio")

SOCKETIO_PATH = "/commlink/socket.io/"
EVENT_MESSAGE = "message"
EVENT_SUBSCRIBE = "subscribe"
EVENT_READY = "ready"


class SocketIOTransport(Transport):
    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        transports: Optional[list[str]] = None,
        ready_timeout: float = 15.0,
    ):
        if "@" not in username:
            raise ValidationError(f"Username {username} does not specify a domain")
        super().__init__(username.strip().lower())
        self._url = url
        self._password = password
        self._transports = transports or ["websocket"]
        self._ready_timeout = ready_timeout
        self._sio: Optional[socketio.AsyncClient] = None

    @property
    def domain(self) -> str:
        return self.identity.split("@", 1)[1]

    def is_ready_to_send(self) -> bool:
        return super().is_ready_to_send() and self._sio is not None and self._sio.connected

    async def connect(self) -> None:
        """Connect to the relay and wait for `ready`."""
        if self._sio and self._sio.connected:
            return

        self._set_state(ConnectionState.CONNECTING)
        self._sio = socketio.AsyncClient(reconnection=True)
        ready_event = asyncio.Event()

        @self._sio.on(EVENT_READY)
        async def on_ready(*_args: Any) -> None:
            ready_event.set()
            self._set_state(ConnectionState.CONNECTED)

        @self._sio.on(EVENT_MESSAGE)
        async def on_message(data: Any) -> None:
            if isinstance(data, dict) and "body" in data:
                self._deliver(data["body"])
            else:
                logger.debug(f"Ignoring malformed relay message: {data!r}")

        @self._sio.event
        async def disconnect(*_args: Any) -> None:
            self._set_state(ConnectionState.DISCONNECTED)

        try:
            await self._sio.connect(
                self._url,
                auth={"username": self.identity, "password": self._password},
                transports=self._transports,
                socketio_path=SOCKETIO_PATH,
            )
        except sio_exceptions.ConnectionError as e:
            self._set_state(ConnectionState.DISCONNECTED)
            self._sio = None
            raise ConnectionError(f"Could not connect to {self._url}: {e}")

        try:
            await asyncio.wait_for(ready_event.wait(), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            await self.disconnect()
            raise TimeoutError(f"Timed out waiting for 'ready' event after {self._ready_timeout}s")

    async def disconnect(self) -> None:
        if self._sio is None:
            return
        if self._state == ConnectionState.CONNECTED:
            self._set_state(ConnectionState.DISCONNECTING)
        try:
            await self._sio.disconnect()
        finally:
            self._sio = None
            self._set_state(ConnectionState.DISCONNECTED)

    async def send(self, envelope: Envelope) -> None:
        if not envelope.target:
            raise ValidationError("SocketIOTransport.send: envelope target cannot be empty")
        if not self._sio or not self._sio.connected:
            raise ConnectionError("Socket.IO not connected")

        outbound = envelope.snapshot()
        if "@" not in outbound.target:
            outbound.target = f"{outbound.target}@{self.domain}"
        if not outbound.sender:
            outbound.sender = self.identity
        try:
            await self._sio.emit(EVENT_MESSAGE, {"to": outbound.target, "body": codec.encode(outbound)})
        except Exception as e:
            raise TransportSendError(f"Emit to {outbound.target} failed: {e}") from e

    async def add_contact(self, identity: str) -> None:
        if not self._sio or not self._sio.connected:
            raise ConnectionError("Socket.IO not connected")
        await self._sio.emit(EVENT_SUBSCRIBE, {"contact": identity})
