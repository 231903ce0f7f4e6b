"""
ServiceClient: talks to a commlink service from the requesting side.

Each request is remembered by its ID until exactly one envelope whose
ResponseID matches arrives, or the request times out.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from commlink import messaging
from commlink.errors import CommandError, ValidationError
from commlink.models.envelope import Envelope, MessageType
from commlink.models.values import Value
from commlink.transport import codec
from commlink.transport.base import RawMessage, Transport

logger = logging.getLogger("commlink.client")

DEFAULT_REQUEST_TIMEOUT = 10.0

NotificationHandler = Callable[[Envelope], None]


class ServiceClient:
    def __init__(self, transport: Transport, request_timeout: float = DEFAULT_REQUEST_TIMEOUT):
        self.transport = transport
        self.request_timeout = request_timeout
        self._pending: dict[str, asyncio.Future[Envelope]] = {}
        self._notification_handlers: list[NotificationHandler] = []
        self._detach: Optional[Callable[[], None]] = None

    @property
    def connected(self) -> bool:
        return self.transport.is_ready_to_send()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        if self._detach is None:
            self._detach = self.transport.on_inbound_message(self._on_message)
        await self.transport.connect()

    async def disconnect(self) -> None:
        await self.transport.disconnect()
        if self._detach is not None:
            self._detach()
            self._detach = None
        for future in self._pending.values():
            future.cancel()
        self._pending.clear()

    def add_notification_handler(self, handler: NotificationHandler) -> Callable[[], None]:
        """Receive Notification and Alert envelopes. Returns a cleanup function."""
        self._notification_handlers.append(handler)

        def remove() -> None:
            try:
                self._notification_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def _on_message(self, raw: RawMessage) -> None:
        envelope = codec.try_decode(raw)
        if envelope is None:
            return
        if envelope.response_id:
            future = self._pending.pop(envelope.response_id, None)
            if future is not None and not future.done():
                future.set_result(envelope)
                return
        if envelope.type in (MessageType.NOTIFICATION, MessageType.ALERT):
            for handler in list(self._notification_handlers):
                handler(envelope)
            return
        logger.debug(f"Unmatched {envelope.type.name} envelope {envelope.id} from {envelope.sender}")

    async def request(self, envelope: Envelope, timeout: Optional[float] = None) -> Envelope:
        """Send `envelope` and wait for the envelope that answers it."""
        if not envelope.target:
            raise ValidationError("Envelope target cannot be empty")
        if timeout is None:
            timeout = self.request_timeout
        future: asyncio.Future[Envelope] = asyncio.get_running_loop().create_future()
        self._pending[envelope.id] = future
        try:
            await self.transport.send(envelope)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"Timeout waiting for response to {envelope.type.name} {envelope.id}")
        finally:
            self._pending.pop(envelope.id, None)

    async def _request_checked(self, envelope: Envelope, timeout: Optional[float]) -> Envelope:
        response = await self.request(envelope, timeout)
        if response.type == MessageType.ERROR:
            kind, message = messaging.error_details(response)
            raise CommandError(message or "Remote error", code=kind)
        return response

    async def ping(self, target: str, timeout: Optional[float] = None) -> Envelope:
        return await self._request_checked(messaging.new_request(MessageType.PING, target=target), timeout)

    async def subscribe(self, target: str, timeout: Optional[float] = None) -> Envelope:
        return await self._request_checked(messaging.new_request(MessageType.SUBSCRIBE, target=target), timeout)

    async def status(self, target: str, timeout: Optional[float] = None) -> dict[str, Value]:
        response = await self._request_checked(messaging.new_request(MessageType.STATUS_REQUEST, target=target), timeout)
        return dict(response.values)

    async def command(self, target: str, command: str, *args: Any, timeout: Optional[float] = None) -> Envelope:
        """Run a command remotely. Raises CommandError if the service answers with an error."""
        return await self._request_checked(messaging.create_command(command, *args, target=target), timeout)

    async def command_line(self, target: str, command_line: str, timeout: Optional[float] = None) -> Envelope:
        return await self._request_checked(messaging.parse_command_line(command_line, target=target), timeout)

    async def error_test(self, target: str, timeout: Optional[float] = None) -> Envelope:
        return await self.request(messaging.new_request(MessageType.ERROR_TEST, target=target), timeout)
