"""
In-process transport.

A MemoryHub routes encoded envelopes between MemoryTransports registered
under canonical identities. Useful for tests and for embedding a service
and its clients in one process.
"""

import asyncio

from commlink.errors import ConnectionError, TransportSendError, ValidationError
from commlink.models.envelope import Envelope
from commlink.subscribers import canonical_identity
from commlink.transport import codec
from commlink.transport.base import ConnectionState, Transport


class MemoryHub:
    def __init__(self, domain: str = "local") -> None:
        self.domain = domain
        self._peers: dict[str, "MemoryTransport"] = {}

    def transport(self, identity: str) -> "MemoryTransport":
        return MemoryTransport(self, identity)

    def _attach(self, transport: "MemoryTransport") -> None:
        self._peers[transport.identity] = transport

    def _detach(self, transport: "MemoryTransport") -> None:
        if self._peers.get(transport.identity) is transport:
            del self._peers[transport.identity]

    async def route(self, target: str, payload: str) -> None:
        peer = self._peers.get(target)
        if peer is None:
            raise TransportSendError(f"No connected peer {target!r}")
        await asyncio.sleep(0)
        peer._deliver(payload)


class MemoryTransport(Transport):
    def __init__(self, hub: MemoryHub, identity: str) -> None:
        super().__init__(canonical_identity(identity, hub.domain))
        self.hub = hub
        self.contacts: list[str] = []
        self.sent: list[Envelope] = []
        self.fail_for: set[str] = set()

    @property
    def domain(self) -> str:
        return self.identity.split("@", 1)[1]

    async def connect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        await asyncio.sleep(0)
        self.hub._attach(self)
        self._set_state(ConnectionState.CONNECTED)

    async def disconnect(self) -> None:
        if self._state == ConnectionState.DISCONNECTED:
            return
        self._set_state(ConnectionState.DISCONNECTING)
        await asyncio.sleep(0)
        self.hub._detach(self)
        self._set_state(ConnectionState.DISCONNECTED)

    async def send(self, envelope: Envelope) -> None:
        if not envelope.target:
            raise ValidationError("Envelope target cannot be empty")
        if self._state not in (ConnectionState.CONNECTED, ConnectionState.DISCONNECTING):
            raise ConnectionError(f"{self.identity} is not connected")
        outbound = envelope.snapshot()
        outbound.target = canonical_identity(outbound.target, self.domain)
        if not outbound.sender:
            outbound.sender = self.identity
        if outbound.target in self.fail_for:
            raise TransportSendError(f"Delivery to {outbound.target} failed")
        self.sent.append(outbound)
        await self.hub.route(outbound.target, codec.encode(outbound))

    async def add_contact(self, identity: str) -> None:
        contact = canonical_identity(identity, self.domain)
        if contact not in self.contacts:
            self.contacts.append(contact)

    def inject(self, raw: str) -> None:
        """Deliver a raw payload as if it came off the wire."""
        self._deliver(raw)

