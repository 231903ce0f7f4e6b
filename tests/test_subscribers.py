"""Subscriber directory and broadcast fan-out."""

import pytest

from commlink.errors import BroadcastError, TransportSendError, ValidationError
from commlink.models.envelope import Envelope, MessageType
from commlink.subscribers import SubscriberDirectory, canonical_identity


def test_canonical_identity():
    assert canonical_identity(" Alice@Example.ORG ") == "alice@example.org"
    assert canonical_identity("alice@example.org/phone") == "alice@example.org"
    assert canonical_identity("alice", default_domain="Example.org") == "alice@example.org"
    assert canonical_identity("alice") == "alice"
    with pytest.raises(ValidationError):
        canonical_identity("  ")
    with pytest.raises(ValidationError):
        canonical_identity(None)


class TestDirectory:
    @pytest.mark.asyncio
    async def test_add_deduplicates_canonical_forms(self):
        directory = SubscriberDirectory()
        assert await directory.add("alice@local") is True
        assert await directory.add("ALICE@local/desktop") is False
        assert len(directory) == 1
        assert "Alice@Local" in directory
        assert list(directory) == ["alice@local"]

    @pytest.mark.asyncio
    async def test_insertion_order(self):
        directory = SubscriberDirectory(default_domain="local")
        for name in ("c", "a", "b"):
            await directory.add(name)
        assert directory.snapshot() == ["c@local", "a@local", "b@local"]
        assert "a" in directory
        assert 3 not in directory


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_empty_directory_is_noop(self):
        calls = []

        async def send(envelope):
            calls.append(envelope)

        assert await SubscriberDirectory().broadcast(Envelope(type=MessageType.NOTIFICATION), send) == 0
        assert calls == []

    @pytest.mark.asyncio
    async def test_each_contact_gets_own_copy(self):
        directory = SubscriberDirectory()
        for contact in ("a@local", "b@local"):
            await directory.add(contact)
        sent = []

        async def send(envelope):
            sent.append(envelope)

        template = Envelope(type=MessageType.NOTIFICATION)
        template.add_value("Description", "hello")
        assert await directory.broadcast(template, send) == 2
        assert [e.target for e in sent] == ["a@local", "b@local"]
        assert len({e.id for e in sent}) == 2
        assert all(e.get_string("Description") == "hello" for e in sent)
        assert template.target is None

    @pytest.mark.asyncio
    async def test_failure_raised_after_all_contacts_attempted(self):
        directory = SubscriberDirectory()
        for contact in ("a@local", "b@local", "c@local"):
            await directory.add(contact)
        attempted = []
        b_error = TransportSendError("b unreachable")

        async def send(envelope):
            attempted.append(envelope.target)
            if envelope.target == "b@local":
                raise b_error

        with pytest.raises(BroadcastError) as info:
            await directory.broadcast(Envelope(type=MessageType.NOTIFICATION), send)

        assert attempted == ["a@local", "b@local", "c@local"]
        assert info.value.first_error is b_error
        assert info.value.__cause__ is b_error
        assert info.value.failed == ["b@local"]

    @pytest.mark.asyncio
    async def test_first_error_wins(self):
        directory = SubscriberDirectory()
        for contact in ("a@local", "b@local"):
            await directory.add(contact)
        errors = {"a@local": TransportSendError("a"), "b@local": TransportSendError("b")}

        async def send(envelope):
            raise errors[envelope.target]

        with pytest.raises(BroadcastError) as info:
            await directory.broadcast(Envelope(type=MessageType.NOTIFICATION), send)
        assert info.value.first_error is errors["a@local"]
        assert info.value.failed == ["a@local", "b@local"]
