"""
Subscriber directory: the contacts that receive broadcast notifications.
"""

import asyncio
import logging
from collections.abc import Awaitable, Iterator
from typing import Callable, Optional

from commlink.errors import BroadcastError, ValidationError
from commlink.models.envelope import Envelope

logger = logging.getLogger("commlink.subscribers")

SendFunc = Callable[[Envelope], Awaitable[None]]


def canonical_identity(identity: Optional[str], default_domain: Optional[str] = None) -> str:
    """`" Alice@Example.org/phone "` -> `"alice@example.org"`."""
    value = (identity or "").strip().lower()
    value = value.split("/", 1)[0]
    if not value:
        raise ValidationError(f"Invalid contact identity {identity!r}")
    if "@" not in value and default_domain:
        value = f"{value}@{default_domain.strip().lower()}"
    return value


class SubscriberDirectory:
    def __init__(self, default_domain: Optional[str] = None) -> None:
        self.default_domain = default_domain
        self._contacts: dict[str, None] = {}
        self._lock = asyncio.Lock()

    async def add(self, identity: str) -> bool:
        """Add a contact. Returns False if it was already present."""
        contact = canonical_identity(identity, self.default_domain)
        async with self._lock:
            if contact in self._contacts:
                return False
            self._contacts[contact] = None
        logger.info(f"Added subscriber {contact}")
        return True

    def snapshot(self) -> list[str]:
        return list(self._contacts)

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, str):
            return False
        try:
            return canonical_identity(identity, self.default_domain) in self._contacts
        except ValidationError:
            return False

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._contacts)

    async def broadcast(self, template: Envelope, send: SendFunc) -> int:
        """Send a copy of `template` to every contact. Returns the number delivered.

        Every contact is attempted; if any send failed, BroadcastError is
        raised afterwards carrying the first failure.
        """
        contacts = self.snapshot()
        if not contacts:
            return 0

        first_error: Optional[BaseException] = None
        failed: list[str] = []
        for contact in contacts:
            try:
                await send(template.copy_for(contact))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Broadcast to {contact} failed: {e}")
                failed.append(contact)
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise BroadcastError(
                f"Broadcast failed for {len(failed)}/{len(contacts)} subscriber(s): {first_error}",
                first_error=first_error,
                failed=failed,
            ) from first_error
        return len(contacts)
