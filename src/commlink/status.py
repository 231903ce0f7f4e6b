"""
Service status tracking and change notification.

A NotificationPolicy decides which writes count as a change worth telling
subscribers about. The default, CodeChangePolicy, only notifies when the
status code changes value.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from commlink import messaging
from commlink.models.values import Value, ValueMap, to_value

logger = logging.getLogger("commlink.status")

ChangeHandler = Callable[["StatusTracker", int], Any]
Notifier = Callable[["StatusTracker"], Awaitable[bool]]


def server_time() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationPolicy:
    def should_notify(self, previous: tuple[int, str, ValueMap], current: tuple[int, str, ValueMap]) -> bool:
        raise NotImplementedError


class CodeChangePolicy(NotificationPolicy):
    def should_notify(self, previous: tuple[int, str, ValueMap], current: tuple[int, str, ValueMap]) -> bool:
        return previous[0] != current[0]


class AnyChangePolicy(NotificationPolicy):
    def should_notify(self, previous: tuple[int, str, ValueMap], current: tuple[int, str, ValueMap]) -> bool:
        return previous != current


class StatusTracker:
    def __init__(self, policy: Optional[NotificationPolicy] = None, code: int = 0, message: str = "") -> None:
        self.policy = policy or CodeChangePolicy()
        self._code = code
        self._message = message
        self._details: ValueMap = {}
        self._handlers: list[ChangeHandler] = []
        self._notifier: Optional[Notifier] = None
        self._lock = asyncio.Lock()

    @property
    def code(self) -> int:
        return self._code

    @property
    def message(self) -> str:
        return self._message

    @property
    def details(self) -> ValueMap:
        return self._details

    def attach(self, notifier: Optional[Notifier]) -> None:
        self._notifier = notifier

    def add_change_handler(self, handler: ChangeHandler) -> Callable[[], None]:
        """Add a local change observer. Returns a cleanup function."""
        self._handlers.append(handler)

        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def _state(self) -> tuple[int, str, ValueMap]:
        return (self._code, self._message, dict(self._details))

    async def set_status(
        self,
        code: Optional[int] = None,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Update the status. Returns True if subscribers were notified."""
        async with self._lock:
            previous = self._state()
            if details is not None:
                self._details = to_value(details)  # type: ignore[assignment]
            if message is not None:
                self._message = message
            if code is not None:
                self._code = int(code)
            current = self._state()
            notify = self.policy.should_notify(previous, current)

        if previous[0] != current[0]:
            await self._fire_change(previous[0])
        if notify and self._notifier is not None:
            return await self._notifier(self)
        return False

    async def set_code(self, code: int) -> bool:
        return await self.set_status(code=code)

    async def set_message(self, message: str) -> bool:
        return await self.set_status(message=message)

    async def update_details(self, **values: Any) -> bool:
        """Merge values into details in place."""
        merged = dict(self._details)
        merged.update(values)
        return await self.set_status(details=merged)

    async def _fire_change(self, previous_code: int) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(self, previous_code)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Status change handler failed")

    def as_values(self) -> dict[str, Value]:
        return {
            messaging.FIELD_STATUS_CODE: self._code,
            messaging.FIELD_STATUS_MESSAGE: self._message,
            messaging.FIELD_STATUS_DETAILS: dict(self._details),
            messaging.FIELD_SERVER_TIME: server_time(),
        }
