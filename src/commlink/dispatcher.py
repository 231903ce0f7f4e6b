"""
Dispatcher: routes one inbound envelope by type.

handle() runs once per inbound envelope and returns the envelope to send
back (if any). Routing:

    SUBSCRIBE        -> add sender to directory, SUBSCRIBE_RESPONSE
    STATUS_REQUEST   -> STATUS_RESPONSE with status fields
    PING             -> PING_RESPONSE
    ERROR_TEST       -> ERROR (diagnostic)
    COMMAND          -> COMMAND_RESPONSE from the command's handler, or ERROR
    COMMAND_RESPONSE -> command response handler, nothing sent
    ALERT            -> alert handler, sends whatever it returns
    anything else    -> nothing

Errors raised while producing a command response never escape handle();
they are turned into an ERROR envelope addressed to the requester.
"""

import inspect
import logging
from collections.abc import Awaitable
from typing import Any, Callable, NamedTuple, Optional

from commlink import messaging
from commlink.commands import CommandRegistry, ServiceCommand, sanitize
from commlink.errors import CommlinkError, ErrorKind, NotImplementedCommandError, ValidationError
from commlink.models.envelope import Envelope, MessageType
from commlink.models.values import Value
from commlink.status import StatusTracker
from commlink.subscribers import SubscriberDirectory

logger = logging.getLogger("commlink.dispatcher")

CommandHandler = Callable[[ServiceCommand, list[Value], Envelope], Any]
AlertHandler = Callable[[Envelope], Any]
CommandResponseHandler = Callable[[Envelope], Any]
SubscribeHook = Callable[[str], Awaitable[None]]

# Types that are answered and therefore need a sender to reply to
_ANSWERED = {
    MessageType.SUBSCRIBE,
    MessageType.STATUS_REQUEST,
    MessageType.PING,
    MessageType.ERROR_TEST,
    MessageType.COMMAND,
}


class DispatchResult(NamedTuple):
    outbound: Optional[Envelope]
    should_send: bool


NOTHING = DispatchResult(None, False)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Dispatcher:
    def __init__(
        self,
        registry: CommandRegistry,
        directory: SubscriberDirectory,
        status: StatusTracker,
        command_handlers: Optional[dict[str, CommandHandler]] = None,
        alert_handler: Optional[AlertHandler] = None,
        command_response_handler: Optional[CommandResponseHandler] = None,
        on_subscribe: Optional[SubscribeHook] = None,
    ):
        self.registry = registry
        self.directory = directory
        self.status = status
        self.alert_handler = alert_handler
        self.command_response_handler = command_response_handler
        self.on_subscribe = on_subscribe
        self._command_handlers: dict[str, CommandHandler] = {}
        for name, handler in (command_handlers or {}).items():
            self.set_command_handler(name, handler)
        self._routes = {
            MessageType.SUBSCRIBE: self._on_subscribe,
            MessageType.STATUS_REQUEST: self._on_status_request,
            MessageType.PING: self._on_ping,
            MessageType.ERROR_TEST: self._on_error_test,
            MessageType.COMMAND: self._on_command,
            MessageType.COMMAND_RESPONSE: self._on_command_response,
            MessageType.ALERT: self._on_alert,
        }

    def set_command_handler(self, name: str, handler: CommandHandler) -> None:
        self._command_handlers[sanitize(name)] = handler

    async def handle(self, envelope: Envelope) -> DispatchResult:
        route = self._routes.get(envelope.type)
        if route is None:
            logger.debug(f"No route for {envelope.type.name} envelope {envelope.id}")
            return NOTHING
        if envelope.type in _ANSWERED and not envelope.sender:
            logger.warning(f"Dropping {envelope.type.name} envelope {envelope.id}: no sender to answer")
            return NOTHING
        return await route(envelope)

    async def _on_subscribe(self, envelope: Envelope) -> DispatchResult:
        try:
            added = await self.directory.add(envelope.sender)  # type: ignore[arg-type]
        except ValidationError as e:
            logger.info(f"Subscribe envelope {envelope.id} rejected: {e}")
            return DispatchResult(messaging.new_error(str(e), envelope, e.kind), True)
        if added and self.on_subscribe is not None:
            try:
                await self.on_subscribe(envelope.sender)  # type: ignore[arg-type]
            except Exception as e:
                logger.error(f"Subscribe hook failed for {envelope.sender}: {e}")
        return DispatchResult(messaging.new_response(envelope, MessageType.SUBSCRIBE_RESPONSE), True)

    async def _on_status_request(self, envelope: Envelope) -> DispatchResult:
        response = messaging.new_response(envelope, MessageType.STATUS_RESPONSE)
        for key, value in self.status.as_values().items():
            response.add_value(key, value)
        return DispatchResult(response, True)

    async def _on_ping(self, envelope: Envelope) -> DispatchResult:
        return DispatchResult(messaging.new_response(envelope, MessageType.PING_RESPONSE), True)

    async def _on_error_test(self, envelope: Envelope) -> DispatchResult:
        return DispatchResult(messaging.new_error("Error test requested", envelope, ErrorKind.DIAGNOSTIC), True)

    async def _on_command(self, envelope: Envelope) -> DispatchResult:
        try:
            response = await self._run_command(envelope)
        except CommlinkError as e:
            logger.info(f"Command envelope {envelope.id} from {envelope.sender} failed: {e}")
            response = messaging.new_error(str(e), envelope, e.kind)
        except Exception as e:
            logger.exception(f"Command handler crashed for envelope {envelope.id}")
            response = messaging.new_error(str(e) or type(e).__name__, envelope, ErrorKind.EXCEPTION)
        return DispatchResult(response, True)

    async def _run_command(self, envelope: Envelope) -> Envelope:
        command = self.registry.resolve(messaging.get_command(envelope))
        if not command.implemented:
            raise NotImplementedCommandError(f"Command {command.name!r} is not implemented")
        arguments = messaging.get_arguments(envelope)

        response = messaging.new_response(envelope, MessageType.COMMAND_RESPONSE)
        response.add_value(messaging.FIELD_ORIGINAL_COMMAND, command.name)
        handler = self._command_handlers.get(command.name)
        if handler is not None:
            await _call(handler, command, arguments, response)
        return response

    async def _on_command_response(self, envelope: Envelope) -> DispatchResult:
        if self.command_response_handler is not None:
            await _call(self.command_response_handler, envelope)
        return NOTHING

    async def _on_alert(self, envelope: Envelope) -> DispatchResult:
        if self.alert_handler is None:
            return NOTHING
        outbound = await _call(self.alert_handler, envelope)
        if outbound is None:
            return NOTHING
        return DispatchResult(outbound, True)
