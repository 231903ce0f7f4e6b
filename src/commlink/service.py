"""
Service: hosts a command/notification endpoint on a transport.

Startup: commands are registered (built-ins first), the registry is
frozen, credentials are read from the settings, the transport is created
and one state handler plus one message handler are attached before
connecting.

Inbound payloads are queued and handled by a single worker task, so the
dispatcher never runs concurrently with itself and responses leave in the
order requests arrived.

Shutdown: a STOPPING notification is broadcast before the transport is
told to disconnect.
"""

import asyncio
import logging
import signal
from typing import Any, Callable, Optional

from commlink import messaging
from commlink.commands import CommandRegistry, ServiceCommand
from commlink.config import DecryptHook, ServiceConfig
from commlink.dispatcher import AlertHandler, CommandHandler, CommandResponseHandler, Dispatcher
from commlink.errors import CommlinkError, ConnectionError, TransportSendError, ValidationError
from commlink.messaging import ServiceEvent
from commlink.models.envelope import Envelope
from commlink.models.values import Value
from commlink.status import NotificationPolicy, StatusTracker
from commlink.subscribers import SubscriberDirectory
from commlink.transport import codec
from commlink.transport.base import ConnectionState, RawMessage, Transport

logger = logging.getLogger("commlink.service")

TransportFactory = Callable[[str, str], Transport]
EventHandler = Callable[[ServiceEvent], None]
StateHandler = Callable[[ConnectionState], None]

COMMAND_HELP = "help"
COMMAND_ABOUT = "about"
COMMAND_VERSION = "version"
COMMAND_STATUS = "status"

DEFAULT_STOP_TIMEOUT = 5.0


class Service:
    def __init__(
        self,
        config: ServiceConfig,
        transport_factory: TransportFactory,
        *,
        name: str = "commlink",
        policy: Optional[NotificationPolicy] = None,
        decrypt: Optional[DecryptHook] = None,
    ):
        self.name = name
        self.config = config
        self._transport_factory = transport_factory
        self._decrypt = decrypt

        self.registry = CommandRegistry()
        self.directory = SubscriberDirectory()
        self.status = StatusTracker(policy)
        self.status.attach(self._notify_status)
        self.dispatcher = Dispatcher(self.registry, self.directory, self.status, on_subscribe=self._approve_subscription)

        self.transport: Optional[Transport] = None
        self._state = ConnectionState.DISCONNECTED
        self._stopping = False
        self._queue: Optional[asyncio.Queue[RawMessage]] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._detach: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._event_handlers: list[EventHandler] = []
        self._state_handlers: list[StateHandler] = []
        self._stop_requested: Optional[asyncio.Event] = None

        self._register_builtin_commands()

    # Commands

    def _register_builtin_commands(self) -> None:
        self.register_command(COMMAND_HELP, "List the available commands", self._cmd_help, shortcut="h")
        self.register_command(COMMAND_ABOUT, "Describe this service", self._cmd_about, shortcut="a")
        self.register_command(COMMAND_VERSION, "Report the service version", self._cmd_version, shortcut="v")
        self.register_command(COMMAND_STATUS, "Report the service status", self._cmd_status, shortcut="s")

    def register_command(
        self,
        name: str,
        description: str = "",
        handler: Optional[CommandHandler] = None,
        shortcut: Optional[str] = None,
        implemented: bool = True,
    ) -> ServiceCommand:
        """Declare a command. Only allowed before start()."""
        command = self.registry.register(name, description, shortcut=shortcut, implemented=implemented)
        if handler is not None:
            self.dispatcher.set_command_handler(command.name, handler)
        return command

    def command(self, name: str, description: str = "", shortcut: Optional[str] = None) -> Callable[[CommandHandler], CommandHandler]:
        """Decorator form of register_command()."""
        def decorator(handler: CommandHandler) -> CommandHandler:
            self.register_command(name, description, handler, shortcut=shortcut)
            return handler
        return decorator

    def on_alert(self, handler: Optional[AlertHandler]) -> None:
        self.dispatcher.alert_handler = handler

    def on_command_response(self, handler: Optional[CommandResponseHandler]) -> None:
        self.dispatcher.command_response_handler = handler

    def _cmd_help(self, command: ServiceCommand, arguments: list[Value], response: Envelope) -> None:
        response.add_value("Help", self.registry.help_table())

    def _cmd_about(self, command: ServiceCommand, arguments: list[Value], response: Envelope) -> None:
        response.add_value("About", self.config.about(self.name))

    def _cmd_version(self, command: ServiceCommand, arguments: list[Value], response: Envelope) -> None:
        response.add_value("Version", self.config.service.version)

    def _cmd_status(self, command: ServiceCommand, arguments: list[Value], response: Envelope) -> None:
        for key, value in self.status.as_values().items():
            response.add_value(key, value)

    # Observers

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._worker is not None

    def add_event_handler(self, handler: EventHandler) -> Callable[[], None]:
        """Observe lifecycle events (CONNECTED, DISCONNECTING, STOPPING). Returns a cleanup function."""
        self._event_handlers.append(handler)

        def remove() -> None:
            try:
                self._event_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def add_state_handler(self, handler: StateHandler) -> Callable[[], None]:
        self._state_handlers.append(handler)

        def remove() -> None:
            try:
                self._state_handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def _emit(self, event: ServiceEvent) -> None:
        for handler in list(self._event_handlers):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {event.label}")

    # Lifecycle

    async def start(self) -> None:
        if self._worker is not None:
            raise ConnectionError(f"{self.name} is already running")

        self.registry.freeze()
        username = self.config.credentials.username
        password = self.config.password(self._decrypt)
        if "@" in username:
            self.directory.default_domain = username.split("@", 1)[1]

        logger.info(f"Creating transport for {username}...")
        self.transport = self._transport_factory(username, password)
        self._detach = [
            self.transport.on_state_change(self._on_state_change),
            self.transport.on_inbound_message(self._on_inbound),
        ]
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._process_inbound())

        logger.info("Awaiting connect process to complete...")
        try:
            await self.transport.connect()
        except BaseException:
            logger.exception(f"{self.name} failed to connect")
            await self._teardown()
            raise
        logger.info("Connect process completed")

    async def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        if self.transport is None or self._worker is None:
            return
        self._stopping = True
        try:
            self._emit(ServiceEvent.STOPPING)
            try:
                await self.notify(ServiceEvent.STOPPING, f"{self.name} is stopping")
            except CommlinkError as e:
                logger.error(f"Stopping notification failed: {e}")
            await self._drain_tasks()

            try:
                await asyncio.wait_for(self.transport.disconnect(), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Transport did not disconnect within {timeout}s")
            except Exception as e:
                logger.error(f"Disconnect failed: {e}")
        finally:
            await self._teardown()
            self._stopping = False

    def request_stop(self) -> None:
        if self._stop_requested is not None:
            self._stop_requested.set()

    async def run_forever(self) -> None:
        """Start, run until SIGINT/SIGTERM or request_stop(), then stop."""
        self._stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop_requested.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                pass
        try:
            await self.start()
            try:
                await self._stop_requested.wait()
            finally:
                await self.stop()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            self._stop_requested = None

    async def _teardown(self) -> None:
        for detach in self._detach:
            detach()
        self._detach = []
        for task in list(self._tasks):
            task.cancel()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._queue = None

    async def _drain_tasks(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_state_change(self, state: ConnectionState) -> None:
        self._state = state
        logger.info(f"Connection state: {state.value}")
        for handler in list(self._state_handlers):
            try:
                handler(state)
            except Exception:
                logger.exception(f"State handler failed for {state.value}")

        if state == ConnectionState.CONNECTED:
            self._emit(ServiceEvent.CONNECTED)
            self._spawn(self._notify_lifecycle(ServiceEvent.CONNECTED, f"{self.name} connected", True))
        elif state == ConnectionState.DISCONNECTING and not self._stopping:
            self._emit(ServiceEvent.DISCONNECTING)
            self._spawn(self._notify_lifecycle(ServiceEvent.DISCONNECTING, f"{self.name} disconnecting", False))

    async def _notify_lifecycle(self, event: ServiceEvent, description: str, require_ready: bool) -> None:
        try:
            await self.notify(event, description, require_ready=require_ready)
        except CommlinkError as e:
            logger.error(f"{event.label} notification failed: {e}")

    # Inbound

    def _on_inbound(self, raw: RawMessage) -> None:
        if self._queue is not None:
            self._queue.put_nowait(raw)

    async def _process_inbound(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            raw = await queue.get()
            try:
                await self._handle_raw(raw)
            except Exception:
                logger.exception("Unhandled error processing inbound message")
            finally:
                queue.task_done()

    async def _handle_raw(self, raw: RawMessage) -> None:
        envelope = codec.try_decode(raw)
        if envelope is None:
            return
        result = await self.dispatcher.handle(envelope)
        if not result.should_send or result.outbound is None:
            return
        try:
            await self.send(result.outbound)
        except CommlinkError as e:
            logger.error(f"Failed to send {result.outbound.type.name} to {result.outbound.target}: {e}")

    async def join(self) -> None:
        """Wait until queued inbound messages and pending notifications are handled."""
        if self._queue is not None:
            await self._queue.join()
        await self._drain_tasks()

    # Outbound

    async def send(self, envelope: Envelope) -> None:
        if self.transport is None:
            raise ConnectionError(f"{self.name} has no transport; call start() first")
        if not envelope.target:
            raise ValidationError("Envelope target cannot be empty")
        try:
            await self.transport.send(envelope.snapshot())
        except CommlinkError:
            raise
        except Exception as e:
            raise TransportSendError(f"Send to {envelope.target} failed: {e}") from e

    async def broadcast(self, envelope: Envelope) -> int:
        return await self.directory.broadcast(envelope, self.send)

    async def notify(self, event: ServiceEvent, description: Optional[str] = None, require_ready: bool = True) -> bool:
        """Broadcast a Notification. Skipped (not queued) when the transport cannot send."""
        if self.transport is None or (require_ready and not self.transport.is_ready_to_send()):
            logger.debug(f"Skipping {event.label} notification: not ready to send")
            return False
        envelope = messaging.create_notification(event, description)
        if event == ServiceEvent.STATUS_UPDATE:
            for key, value in self.status.as_values().items():
                envelope.add_value(key, value)
        await self.broadcast(envelope)
        return True

    async def _notify_status(self, tracker: StatusTracker) -> bool:
        return await self.notify(ServiceEvent.STATUS_UPDATE, tracker.message or None)

    async def _approve_subscription(self, identity: str) -> None:
        if self.transport is not None:
            await self.transport.add_contact(identity)
