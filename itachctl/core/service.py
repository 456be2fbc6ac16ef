"""Command dispatch engine used by the public client and the CLI."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from itachctl.core.codec import (
    SERIAL_MARKER,
    encode_command,
    parse_command,
    parse_response,
    serial_address,
)
from itachctl.core.error_codes import describe, parse_error_code
from itachctl.core.errors import (
    DeviceBusyError,
    DeviceProtocolError,
    LearnError,
    TransportError,
    TransportSendError,
)
from itachctl.core.model import (
    ClientConfig,
    Command,
    CompletionCallback,
    Identifier,
    InfraredCommand,
    PendingCommand,
    Response,
    ResponseKind,
)
from itachctl.core.queue import DELAY_BETWEEN_COMMANDS_S, CommandQueue
from itachctl.core.registry import CorrelationRegistry
from itachctl.transports.base import LearnTransport, Transport
from itachctl.transports.http import LearnClient
from itachctl.transports.tcp import CONNECTED, CONNECTING, DISCONNECTED, SENT, TCPTransport

LIFECYCLE_EVENTS = (CONNECTING, CONNECTED, SENT, DISCONNECTED)
BUSY_MESSAGE = "Add rate limiter to the blaster"
LOGGER = logging.getLogger(__name__)


def _ignore(_error: Exception | None, _response: str | None) -> None:
    return None


class DispatchService:
    """Owns the queue, correlation registry and transport of one device client.

    Every method must be called from the thread running the event loop; that
    single control flow is the only owner of the shared dispatch state.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Transport | None = None,
        learn_client: LearnTransport | None = None,
        delay_s: float = DELAY_BETWEEN_COMMANDS_S,
    ) -> None:
        self.config = config
        self._debug = config.debug
        self.transport = transport or TCPTransport(
            config.host,
            config.port,
            timeout_s=config.timeout_s,
            debug=config.debug,
        )
        self.learn_client = learn_client or LearnClient(config.host, timeout_s=config.timeout_s)
        self._queue = CommandQueue(self._start_session, delay_s=delay_s, debug=config.debug)
        self._registry = CorrelationRegistry(
            on_ready=self._queue.request_immediate_advance,
            debug=config.debug,
        )
        self._listeners: dict[str, list[Callable[[], None]]] = {event: [] for event in LIFECYCLE_EVENTS}
        self._session: asyncio.Task[None] | None = None

    @property
    def registry(self) -> CorrelationRegistry:
        return self._registry

    @property
    def queue(self) -> CommandQueue:
        return self._queue

    def on(self, event: str, handler: Callable[[], None]) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown event '{event}'. Available: {', '.join(LIFECYCLE_EVENTS)}")
        self._listeners[event].append(handler)

    def off(self, event: str, handler: Callable[[], None]) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def send(
        self,
        source: str | Mapping[str, Any] | Command,
        *,
        urgent: bool = False,
        callback: CompletionCallback | None = None,
    ) -> Identifier | None:
        """Queue a command for the device.

        Returns the identifier the response will be correlated with, or ``None``
        when an urgent send was dropped because the client is busy. Invalid
        commands raise before anything is registered or queued.
        """
        command = parse_command(source)
        if urgent and not self._queue.is_idle():
            if self._debug:
                LOGGER.debug("Queue is not empty, urgent command dropped")
            return None

        done = callback or _ignore
        if isinstance(command, InfraredCommand):
            identifier = self._registry.assign(done)
        else:
            address = serial_address(command, default_module=self.config.module)
            if address in self._registry:
                self._queue.discard(address)
            identifier = self._registry.assign(done, address)
        line = encode_command(command, identifier, default_module=self.config.module)
        pending = PendingCommand(identifier=identifier, line=line)

        if urgent:
            self._queue.try_urgent(pending)
        else:
            self._queue.enqueue(pending)
        return identifier

    async def learn(self) -> Any:
        return await asyncio.to_thread(self.learn_client.fetch)

    def learn_with(self, callback: Callable[[str | None, Any], None]) -> asyncio.Task[None]:
        """Run :meth:`learn` and report ``(error, payload)`` to ``callback``."""

        async def _run() -> None:
            try:
                payload = await self.learn()
            except LearnError as exc:
                callback(str(exc), None)
            else:
                callback(None, payload)

        return asyncio.get_running_loop().create_task(_run())

    def disconnect(self) -> list[str]:
        """Drop queued commands and pending callbacks without invoking them.

        Returns the identifiers whose callbacks were abandoned.
        """
        if self._session is not None and not self._session.done():
            self._session.cancel()
        self._session = None
        abandoned = list(self._registry.pending_ids())
        if abandoned:
            LOGGER.warning("Disconnecting with %d pending command(s) abandoned", len(abandoned))
        self._queue.clear()
        self._registry.clear()
        return abandoned

    def _emit(self, event: str) -> None:
        for handler in list(self._listeners.get(event, ())):
            try:
                handler()
            except Exception:
                LOGGER.exception("Listener for '%s' event raised", event)

    def _start_session(self, pending: PendingCommand) -> None:
        self._session = asyncio.get_running_loop().create_task(self._run_session(pending))

    async def _run_session(self, pending: PendingCommand) -> None:
        try:
            lines = await self.transport.exchange(pending.line, on_event=self._emit)
        except TransportError as exc:
            LOGGER.error("Transport error while sending id %s: %s", pending.identifier, exc)
            self._registry.fail_all(exc)
            self._queue.advance()
            return
        except Exception as exc:
            LOGGER.exception("Unexpected error while sending id %s", pending.identifier)
            error = TransportSendError(f"Failed to send command {pending.identifier}: {exc}")
            error.__cause__ = exc
            self._registry.resolve(pending.identifier, error)
            self._queue.advance()
            return

        if not lines:
            self._registry.resolve(
                pending.identifier,
                TransportError("Connection closed before a response was received"),
            )
            self._queue.advance()
            return

        for line in lines:
            self._handle_response(pending, parse_response(line))
        self._queue.schedule_advance()

    def _handle_response(self, pending: PendingCommand, response: Response) -> None:
        fields = response.fields
        if self._debug:
            LOGGER.debug("Received %r for id %s", response.line, pending.identifier)

        if response.kind is ResponseKind.BUSY:
            target = fields[2] if len(fields) > 2 else pending.identifier
            self._registry.resolve(
                target,
                DeviceBusyError(BUSY_MESSAGE),
                response=response.line,
                advance_now=True,
            )
        elif response.kind is ResponseKind.ERROR:
            code = parse_error_code(fields)
            description = describe(code)
            LOGGER.error("Device error: %s: %s", response.line, description)
            self._registry.resolve(
                self._error_target(fields, pending.identifier),
                DeviceProtocolError(code, description, response.line),
                response=response.line,
                advance_now=True,
            )
        elif response.kind is ResponseKind.ACK:
            self._registry.resolve(
                fields[1] if len(fields) > 1 else pending.identifier,
                response=response.line,
                advance_now=fields[0] == SERIAL_MARKER,
            )
        else:
            self._registry.resolve(pending.identifier, response=response.line)

    def _error_target(self, fields: tuple[str, ...], fallback: Identifier) -> Identifier:
        # Third field, else a pending id in the second field, else the dispatched command.
        if len(fields) > 2 and fields[2]:
            return fields[2]
        if len(fields) > 1 and fields[1] in self._registry:
            return fields[1]
        return fallback
